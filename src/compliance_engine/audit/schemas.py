"""Pydantic schemas for audit log queries and responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditLogQuery(BaseModel):
    action: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)


class AuditLogResponse(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: str
    ip_address: str
    user_agent: str
    metadata: dict[str, Any] = {}
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    created_at: datetime


class AuditLogPage(BaseModel):
    items: list[AuditLogResponse]
    total: int
    page: int
    limit: int
    pages: int


class ActivitySummaryItem(BaseModel):
    action: str
    count: int
