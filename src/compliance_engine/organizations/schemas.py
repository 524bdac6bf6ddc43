"""Pydantic schemas for organization endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    description: str = ""
    logo_url: Optional[str] = None
    website: Optional[str] = None
    settings: dict[str, Any] = Field(default_factory=dict)


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    description: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    is_active: Optional[bool] = None


class OrganizationSettingsUpdate(BaseModel):
    settings: dict[str, Any]


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str
    logo_url: Optional[str] = None
    website: Optional[str] = None
    is_active: bool
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationStatistics(BaseModel):
    organization_id: str
    users: int
    posts: int
    assets: int
    storage_bytes: int
