"""Pydantic schemas for asset and license endpoints."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from compliance_engine.assets.models import LicenseType


class AssetResponse(BaseModel):
    id: str
    type: str
    original_name: str
    file_name: str
    url: str
    mime_type: str
    size: int
    checksum: str
    description: str
    metadata: dict[str, Any]
    organization_id: str
    post_id: Optional[str] = None
    created_at: datetime


class LicenseUpsert(BaseModel):
    type: LicenseType
    holder: Optional[str] = Field(None, max_length=255)
    provider: Optional[str] = Field(None, max_length=255)
    license_number: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    expiration_date: Optional[date] = None
    usage_rights: Optional[str] = None
    restrictions: Optional[str] = None
    terms: Optional[str] = None
    document_url: Optional[str] = None
    cost: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = None


class LicenseResponse(BaseModel):
    id: str
    asset_id: str
    type: str
    holder: Optional[str] = None
    provider: Optional[str] = None
    license_number: Optional[str] = None
    start_date: Optional[date] = None
    expiration_date: Optional[date] = None
    usage_rights: Optional[str] = None
    restrictions: Optional[str] = None
    terms: Optional[str] = None
    document_url: Optional[str] = None
    cost: Optional[Decimal] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
