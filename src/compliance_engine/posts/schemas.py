"""Pydantic schemas for post endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from compliance_engine.posts.models import PostPlatform, PostStatus


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    platform: PostPlatform = PostPlatform.OTHER
    scheduled_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    platform: Optional[PostPlatform] = None
    status: Optional[PostStatus] = None
    scheduled_at: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None


class PostResponse(BaseModel):
    id: str
    title: str
    content: str
    platform: str
    status: str
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    metadata: dict[str, Any]
    organization_id: str
    created_by_id: str
    created_at: datetime
    updated_at: datetime
