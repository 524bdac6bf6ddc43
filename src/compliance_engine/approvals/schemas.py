"""Pydantic schemas for approval workflow endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class WorkflowCreate(BaseModel):
    post_id: str
    approver_ids: list[str] = Field(..., min_length=1)


class StepDecision(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)


class WorkflowCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ApproverResponse(BaseModel):
    id: str
    display_name: str
    email: str


class StepResponse(BaseModel):
    id: str
    step_number: int
    status: str
    comment: Optional[str] = None
    completed_at: Optional[datetime] = None
    approver: Optional[ApproverResponse] = None


class PostReference(BaseModel):
    id: str
    title: str
    status: str
    platform: str
    organization_id: str


class WorkflowResponse(BaseModel):
    id: str
    post_id: str
    status: str
    current_step: int
    total_steps: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    post: PostReference
    steps: list[StepResponse]
