"""Shared Pydantic schemas for Compliance-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "compliance-engine"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""


class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    limit: int
    pages: int
