"""SQLAlchemy model for the append-only audit trail."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, JSON, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from compliance_engine.common.models import Base, generate_uuid, utcnow


class AuditAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    POST_CREATED = "post_created"
    POST_UPDATED = "post_updated"
    POST_DELETED = "post_deleted"
    POST_PUBLISHED = "post_published"
    POST_ARCHIVED = "post_archived"
    ASSET_UPLOADED = "asset_uploaded"
    ASSET_ATTACHED = "asset_attached"
    ASSET_DELETED = "asset_deleted"
    ASSET_ACCESSED = "asset_accessed"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_CANCELLED = "approval_cancelled"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_ROLE_CHANGED = "user_role_changed"
    ORGANIZATION_CREATED = "organization_created"
    ORGANIZATION_UPDATED = "organization_updated"
    ORGANIZATION_SETTINGS_CHANGED = "organization_settings_changed"
    ORGANIZATION_DELETED = "organization_deleted"
    LICENSE_ADDED = "license_added"
    LICENSE_UPDATED = "license_updated"
    LICENSE_EXPIRED = "license_expired"
    DATA_EXPORTED = "data_exported"


class AuditLogModel(Base):
    """One immutable fact. No foreign keys: entries outlive their subjects."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_org_created", "organization_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="Unknown")
    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="Unknown")
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
