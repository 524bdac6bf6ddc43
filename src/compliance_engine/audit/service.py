"""Audit service: best-effort append and scoped queries over the audit trail."""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.audit.models import AuditAction, AuditLogModel
from compliance_engine.audit.schemas import AuditLogQuery
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import NotFoundError
from compliance_engine.common.tenancy import (
    Actor,
    ClientContext,
    UserRole,
    authorize,
    require_role,
    scoped_organization,
)

logger = logging.getLogger(__name__)

AUDIT_READER_ROLES = (
    UserRole.SUPER_ADMIN,
    UserRole.ORGANIZATION_ADMIN,
    UserRole.MANAGER,
)

_REDACTED_FIELDS = {"password_hash"}


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def snapshot(model: Any) -> dict[str, Any]:
    """Column values of a row as a JSON-safe dict, minus secrets."""
    mapper = inspect(model).mapper
    values = {}
    for attr in mapper.column_attrs:
        if attr.key in _REDACTED_FIELDS:
            continue
        values[attr.key.rstrip("_")] = _json_safe(getattr(model, attr.key))
    return values


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class AuditPage:
    items: list[AuditLogModel]
    total: int
    page: int
    limit: int
    pages: int


class AuditService:
    """Append-only compliance trail shared by every component."""

    def __init__(self, settings: ComplianceSettings):
        self.settings = settings

    # ── Write ──

    async def record(
        self,
        session: AsyncSession,
        action: AuditAction | str,
        entity_type: str,
        organization_id: str,
        entity_id: str | None = None,
        actor: Actor | None = None,
        context: ClientContext | None = None,
        metadata: dict[str, Any] | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLogModel | None:
        """Append an entry inside a savepoint of the caller's transaction.

        Never raises: a failed write is logged and ``None`` is returned so
        the primary operation still completes. If the caller's transaction
        later rolls back, the entry goes with it.
        """
        context = context or ClientContext()
        try:
            entry = AuditLogModel(
                action=AuditAction(action).value,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=actor.user_id if actor else None,
                organization_id=organization_id,
                ip_address=context.ip_address or "Unknown",
                user_agent=context.user_agent or "Unknown",
                metadata_=_json_safe(metadata or {}),
                old_values=old_values,
                new_values=new_values,
            )
            async with session.begin_nested():
                await self._persist(session, entry)
        except Exception:
            logger.exception(
                "Failed to record audit entry",
                extra={
                    "action": str(action),
                    "entity_id": entity_id,
                    "organization_id": organization_id,
                },
            )
            return None
        return entry

    async def _persist(self, session: AsyncSession, entry: AuditLogModel) -> None:
        session.add(entry)
        await session.flush()

    # ── Read ──

    async def query_logs(
        self, session: AsyncSession, filters: AuditLogQuery, actor: Actor,
    ) -> AuditPage:
        """Filtered, paginated entries, newest first.

        Non-super-admins always see their own organization only, whatever
        organization filter they pass.
        """
        require_role(actor, *AUDIT_READER_ROLES)
        limit = min(filters.limit, self.settings.max_page_size)
        page = filters.page

        conditions = []
        organization_id = scoped_organization(actor, filters.organization_id)
        if organization_id is not None:
            conditions.append(AuditLogModel.organization_id == organization_id)
        if filters.action:
            conditions.append(AuditLogModel.action == filters.action)
        if filters.user_id:
            conditions.append(AuditLogModel.user_id == filters.user_id)
        if filters.entity_type:
            conditions.append(AuditLogModel.entity_type == filters.entity_type)
        if filters.entity_id:
            conditions.append(AuditLogModel.entity_id == filters.entity_id)
        if filters.start_date is not None:
            conditions.append(AuditLogModel.created_at >= _as_utc(filters.start_date))
        if filters.end_date is not None:
            conditions.append(AuditLogModel.created_at <= _as_utc(filters.end_date))

        total = (await session.execute(
            select(func.count(AuditLogModel.id)).where(*conditions)
        )).scalar_one()

        result = await session.execute(
            select(AuditLogModel)
            .where(*conditions)
            .order_by(AuditLogModel.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return AuditPage(
            items=list(result.scalars().all()),
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if total else 0,
        )

    async def get_entry(
        self, session: AsyncSession, entry_id: str, actor: Actor,
    ) -> AuditLogModel:
        require_role(actor, *AUDIT_READER_ROLES)
        entry = await session.get(AuditLogModel, entry_id)
        if entry is None:
            raise NotFoundError(f"Audit log {entry_id} not found")
        authorize(actor, entry.organization_id)
        return entry

    async def list_for_entity(
        self, session: AsyncSession, entity_type: str, entity_id: str, actor: Actor,
    ) -> list[AuditLogModel]:
        """Full history of one entity, newest first."""
        require_role(actor, *AUDIT_READER_ROLES)
        query = select(AuditLogModel).where(
            AuditLogModel.entity_type == entity_type,
            AuditLogModel.entity_id == entity_id,
        )
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(AuditLogModel.organization_id == organization_id)
        result = await session.execute(
            query.order_by(AuditLogModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def recent_activity(
        self, session: AsyncSession, actor: Actor, limit: int = 10,
    ) -> list[AuditLogModel]:
        require_role(actor, *AUDIT_READER_ROLES)
        query = select(AuditLogModel)
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(AuditLogModel.organization_id == organization_id)
        result = await session.execute(
            query.order_by(AuditLogModel.created_at.desc())
            .limit(min(limit, self.settings.max_page_size))
        )
        return list(result.scalars().all())

    async def activity_summary(
        self,
        session: AsyncSession,
        actor: Actor,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Entry counts per action, most frequent first."""
        require_role(actor, *AUDIT_READER_ROLES)
        count = func.count(AuditLogModel.id).label("count")
        query = select(AuditLogModel.action, count)
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(AuditLogModel.organization_id == organization_id)
        if start_date is not None:
            query = query.where(AuditLogModel.created_at >= _as_utc(start_date))
        if end_date is not None:
            query = query.where(AuditLogModel.created_at <= _as_utc(end_date))
        result = await session.execute(
            query.group_by(AuditLogModel.action).order_by(count.desc())
        )
        return [{"action": action, "count": n} for action, n in result.all()]

    # ── Retention ──

    async def purge_older_than(
        self, session: AsyncSession, days: int | None = None,
    ) -> int:
        """Delete entries older than the retention horizon. Returns rows removed."""
        days = self.settings.audit_retention_days if days is None else days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        result = await session.execute(
            delete(AuditLogModel)
            .where(AuditLogModel.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount or 0
        logger.info("Purged %d audit entries older than %d days", removed, days)
        return removed
