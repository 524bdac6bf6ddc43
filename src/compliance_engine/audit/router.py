"""Audit log API router."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from compliance_engine.audit.models import AuditLogModel
from compliance_engine.audit.schemas import (
    ActivitySummaryItem,
    AuditLogPage,
    AuditLogQuery,
    AuditLogResponse,
)
from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_audit_service
    return get_audit_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _to_response(e: AuditLogModel) -> AuditLogResponse:
    return AuditLogResponse(
        id=e.id,
        action=e.action,
        entity_type=e.entity_type,
        entity_id=e.entity_id,
        user_id=e.user_id,
        organization_id=e.organization_id,
        ip_address=e.ip_address,
        user_agent=e.user_agent,
        metadata=e.metadata_ or {},
        old_values=e.old_values,
        new_values=e.new_values,
        created_at=e.created_at,
    )


@router.get("/audit-logs", response_model=AuditLogPage)
async def query_audit_logs(
    action: str | None = Query(None),
    user_id: str | None = Query(None),
    organization_id: str | None = Query(None),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    filters = AuditLogQuery(
        action=action, user_id=user_id, organization_id=organization_id,
        entity_type=entity_type, entity_id=entity_id,
        start_date=start_date, end_date=end_date, page=page, limit=limit,
    )
    try:
        async with db.get_session() as session:
            result = await svc.query_logs(session, filters, actor)
            return AuditLogPage(
                items=[_to_response(e) for e in result.items],
                total=result.total,
                page=result.page,
                limit=result.limit,
                pages=result.pages,
            )
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/audit-logs/recent", response_model=list[AuditLogResponse])
async def recent_activity(
    limit: int = Query(10, ge=1),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            entries = await svc.recent_activity(session, actor, limit=limit)
            return [_to_response(e) for e in entries]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/audit-logs/summary", response_model=list[ActivitySummaryItem])
async def activity_summary(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            rows = await svc.activity_summary(
                session, actor, start_date=start_date, end_date=end_date,
            )
            return [ActivitySummaryItem(**row) for row in rows]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get(
    "/audit-logs/entity/{entity_type}/{entity_id}",
    response_model=list[AuditLogResponse],
)
async def entity_history(
    entity_type: str, entity_id: str, actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            entries = await svc.list_for_entity(session, entity_type, entity_id, actor)
            return [_to_response(e) for e in entries]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/audit-logs/{entry_id}", response_model=AuditLogResponse)
async def get_audit_entry(entry_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            entry = await svc.get_entry(session, entry_id, actor)
            return _to_response(entry)
    except ComplianceError as e:
        raise to_http_exception(e)
