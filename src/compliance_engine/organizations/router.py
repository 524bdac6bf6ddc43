"""Organization API router."""

from fastapi import APIRouter, Depends, Query

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import client_context, resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor, ClientContext
from compliance_engine.organizations.schemas import (
    OrganizationCreate,
    OrganizationResponse,
    OrganizationSettingsUpdate,
    OrganizationStatistics,
    OrganizationUpdate,
)

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_organization_service
    return get_organization_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


@router.post("/organizations", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    body: OrganizationCreate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            org = await svc.create_organization(
                session, body.name, body.slug, actor, context,
                description=body.description,
                logo_url=body.logo_url,
                website=body.website,
                settings=body.settings,
            )
            return OrganizationResponse.model_validate(org)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/organizations", response_model=list[OrganizationResponse])
async def list_organizations(
    include_inactive: bool = Query(False),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        orgs = await svc.list_organizations(session, actor, include_inactive=include_inactive)
        return [OrganizationResponse.model_validate(o) for o in orgs]


@router.get("/organizations/{organization_id}", response_model=OrganizationResponse)
async def get_organization(organization_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            org = await svc.get_organization(session, organization_id, actor)
            return OrganizationResponse.model_validate(org)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.patch("/organizations/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    body: OrganizationUpdate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            org = await svc.update_organization(
                session, organization_id, actor, context,
                **body.model_dump(exclude_none=True),
            )
            return OrganizationResponse.model_validate(org)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.patch("/organizations/{organization_id}/settings", response_model=OrganizationResponse)
async def update_organization_settings(
    organization_id: str,
    body: OrganizationSettingsUpdate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            org = await svc.update_settings(
                session, organization_id, body.settings, actor, context,
            )
            return OrganizationResponse.model_validate(org)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/organizations/{organization_id}/statistics", response_model=OrganizationStatistics)
async def get_organization_statistics(
    organization_id: str, actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            stats = await svc.statistics(session, organization_id, actor)
            return OrganizationStatistics(**stats)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.delete("/organizations/{organization_id}", status_code=204)
async def delete_organization(
    organization_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.delete_organization(session, organization_id, actor, context)
    except ComplianceError as e:
        raise to_http_exception(e)
