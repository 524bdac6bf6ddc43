"""User API router."""

from fastapi import APIRouter, Depends, Query

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import client_context, resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor, ClientContext
from compliance_engine.users.models import UserModel
from compliance_engine.users.schemas import UserCreate, UserResponse, UserUpdate

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_user_service
    return get_user_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _to_response(u: UserModel) -> UserResponse:
    return UserResponse(
        id=u.id,
        email=u.email,
        first_name=u.first_name,
        last_name=u.last_name,
        display_name=u.display_name,
        role=u.role,
        avatar_url=u.avatar_url,
        is_active=u.is_active,
        is_email_verified=u.is_email_verified,
        last_login_at=u.last_login_at,
        organization_id=u.organization_id,
        created_at=u.created_at,
    )


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            user = await svc.create_user(
                session, body.email, body.password, body.first_name, actor, context,
                last_name=body.last_name,
                role=body.role,
                organization_id=body.organization_id,
                avatar_url=body.avatar_url,
            )
            return _to_response(user)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    organization_id: str | None = Query(None),
    role: str | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            users = await svc.list_users(
                session, actor, organization_id=organization_id, role=role,
            )
            return [_to_response(u) for u in users]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            user = await svc.get_user(session, user_id, actor)
            return _to_response(user)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UserUpdate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            user = await svc.update_user(
                session, user_id, actor, context, **body.model_dump(exclude_none=True)
            )
            return _to_response(user)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.delete_user(session, user_id, actor, context)
    except ComplianceError as e:
        raise to_http_exception(e)
