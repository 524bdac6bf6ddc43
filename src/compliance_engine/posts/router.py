"""Post API router."""

from fastapi import APIRouter, Depends, Query

from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import client_context, resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor, ClientContext
from compliance_engine.posts.models import PostModel
from compliance_engine.posts.schemas import PostCreate, PostResponse, PostUpdate

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_post_service
    return get_post_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _to_response(p: PostModel) -> PostResponse:
    return PostResponse(
        id=p.id,
        title=p.title,
        content=p.content,
        platform=p.platform,
        status=p.status,
        scheduled_at=p.scheduled_at,
        published_at=p.published_at,
        metadata=p.metadata_ or {},
        organization_id=p.organization_id,
        created_by_id=p.created_by_id,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


@router.post("/posts", response_model=PostResponse, status_code=201)
async def create_post(
    body: PostCreate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            post = await svc.create_post(
                session, body.title, body.content, actor, context,
                platform=body.platform,
                scheduled_at=body.scheduled_at,
                metadata=body.metadata,
            )
            return _to_response(post)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/posts", response_model=list[PostResponse])
async def list_posts(
    status: str | None = Query(None),
    created_by: str | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            posts = await svc.list_posts(session, actor, status=status, created_by=created_by)
            return [_to_response(p) for p in posts]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/posts/{post_id}", response_model=PostResponse)
async def get_post(post_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            post = await svc.get_post(session, post_id, actor)
            return _to_response(post)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.patch("/posts/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    body: PostUpdate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            post = await svc.update_post(
                session, post_id, actor, context, **body.model_dump(exclude_none=True)
            )
            return _to_response(post)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.delete_post(session, post_id, actor, context)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/posts/{post_id}/publish", response_model=PostResponse)
async def publish_post(
    post_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            post = await svc.publish_post(session, post_id, actor, context)
            return _to_response(post)
    except ComplianceError as e:
        raise to_http_exception(e)
