"""Approval workflow API router."""

from fastapi import APIRouter, Depends, Query

from compliance_engine.approvals.schemas import (
    ApproverResponse,
    PostReference,
    StepDecision,
    StepResponse,
    WorkflowCancel,
    WorkflowCreate,
    WorkflowResponse,
)
from compliance_engine.approvals.service import WorkflowView
from compliance_engine.common.exceptions import ComplianceError
from compliance_engine.common.security import client_context, resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor, ClientContext

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_approval_service
    return get_approval_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _to_response(view: WorkflowView) -> WorkflowResponse:
    wf = view.workflow
    return WorkflowResponse(
        id=wf.id,
        post_id=wf.post_id,
        status=wf.status,
        current_step=wf.current_step,
        total_steps=wf.total_steps,
        started_at=wf.started_at,
        completed_at=wf.completed_at,
        created_at=wf.created_at,
        post=PostReference(
            id=view.post.id,
            title=view.post.title,
            status=view.post.status,
            platform=view.post.platform,
            organization_id=view.post.organization_id,
        ),
        steps=[
            StepResponse(
                id=s.id,
                step_number=s.step_number,
                status=s.status,
                comment=s.comment,
                completed_at=s.completed_at,
                approver=ApproverResponse(
                    id=s.approver.id,
                    display_name=s.approver.display_name,
                    email=s.approver.email,
                ) if s.approver else None,
            )
            for s in view.steps
        ],
    )


@router.post("/approvals/workflows", response_model=WorkflowResponse, status_code=201)
async def create_workflow(
    body: WorkflowCreate,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            view = await svc.create_workflow(
                session, body.post_id, body.approver_ids, actor, context,
            )
            return _to_response(view)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/approvals/workflows", response_model=list[WorkflowResponse])
async def list_workflows(
    status: str | None = Query(None),
    organization_id: str | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            views = await svc.list_workflows(
                session, actor, status=status, organization_id=organization_id,
            )
            return [_to_response(v) for v in views]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/approvals/my-approvals", response_model=list[WorkflowResponse])
async def list_my_approvals(
    status: str | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            views = await svc.list_for_approver(session, actor, status=status)
            return [_to_response(v) for v in views]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/approvals/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(workflow_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            view = await svc.get_view(session, workflow_id, actor)
            return _to_response(view)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/approvals/{workflow_id}/approve", response_model=WorkflowResponse)
async def approve_step(
    workflow_id: str,
    body: StepDecision | None = None,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            view = await svc.approve(
                session, workflow_id, actor, context,
                comment=body.comment if body else None,
            )
            return _to_response(view)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/approvals/{workflow_id}/reject", response_model=WorkflowResponse)
async def reject_step(
    workflow_id: str,
    body: StepDecision | None = None,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            view = await svc.reject(
                session, workflow_id, actor, context,
                comment=body.comment if body else None,
            )
            return _to_response(view)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/approvals/{workflow_id}/cancel", response_model=WorkflowResponse)
async def cancel_workflow(
    workflow_id: str,
    body: WorkflowCancel | None = None,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            view = await svc.cancel_workflow(
                session, workflow_id, actor, context,
                reason=body.reason if body else None,
            )
            return _to_response(view)
    except ComplianceError as e:
        raise to_http_exception(e)
