"""Approval workflow engine: sequential multi-approver state machine.

A workflow holds an ordered chain of steps, one approver each. Approvals
happen strictly in order; the last approval approves the post, and any
rejection terminates the workflow and rejects the post. Workflow, steps
and post status always change together in the caller's transaction.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from compliance_engine.approvals.models import (
    ApprovalStepModel,
    ApprovalWorkflowModel,
    StepStatus,
    WorkflowStatus,
)
from compliance_engine.audit.models import AuditAction
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from compliance_engine.common.models import utcnow
from compliance_engine.common.tenancy import (
    Actor,
    ClientContext,
    UserRole,
    authorize,
    scoped_organization,
)
from compliance_engine.posts.lifecycle import validate_transition
from compliance_engine.posts.models import PostModel, PostStatus
from compliance_engine.users.models import UserModel

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (WorkflowStatus.PENDING.value, WorkflowStatus.IN_PROGRESS.value)


@dataclass
class ApproverSummary:
    id: str
    display_name: str
    email: str


@dataclass
class PostSummary:
    id: str
    title: str
    status: str
    platform: str
    organization_id: str


@dataclass
class StepView:
    id: str
    step_number: int
    status: str
    comment: str | None
    completed_at: datetime | None
    approver: ApproverSummary | None


@dataclass
class WorkflowView:
    workflow: ApprovalWorkflowModel
    post: PostSummary
    steps: list[StepView] = field(default_factory=list)


class ApprovalService:
    """Creates workflows and moves them through approve/reject/cancel."""

    def __init__(self, settings: ComplianceSettings, audit_service=None):
        self.settings = settings
        self.audit_service = audit_service

    # ── Create ──

    async def create_workflow(
        self,
        session: AsyncSession,
        post_id: str,
        approver_ids: list[str],
        actor: Actor,
        context: ClientContext | None = None,
    ) -> WorkflowView:
        """Submit a draft post for approval by ``approver_ids``, in order."""
        if not approver_ids:
            raise ValidationError("At least one approver is required")

        post = await self._get_post(session, post_id, actor)
        if post.status != PostStatus.DRAFT.value:
            raise InvalidStateError(
                f"Only draft posts can be submitted for approval (post is {post.status})"
            )

        existing = (await session.execute(
            select(ApprovalWorkflowModel).where(ApprovalWorkflowModel.post_id == post.id)
        )).scalar_one_or_none()
        if existing is not None:
            if existing.status != WorkflowStatus.CANCELLED.value:
                raise ConflictError("Approval workflow already exists for this post")
            # A cancelled workflow is replaced; its history stays in the audit log.
            await session.delete(existing)
            await session.flush()

        await self._check_approvers(session, approver_ids, post.organization_id)

        now = utcnow()
        workflow = ApprovalWorkflowModel(
            post_id=post.id,
            requested_by_id=actor.user_id,
            status=WorkflowStatus.PENDING.value,
            current_step=0,
            total_steps=len(approver_ids),
            started_at=now,
        )
        session.add(workflow)
        try:
            async with session.begin_nested():
                await session.flush()
        except IntegrityError as exc:
            raise ConflictError("Approval workflow already exists for this post") from exc

        for number, approver_id in enumerate(approver_ids, start=1):
            session.add(ApprovalStepModel(
                workflow_id=workflow.id,
                step_number=number,
                approver_id=approver_id,
                status=StepStatus.PENDING.value,
            ))
        post.status = validate_transition(post.status, PostStatus.PENDING_APPROVAL).value
        workflow.status = WorkflowStatus.IN_PROGRESS.value
        await session.flush()

        logger.info(
            "Approval workflow created",
            extra={"entity_id": workflow.id, "organization_id": post.organization_id},
        )
        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.APPROVAL_REQUESTED, "approval_workflow",
                post.organization_id, entity_id=workflow.id, actor=actor, context=context,
                metadata={
                    "post_id": post.id,
                    "approver_ids": list(approver_ids),
                    "total_steps": workflow.total_steps,
                },
            )
        return (await self._build_views(session, [workflow]))[0]

    # ── Transitions ──

    async def approve(
        self,
        session: AsyncSession,
        workflow_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        comment: str | None = None,
    ) -> WorkflowView:
        """Approve the current step; the final approval approves the post."""
        workflow, post = await self._load_for_transition(session, workflow_id, actor)
        step = await self._resolve_current_step(session, workflow, actor)

        now = utcnow()
        step.status = StepStatus.APPROVED.value
        step.comment = comment
        step.completed_at = now
        workflow.current_step += 1
        if workflow.current_step == workflow.total_steps:
            workflow.status = WorkflowStatus.APPROVED.value
            workflow.completed_at = now
            post.status = validate_transition(post.status, PostStatus.APPROVED).value
        await self._flush(session)

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.APPROVAL_APPROVED, "approval_workflow",
                post.organization_id, entity_id=workflow.id, actor=actor, context=context,
                metadata={
                    "post_id": post.id,
                    "step_number": step.step_number,
                    "comment": comment,
                    "workflow_status": workflow.status,
                },
            )
        return (await self._build_views(session, [workflow]))[0]

    async def reject(
        self,
        session: AsyncSession,
        workflow_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        comment: str | None = None,
    ) -> WorkflowView:
        """Reject the current step, terminating the workflow. Later steps stay pending."""
        workflow, post = await self._load_for_transition(session, workflow_id, actor)
        step = await self._resolve_current_step(session, workflow, actor)

        now = utcnow()
        step.status = StepStatus.REJECTED.value
        step.comment = comment
        step.completed_at = now
        workflow.status = WorkflowStatus.REJECTED.value
        workflow.completed_at = now
        post.status = validate_transition(post.status, PostStatus.REJECTED).value
        await self._flush(session)

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.APPROVAL_REJECTED, "approval_workflow",
                post.organization_id, entity_id=workflow.id, actor=actor, context=context,
                metadata={
                    "post_id": post.id,
                    "step_number": step.step_number,
                    "comment": comment,
                },
            )
        return (await self._build_views(session, [workflow]))[0]

    async def cancel_workflow(
        self,
        session: AsyncSession,
        workflow_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        reason: str | None = None,
    ) -> WorkflowView:
        """Withdraw an open workflow and return the post to draft."""
        workflow, post = await self._load_for_transition(session, workflow_id, actor)
        is_requester = actor.user_id is not None and actor.user_id in (
            workflow.requested_by_id, post.created_by_id,
        )
        if not is_requester and actor.role not in (
            UserRole.SUPER_ADMIN, UserRole.ORGANIZATION_ADMIN,
        ):
            raise ForbiddenError("Only the requester or an admin can cancel this workflow")
        if workflow.status not in _OPEN_STATUSES:
            raise InvalidStateError(f"Workflow is already {workflow.status}")

        now = utcnow()
        pending = await session.execute(
            select(ApprovalStepModel).where(
                ApprovalStepModel.workflow_id == workflow.id,
                ApprovalStepModel.status == StepStatus.PENDING.value,
            )
        )
        for step in pending.scalars().all():
            step.status = StepStatus.SKIPPED.value
            step.completed_at = now
        workflow.status = WorkflowStatus.CANCELLED.value
        workflow.completed_at = now
        post.status = validate_transition(post.status, PostStatus.DRAFT).value
        await self._flush(session)

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.APPROVAL_CANCELLED, "approval_workflow",
                post.organization_id, entity_id=workflow.id, actor=actor, context=context,
                metadata={"post_id": post.id, "reason": reason},
            )
        return (await self._build_views(session, [workflow]))[0]

    # ── Read ──

    async def get_view(
        self, session: AsyncSession, workflow_id: str, actor: Actor,
    ) -> WorkflowView:
        workflow = await session.get(ApprovalWorkflowModel, workflow_id)
        if workflow is None:
            raise NotFoundError(f"Approval workflow {workflow_id} not found")
        post = await self._live_post(session, workflow)
        authorize(actor, post.organization_id)
        return (await self._build_views(session, [workflow]))[0]

    async def list_workflows(
        self,
        session: AsyncSession,
        actor: Actor,
        status: str | None = None,
        organization_id: str | None = None,
    ) -> list[WorkflowView]:
        """Workflows in the actor's tenant, newest first.

        ``organization_id`` narrows the listing for super-admins and is
        ignored for everyone else.
        """
        query = select(ApprovalWorkflowModel).join(
            PostModel, PostModel.id == ApprovalWorkflowModel.post_id
        ).where(PostModel.is_deleted == False)
        organization_id = scoped_organization(actor, organization_id)
        if organization_id is not None:
            query = query.where(PostModel.organization_id == organization_id)
        if status:
            query = query.where(ApprovalWorkflowModel.status == status)
        result = await session.execute(
            query.order_by(ApprovalWorkflowModel.created_at.desc())
        )
        return await self._build_views(session, list(result.scalars().all()))

    async def list_for_approver(
        self, session: AsyncSession, actor: Actor, status: str | None = None,
    ) -> list[WorkflowView]:
        """Workflows where the actor holds a step, optionally by that step's status."""
        if actor.user_id is None:
            return []
        step_query = select(ApprovalStepModel.workflow_id).where(
            ApprovalStepModel.approver_id == actor.user_id
        )
        if status:
            step_query = step_query.where(ApprovalStepModel.status == status)
        query = (
            select(ApprovalWorkflowModel)
            .join(PostModel, PostModel.id == ApprovalWorkflowModel.post_id)
            .where(ApprovalWorkflowModel.id.in_(step_query), PostModel.is_deleted == False)
        )
        result = await session.execute(
            query.order_by(ApprovalWorkflowModel.created_at.desc())
        )
        return await self._build_views(session, list(result.scalars().all()))

    # ── Internal helpers ──

    async def _get_post(
        self, session: AsyncSession, post_id: str, actor: Actor,
    ) -> PostModel:
        query = select(PostModel).where(
            PostModel.id == post_id,
            PostModel.is_deleted == False,
        )
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(PostModel.organization_id == organization_id)
        post = (await session.execute(query)).scalar_one_or_none()
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        return post

    async def _live_post(
        self, session: AsyncSession, workflow: ApprovalWorkflowModel,
    ) -> PostModel:
        post = await session.get(PostModel, workflow.post_id)
        if post is None or post.is_deleted:
            raise NotFoundError(f"Approval workflow {workflow.id} not found")
        return post

    async def _check_approvers(
        self, session: AsyncSession, approver_ids: list[str], organization_id: str,
    ) -> None:
        result = await session.execute(
            select(UserModel.id).where(
                UserModel.id.in_(set(approver_ids)),
                UserModel.organization_id == organization_id,
                UserModel.is_deleted == False,
                UserModel.is_active == True,
            )
        )
        found = set(result.scalars().all())
        missing = [a for a in approver_ids if a not in found]
        if missing:
            raise ValidationError(
                "Approvers must be active users of the post's organization: "
                + ", ".join(missing)
            )

    async def _load_for_transition(
        self, session: AsyncSession, workflow_id: str, actor: Actor,
    ) -> tuple[ApprovalWorkflowModel, PostModel]:
        result = await session.execute(
            select(ApprovalWorkflowModel)
            .where(ApprovalWorkflowModel.id == workflow_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            raise NotFoundError(f"Approval workflow {workflow_id} not found")
        post = await self._live_post(session, workflow)
        authorize(actor, post.organization_id)
        return workflow, post

    async def _resolve_current_step(
        self, session: AsyncSession, workflow: ApprovalWorkflowModel, actor: Actor,
    ) -> ApprovalStepModel:
        if workflow.status != WorkflowStatus.IN_PROGRESS.value:
            raise InvalidStateError(f"Workflow is {workflow.status}, not in progress")
        result = await session.execute(
            select(ApprovalStepModel).where(
                ApprovalStepModel.workflow_id == workflow.id,
                ApprovalStepModel.step_number == workflow.current_step + 1,
                ApprovalStepModel.status == StepStatus.PENDING.value,
            )
        )
        step = result.scalar_one_or_none()
        if step is None:
            raise InvalidStateError("No pending step found")
        if step.approver_id is None or step.approver_id != actor.user_id:
            raise ForbiddenError("You are not the approver for the current step")
        return step

    async def _flush(self, session: AsyncSession) -> None:
        try:
            await session.flush()
        except StaleDataError as exc:
            logger.warning("Concurrent workflow modification detected")
            raise InvalidStateError("Workflow was modified concurrently") from exc

    async def _build_views(
        self, session: AsyncSession, workflows: list[ApprovalWorkflowModel],
    ) -> list[WorkflowView]:
        """Resolve posts, steps and approvers for ``workflows`` with one query each."""
        if not workflows:
            return []
        posts = {
            p.id: p for p in (await session.execute(
                select(PostModel).where(PostModel.id.in_({w.post_id for w in workflows}))
            )).scalars().all()
        }
        steps_by_workflow: dict[str, list[ApprovalStepModel]] = defaultdict(list)
        step_rows = (await session.execute(
            select(ApprovalStepModel)
            .where(ApprovalStepModel.workflow_id.in_([w.id for w in workflows]))
            .order_by(ApprovalStepModel.step_number)
        )).scalars().all()
        for step in step_rows:
            steps_by_workflow[step.workflow_id].append(step)

        approver_ids = {s.approver_id for s in step_rows if s.approver_id}
        approvers = {}
        if approver_ids:
            approvers = {
                u.id: u for u in (await session.execute(
                    select(UserModel).where(UserModel.id.in_(approver_ids))
                )).scalars().all()
            }

        views = []
        for workflow in workflows:
            post = posts[workflow.post_id]
            steps = []
            for step in steps_by_workflow[workflow.id]:
                user = approvers.get(step.approver_id) if step.approver_id else None
                steps.append(StepView(
                    id=step.id,
                    step_number=step.step_number,
                    status=step.status,
                    comment=step.comment,
                    completed_at=step.completed_at,
                    approver=ApproverSummary(
                        id=user.id, display_name=user.display_name, email=user.email,
                    ) if user else None,
                ))
            views.append(WorkflowView(
                workflow=workflow,
                post=PostSummary(
                    id=post.id,
                    title=post.title,
                    status=post.status,
                    platform=post.platform,
                    organization_id=post.organization_id,
                ),
                steps=steps,
            ))
        return views
