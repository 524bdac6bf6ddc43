"""Post service: CRUD, status transitions and publishing."""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.approvals.models import ApprovalWorkflowModel, WorkflowStatus
from compliance_engine.audit.models import AuditAction
from compliance_engine.audit.service import snapshot
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from compliance_engine.common.models import utcnow
from compliance_engine.common.tenancy import Actor, ClientContext, scoped_organization
from compliance_engine.posts.lifecycle import validate_transition
from compliance_engine.posts.models import PostModel, PostPlatform, PostStatus

_UPDATABLE_FIELDS = {"title", "content", "platform", "scheduled_at", "metadata"}
_REVIEW_STATUSES = frozenset({
    PostStatus.PENDING_APPROVAL, PostStatus.APPROVED, PostStatus.REJECTED,
})
_OPEN_WORKFLOW = (WorkflowStatus.PENDING.value, WorkflowStatus.IN_PROGRESS.value)


def _parse_platform(platform: PostPlatform | str) -> PostPlatform:
    try:
        return PostPlatform(platform)
    except ValueError:
        raise ValidationError(f"Unknown platform '{platform}'")


class PostService:
    """Posts belong to their creator's organization; only the creator edits them."""

    def __init__(self, settings: ComplianceSettings, audit_service=None):
        self.settings = settings
        self.audit_service = audit_service

    # ── Write ──

    async def create_post(
        self,
        session: AsyncSession,
        title: str,
        content: str,
        actor: Actor,
        context: ClientContext | None = None,
        platform: PostPlatform | str = PostPlatform.OTHER,
        scheduled_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PostModel:
        if actor.user_id is None or actor.organization_id is None:
            raise ForbiddenError("Posts must be created by a user of an organization")
        post = PostModel(
            title=title,
            content=content,
            platform=_parse_platform(platform).value,
            status=PostStatus.DRAFT.value,
            scheduled_at=scheduled_at,
            metadata_=metadata or {},
            organization_id=actor.organization_id,
            created_by_id=actor.user_id,
        )
        session.add(post)
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.POST_CREATED, "post", post.organization_id,
                entity_id=post.id, actor=actor, context=context,
                new_values=snapshot(post),
            )
        return post

    async def update_post(
        self,
        session: AsyncSession,
        post_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        **fields: Any,
    ) -> PostModel:
        """Edit a post. A ``status`` field is checked against the transition table first.

        Review statuses belong to the approval workflow, and a post with an
        open workflow keeps its status until that workflow is cancelled.
        """
        post = await self.get_post(session, post_id, actor)
        if post.created_by_id != actor.user_id:
            raise ForbiddenError("Only the creator can update this post")

        new_status = None
        if fields.get("status") is not None:
            new_status = validate_transition(post.status, fields["status"])
            await self._check_status_change(session, post, new_status)
        if fields.get("platform") is not None:
            fields["platform"] = _parse_platform(fields["platform"]).value

        old_values = snapshot(post)
        for key, value in fields.items():
            if key not in _UPDATABLE_FIELDS or value is None:
                continue
            setattr(post, "metadata_" if key == "metadata" else key, value)
        if new_status is not None:
            post.status = new_status.value
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.POST_UPDATED, "post", post.organization_id,
                entity_id=post.id, actor=actor, context=context,
                old_values=old_values, new_values=snapshot(post),
            )
            if new_status == PostStatus.ARCHIVED:
                await self.audit_service.record(
                    session, AuditAction.POST_ARCHIVED, "post", post.organization_id,
                    entity_id=post.id, actor=actor, context=context,
                )
        return post

    async def delete_post(
        self,
        session: AsyncSession,
        post_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> None:
        post = await self.get_post(session, post_id, actor)
        if post.created_by_id != actor.user_id:
            raise ForbiddenError("Only the creator can delete this post")

        old_values = snapshot(post)
        post.soft_delete()
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.POST_DELETED, "post", post.organization_id,
                entity_id=post.id, actor=actor, context=context,
                old_values=old_values,
            )

    async def publish_post(
        self,
        session: AsyncSession,
        post_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> PostModel:
        post = await self.get_post(session, post_id, actor)
        if post.status != PostStatus.APPROVED.value:
            raise InvalidStateError("Only approved posts can be published")

        post.status = validate_transition(post.status, PostStatus.PUBLISHED).value
        post.published_at = utcnow()
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.POST_PUBLISHED, "post", post.organization_id,
                entity_id=post.id, actor=actor, context=context,
                metadata={"platform": post.platform},
            )
        return post

    # ── Read ──

    async def get_post(
        self, session: AsyncSession, post_id: str, actor: Actor,
    ) -> PostModel:
        query = select(PostModel).where(
            PostModel.id == post_id,
            PostModel.is_deleted == False,
        )
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(PostModel.organization_id == organization_id)
        result = await session.execute(query)
        post = result.scalar_one_or_none()
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        return post

    async def list_posts(
        self,
        session: AsyncSession,
        actor: Actor,
        status: str | None = None,
        created_by: str | None = None,
    ) -> list[PostModel]:
        """Posts visible to the actor, newest first."""
        query = select(PostModel).where(PostModel.is_deleted == False)
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(PostModel.organization_id == organization_id)
        if status:
            query = query.where(PostModel.status == status)
        if created_by:
            query = query.where(PostModel.created_by_id == created_by)
        result = await session.execute(query.order_by(PostModel.created_at.desc()))
        return list(result.scalars().all())

    # ── Internal helpers ──

    async def _check_status_change(
        self, session: AsyncSession, post: PostModel, new_status: PostStatus,
    ) -> None:
        if new_status in _REVIEW_STATUSES:
            raise InvalidStateError(
                f"Status '{new_status.value}' is set by the approval workflow"
            )
        open_workflow = (await session.execute(
            select(ApprovalWorkflowModel.id).where(
                ApprovalWorkflowModel.post_id == post.id,
                ApprovalWorkflowModel.status.in_(_OPEN_WORKFLOW),
            )
        )).scalar_one_or_none()
        if open_workflow is not None:
            raise InvalidStateError(
                "Post is under review; cancel its approval workflow to change status"
            )
