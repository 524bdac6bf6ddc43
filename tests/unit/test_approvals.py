"""Tests for the approval workflow engine."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from compliance_engine.approvals.models import ApprovalStepModel, ApprovalWorkflowModel
from compliance_engine.audit.models import AuditLogModel
from compliance_engine.common.exceptions import (
    AccessDeniedError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from compliance_engine.common.tenancy import Actor
from compliance_engine.posts.models import PostModel


async def _draft(db, post_svc, tenant):
    async with db.get_session() as session:
        return await post_svc.create_post(session, "Holiday promo", "Body", tenant.creator)


async def _submit(db, approval_svc, post, actor, approvers):
    async with db.get_session() as session:
        return await approval_svc.create_workflow(
            session, post.id, [a.user_id for a in approvers], actor,
        )


async def _post_status(db, post_id) -> str:
    async with db.get_session() as session:
        return (await session.get(PostModel, post_id)).status


class TestCreateWorkflow:
    async def test_round_trip(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator,
            [tenant.approver_a, tenant.approver_b],
        )
        assert view.workflow.status == "in_progress"
        assert view.workflow.current_step == 0
        assert view.workflow.total_steps == 2
        assert view.workflow.started_at is not None
        assert [s.step_number for s in view.steps] == [1, 2]
        assert [s.status for s in view.steps] == ["pending", "pending"]
        assert [s.approver.id for s in view.steps] == [
            tenant.approver_a.user_id, tenant.approver_b.user_id,
        ]
        assert view.steps[0].approver.display_name == "Approver_A Acme"
        assert view.post.status == "pending_approval"
        assert await _post_status(db, post.id) == "pending_approval"

    async def test_empty_approvers_rejected(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        async with db.get_session() as session:
            with pytest.raises(ValidationError):
                await approval_svc.create_workflow(session, post.id, [], tenant.creator)

    async def test_missing_post(self, db, approval_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.create_workflow(
                    session, "missing", [tenant.approver_a.user_id], tenant.creator,
                )

    async def test_post_of_other_tenant_not_found(
        self, db, approval_svc, post_svc, tenant, other_tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.create_workflow(
                    session, post.id, [other_tenant.approver_a.user_id], other_tenant.creator,
                )

    async def test_non_draft_post_rejected(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        async with db.get_session() as session:
            await post_svc.update_post(session, post.id, tenant.creator, status="archived")
        async with db.get_session() as session:
            with pytest.raises(InvalidStateError):
                await approval_svc.create_workflow(
                    session, post.id, [tenant.approver_a.user_id], tenant.creator,
                )

    async def test_second_workflow_conflicts(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        # Move the post back to draft so only the uniqueness rule stands in the way.
        async with db.get_session() as session:
            (await session.get(PostModel, post.id)).status = "draft"
        async with db.get_session() as session:
            with pytest.raises(ConflictError):
                await approval_svc.create_workflow(
                    session, post.id, [tenant.approver_b.user_id], tenant.creator,
                )

    async def test_foreign_approver_rejected(
        self, db, approval_svc, post_svc, tenant, other_tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        with pytest.raises(ValidationError):
            await _submit(db, approval_svc, post, tenant.creator, [other_tenant.approver_a])
        assert await _post_status(db, post.id) == "draft"

    async def test_audits_request(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            entry = (await session.execute(
                select(AuditLogModel).where(AuditLogModel.entity_id == view.workflow.id)
            )).scalar_one()
        assert entry.action == "approval_requested"
        assert entry.metadata_["total_steps"] == 1


class TestApprove:
    async def test_two_approver_happy_path(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator,
            [tenant.approver_a, tenant.approver_b],
        )
        wf_id = view.workflow.id

        async with db.get_session() as session:
            view = await approval_svc.approve(session, wf_id, tenant.approver_a, comment="ok")
        assert view.workflow.status == "in_progress"
        assert view.workflow.current_step == 1
        assert view.steps[0].status == "approved"
        assert view.steps[0].comment == "ok"
        assert view.steps[0].completed_at is not None
        assert await _post_status(db, post.id) == "pending_approval"

        async with db.get_session() as session:
            view = await approval_svc.approve(session, wf_id, tenant.approver_b)
        assert view.workflow.status == "approved"
        assert view.workflow.current_step == 2
        assert view.workflow.completed_at is not None
        assert await _post_status(db, post.id) == "approved"

        async with db.get_session() as session:
            published = await post_svc.publish_post(session, post.id, tenant.creator)
        assert published.status == "published"

    async def test_out_of_order_approval_forbidden(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator,
            [tenant.approver_a, tenant.approver_b],
        )
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await approval_svc.approve(session, view.workflow.id, tenant.approver_b)

    async def test_wrong_approver_changes_nothing(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        with pytest.raises(ForbiddenError):
            async with db.get_session() as session:
                await approval_svc.approve(session, view.workflow.id, tenant.manager)
        async with db.get_session() as session:
            wf = await session.get(ApprovalWorkflowModel, view.workflow.id)
            step = (await session.execute(
                select(ApprovalStepModel).where(ApprovalStepModel.workflow_id == wf.id)
            )).scalar_one()
            assert wf.current_step == 0
            assert wf.status == "in_progress"
            assert step.status == "pending"
        assert await _post_status(db, post.id) == "pending_approval"

    async def test_super_admin_cannot_approve_for_others(
        self, db, approval_svc, post_svc, tenant, super_admin,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await approval_svc.approve(session, view.workflow.id, super_admin)

    async def test_other_tenant_forbidden(
        self, db, approval_svc, post_svc, tenant, other_tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            with pytest.raises(AccessDeniedError):
                await approval_svc.approve(session, view.workflow.id, other_tenant.approver_a)

    async def test_missing_workflow(self, db, approval_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.approve(session, "missing", tenant.approver_a)

    async def test_approve_after_completion_is_invalid_state(
        self, db, approval_svc, post_svc, tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            await approval_svc.approve(session, view.workflow.id, tenant.approver_a)
        async with db.get_session() as session:
            with pytest.raises(InvalidStateError):
                await approval_svc.approve(session, view.workflow.id, tenant.approver_a)

    async def test_missing_pending_step_is_invalid_state(
        self, db, approval_svc, post_svc, tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            step = (await session.execute(
                select(ApprovalStepModel).where(
                    ApprovalStepModel.workflow_id == view.workflow.id
                )
            )).scalar_one()
            step.status = "skipped"
        async with db.get_session() as session:
            with pytest.raises(InvalidStateError, match="No pending step found"):
                await approval_svc.approve(session, view.workflow.id, tenant.approver_a)

    async def test_step_accounting(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        approvers = [tenant.approver_a, tenant.approver_b, tenant.manager]
        view = await _submit(db, approval_svc, post, tenant.creator, approvers)
        for expected, approver in enumerate(approvers, start=1):
            async with db.get_session() as session:
                view = await approval_svc.approve(session, view.workflow.id, approver)
            approved = sum(1 for s in view.steps if s.status == "approved")
            assert view.workflow.current_step == approved == expected
        assert view.workflow.current_step == view.workflow.total_steps

    async def test_concurrent_modification_is_invalid_state(
        self, db, approval_svc, post_svc, tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        with pytest.raises(InvalidStateError, match="modified concurrently"):
            async with db.get_session() as session:
                with patch.object(
                    session, "flush", AsyncMock(side_effect=StaleDataError("stale")),
                ):
                    await approval_svc.approve(session, view.workflow.id, tenant.approver_a)
        async with db.get_session() as session:
            wf = await session.get(ApprovalWorkflowModel, view.workflow.id)
            assert wf.current_step == 0

    async def test_version_increments(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator, [tenant.approver_a, tenant.approver_b],
        )
        before = view.workflow.version
        async with db.get_session() as session:
            view = await approval_svc.approve(session, view.workflow.id, tenant.approver_a)
        assert view.workflow.version == before + 1


class TestReject:
    async def test_reject_halts_workflow(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator,
            [tenant.approver_a, tenant.approver_b],
        )
        async with db.get_session() as session:
            view = await approval_svc.reject(
                session, view.workflow.id, tenant.approver_a, comment="off brand",
            )
        assert view.workflow.status == "rejected"
        assert view.workflow.completed_at is not None
        assert [s.status for s in view.steps] == ["rejected", "pending"]
        assert view.steps[0].comment == "off brand"
        assert await _post_status(db, post.id) == "rejected"

        async with db.get_session() as session:
            with pytest.raises(InvalidStateError):
                await approval_svc.approve(session, view.workflow.id, tenant.approver_b)

    async def test_reject_by_wrong_approver(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await approval_svc.reject(session, view.workflow.id, tenant.approver_b)

    async def test_reject_audited(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            await approval_svc.reject(session, view.workflow.id, tenant.approver_a, comment="no")
        async with db.get_session() as session:
            entry = (await session.execute(
                select(AuditLogModel).where(AuditLogModel.action == "approval_rejected")
            )).scalar_one()
        assert entry.metadata_["step_number"] == 1
        assert entry.metadata_["comment"] == "no"
        assert entry.user_id == tenant.approver_a.user_id


class TestCancel:
    async def test_creator_cancels(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(
            db, approval_svc, post, tenant.creator,
            [tenant.approver_a, tenant.approver_b],
        )
        async with db.get_session() as session:
            await approval_svc.approve(session, view.workflow.id, tenant.approver_a)
        async with db.get_session() as session:
            view = await approval_svc.cancel_workflow(
                session, view.workflow.id, tenant.creator, reason="typo",
            )
        assert view.workflow.status == "cancelled"
        assert [s.status for s in view.steps] == ["approved", "skipped"]
        assert await _post_status(db, post.id) == "draft"

    async def test_approver_cannot_cancel(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await approval_svc.cancel_workflow(session, view.workflow.id, tenant.approver_a)

    async def test_cannot_cancel_finished(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            await approval_svc.approve(session, view.workflow.id, tenant.approver_a)
        async with db.get_session() as session:
            with pytest.raises(InvalidStateError):
                await approval_svc.cancel_workflow(session, view.workflow.id, tenant.admin)

    async def test_resubmit_after_cancel(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            await approval_svc.cancel_workflow(session, view.workflow.id, tenant.admin)
        new_view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_b])
        assert new_view.workflow.id != view.workflow.id
        async with db.get_session() as session:
            count = (await session.execute(
                select(func.count(ApprovalWorkflowModel.id))
            )).scalar_one()
        assert count == 1


class TestReadPaths:
    async def test_get_view_other_tenant_forbidden(
        self, db, approval_svc, post_svc, tenant, other_tenant,
    ):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await approval_svc.get_view(session, view.workflow.id, other_tenant.admin)

    async def test_get_view_missing(self, db, approval_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.get_view(session, "missing", tenant.admin)

    async def test_list_workflows_scoped(
        self, db, approval_svc, post_svc, tenant, other_tenant, super_admin,
    ):
        mine = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_a],
        )
        theirs = await _submit(
            db, approval_svc, await _draft(db, post_svc, other_tenant),
            other_tenant.creator, [other_tenant.approver_a],
        )
        async with db.get_session() as session:
            own = await approval_svc.list_workflows(
                session, tenant.viewer, organization_id=other_tenant.organization_id,
            )
            everything = await approval_svc.list_workflows(session, super_admin)
            narrowed = await approval_svc.list_workflows(
                session, super_admin, organization_id=other_tenant.organization_id,
            )
        assert [v.workflow.id for v in own] == [mine.workflow.id]
        assert [v.workflow.id for v in everything] == [theirs.workflow.id, mine.workflow.id]
        assert [v.workflow.id for v in narrowed] == [theirs.workflow.id]

    async def test_list_workflows_by_status(self, db, approval_svc, post_svc, tenant):
        first = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_a],
        )
        second = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_a],
        )
        async with db.get_session() as session:
            await approval_svc.approve(session, first.workflow.id, tenant.approver_a)
        async with db.get_session() as session:
            open_ = await approval_svc.list_workflows(session, tenant.admin, status="in_progress")
        assert [v.workflow.id for v in open_] == [second.workflow.id]

    async def test_list_for_approver(self, db, approval_svc, post_svc, tenant):
        one = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_a, tenant.approver_b],
        )
        two = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_b],
        )
        async with db.get_session() as session:
            await approval_svc.approve(session, two.workflow.id, tenant.approver_b)
        async with db.get_session() as session:
            all_b = await approval_svc.list_for_approver(session, tenant.approver_b)
            pending_b = await approval_svc.list_for_approver(
                session, tenant.approver_b, status="pending",
            )
            only_a = await approval_svc.list_for_approver(session, tenant.approver_a)
        assert [v.workflow.id for v in all_b] == [two.workflow.id, one.workflow.id]
        assert [v.workflow.id for v in pending_b] == [one.workflow.id]
        assert [v.workflow.id for v in only_a] == [one.workflow.id]
        assert len(only_a[0].steps) == 2

    async def test_system_actor_has_no_approver_queue(self, db, approval_svc, post_svc, tenant):
        view = await _submit(
            db, approval_svc, await _draft(db, post_svc, tenant),
            tenant.creator, [tenant.approver_a],
        )
        # Steps whose approver row is gone carry a null approver_id.
        async with db.get_session() as session:
            step = await session.get(ApprovalStepModel, view.steps[0].id)
            step.approver_id = None
        async with db.get_session() as session:
            assert await approval_svc.list_for_approver(session, Actor.system()) == []


class TestDeletedPost:
    async def _deleted(self, db, approval_svc, post_svc, tenant):
        post = await _draft(db, post_svc, tenant)
        view = await _submit(db, approval_svc, post, tenant.creator, [tenant.approver_a])
        async with db.get_session() as session:
            await post_svc.delete_post(session, post.id, tenant.creator)
        return post, view.workflow.id

    async def test_view_not_found(self, db, approval_svc, post_svc, tenant):
        _, workflow_id = await self._deleted(db, approval_svc, post_svc, tenant)
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.get_view(session, workflow_id, tenant.admin)

    async def test_approve_does_not_touch_post(self, db, approval_svc, post_svc, tenant):
        post, workflow_id = await self._deleted(db, approval_svc, post_svc, tenant)
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await approval_svc.approve(session, workflow_id, tenant.approver_a)
        assert await _post_status(db, post.id) == "pending_approval"

    async def test_hidden_from_listings(self, db, approval_svc, post_svc, tenant):
        await self._deleted(db, approval_svc, post_svc, tenant)
        async with db.get_session() as session:
            assert await approval_svc.list_workflows(session, tenant.admin) == []
            assert await approval_svc.list_for_approver(session, tenant.approver_a) == []
