"""Tests for the user directory and credential checks."""

import pytest
from sqlalchemy import select

from compliance_engine.audit.models import AuditLogModel
from compliance_engine.common.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from compliance_engine.common.tenancy import UserRole
from compliance_engine.users.models import UserModel
from tests.conftest import PASSWORD


async def _actions(db, entity_id) -> list[str]:
    async with db.get_session() as session:
        result = await session.execute(
            select(AuditLogModel.action).where(AuditLogModel.entity_id == entity_id)
        )
        return list(result.scalars().all())


class TestPasswords:
    def test_hash_and_verify(self, user_svc):
        hashed = user_svc.hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert user_svc.verify_password(PASSWORD, hashed)
        assert not user_svc.verify_password("wrong-password", hashed)

    @pytest.mark.parametrize("password", ["short", "x" * 73])
    def test_length_bounds(self, user_svc, password):
        with pytest.raises(ValidationError):
            user_svc.hash_password(password)


class TestCreate:
    async def test_admin_creates_in_own_org(self, db, user_svc, tenant):
        async with db.get_session() as session:
            user = await user_svc.create_user(
                session, "  New.Person@Acme.Example.com ", PASSWORD, "New", tenant.admin,
                last_name="Person", role="viewer",
            )
        assert user.email == "new.person@acme.example.com"
        assert user.organization_id == tenant.organization_id
        assert user.role == "viewer"
        assert user.display_name == "New Person"

    async def test_create_audit_omits_password_hash(self, db, user_svc, tenant):
        async with db.get_session() as session:
            user = await user_svc.create_user(
                session, "audit@acme.example.com", PASSWORD, "A", tenant.admin,
            )
        async with db.get_session() as session:
            entry = (await session.execute(
                select(AuditLogModel).where(AuditLogModel.entity_id == user.id)
            )).scalar_one()
        assert "password_hash" not in entry.new_values

    async def test_duplicate_email_conflicts(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ConflictError):
                await user_svc.create_user(
                    session, "CREATOR@acme.example.com", PASSWORD, "Dup", tenant.admin,
                )

    async def test_manager_cannot_create(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_svc.create_user(
                    session, "x@acme.example.com", PASSWORD, "X", tenant.manager,
                )

    async def test_org_admin_cannot_create_super_admin(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_svc.create_user(
                    session, "root@acme.example.com", PASSWORD, "Root", tenant.admin,
                    role=UserRole.SUPER_ADMIN,
                )

    async def test_org_admin_cannot_target_other_org(self, db, user_svc, tenant, other_tenant):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_svc.create_user(
                    session, "spy@globex.example.com", PASSWORD, "Spy", tenant.admin,
                    organization_id=other_tenant.organization_id,
                )

    async def test_unknown_organization(self, db, user_svc, super_admin):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await user_svc.create_user(
                    session, "a@b.example.com", PASSWORD, "A", super_admin,
                    organization_id="missing",
                )

    async def test_unknown_role(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ValidationError):
                await user_svc.create_user(
                    session, "a@acme.example.com", PASSWORD, "A", tenant.admin, role="owner",
                )


class TestUpdateAndDelete:
    async def test_role_change_emits_dedicated_event(self, db, user_svc, tenant):
        async with db.get_session() as session:
            user = await user_svc.update_user(
                session, tenant.viewer.user_id, tenant.admin, role="manager",
            )
        assert user.role == "manager"
        actions = await _actions(db, tenant.viewer.user_id)
        assert "user_updated" in actions
        assert "user_role_changed" in actions

    async def test_password_change(self, db, user_svc, tenant):
        async with db.get_session() as session:
            await user_svc.update_user(
                session, tenant.viewer.user_id, tenant.admin, password="new-password-1",
            )
        async with db.get_session() as session:
            user = await user_svc.authenticate(session, "viewer@acme.example.com", "new-password-1")
        assert user is not None

    async def test_cannot_grant_super_admin(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_svc.update_user(
                    session, tenant.viewer.user_id, tenant.admin, role="super_admin",
                )

    async def test_cannot_delete_self(self, db, user_svc, tenant):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_svc.delete_user(session, tenant.admin.user_id, tenant.admin)

    async def test_delete_deactivates(self, db, user_svc, tenant):
        async with db.get_session() as session:
            await user_svc.delete_user(session, tenant.viewer.user_id, tenant.admin)
        async with db.get_session() as session:
            stored = await session.get(UserModel, tenant.viewer.user_id)
            assert stored.is_deleted is True
            assert stored.is_active is False
            with pytest.raises(NotFoundError):
                await user_svc.get_user(session, tenant.viewer.user_id, tenant.admin)

    async def test_other_tenant_user_not_found(self, db, user_svc, tenant, other_tenant):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await user_svc.get_user(session, other_tenant.viewer.user_id, tenant.admin)

    async def test_list_scoped_and_filtered(self, db, user_svc, tenant, other_tenant):
        async with db.get_session() as session:
            everyone = await user_svc.list_users(session, tenant.viewer)
            managers = await user_svc.list_users(session, tenant.viewer, role="manager")
        assert len(everyone) == 6
        assert {u.organization_id for u in everyone} == {tenant.organization_id}
        assert len(managers) == 3


class TestAuthenticate:
    async def test_success_updates_last_login(self, db, user_svc, tenant, ctx):
        async with db.get_session() as session:
            user = await user_svc.authenticate(
                session, "Creator@acme.example.com", PASSWORD, ctx,
            )
        assert user is not None
        assert user.last_login_at is not None
        assert "login" in await _actions(db, user.id)

    async def test_wrong_password(self, db, user_svc, tenant):
        async with db.get_session() as session:
            assert await user_svc.authenticate(
                session, "creator@acme.example.com", "not-the-password",
            ) is None
        async with db.get_session() as session:
            entry = (await session.execute(
                select(AuditLogModel).where(AuditLogModel.action == "login_failed")
            )).scalar_one()
        assert entry.organization_id == "system"
        assert entry.entity_id == tenant.creator.user_id

    async def test_unknown_email(self, db, user_svc, tenant):
        async with db.get_session() as session:
            assert await user_svc.authenticate(session, "ghost@nowhere.example", PASSWORD) is None

    async def test_inactive_user(self, db, user_svc, tenant):
        async with db.get_session() as session:
            await user_svc.update_user(
                session, tenant.viewer.user_id, tenant.admin, is_active=False,
            )
        async with db.get_session() as session:
            assert await user_svc.authenticate(
                session, "viewer@acme.example.com", PASSWORD,
            ) is None
