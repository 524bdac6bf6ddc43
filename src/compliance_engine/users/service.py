"""User service: principal registry, password hashing and credential checks."""

import logging
from typing import Any

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.audit.models import AuditAction
from compliance_engine.audit.service import snapshot
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from compliance_engine.common.models import utcnow
from compliance_engine.common.tenancy import (
    Actor,
    ClientContext,
    UserRole,
    authorize,
    is_allowed,
    require_role,
    scoped_organization,
)
from compliance_engine.organizations.models import OrganizationModel
from compliance_engine.users.models import UserModel

logger = logging.getLogger(__name__)

USER_ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ORGANIZATION_ADMIN)

MIN_PASSWORD_BYTES = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything past 72 bytes

_UPDATABLE_FIELDS = {"first_name", "last_name", "avatar_url", "is_active", "is_email_verified"}


def _parse_role(role: UserRole | str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise ValidationError(f"Unknown role '{role}'")


class UserService:
    """User CRUD scoped to the acting organization."""

    def __init__(self, settings: ComplianceSettings, audit_service=None):
        self.settings = settings
        self.audit_service = audit_service

    # ── Passwords ──

    def hash_password(self, password: str) -> str:
        raw = password.encode("utf-8")
        if not MIN_PASSWORD_BYTES <= len(raw) <= MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be between {MIN_PASSWORD_BYTES} and {MAX_PASSWORD_BYTES} bytes"
            )
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        raw = password.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(raw, password_hash.encode("utf-8"))

    async def _email_taken(
        self, session: AsyncSession, email: str, exclude_id: str | None = None,
    ) -> bool:
        query = select(UserModel.id).where(UserModel.email == email)
        if exclude_id is not None:
            query = query.where(UserModel.id != exclude_id)
        result = await session.execute(query)
        return result.first() is not None

    # ── Write ──

    async def create_user(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        first_name: str,
        actor: Actor,
        context: ClientContext | None = None,
        last_name: str = "",
        role: UserRole | str = UserRole.CREATOR,
        organization_id: str | None = None,
        avatar_url: str | None = None,
    ) -> UserModel:
        """Create a user. Organization admins may only add non-super-admins to their own tenant."""
        require_role(actor, *USER_ADMIN_ROLES)
        role = _parse_role(role)
        if role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
            raise ForbiddenError("Only super admins can create super admins")

        target_org_id = organization_id or actor.organization_id
        if target_org_id is None:
            raise ValidationError("organization_id is required")
        authorize(actor, target_org_id)

        org = await session.get(OrganizationModel, target_org_id)
        if org is None or org.is_deleted:
            raise NotFoundError(f"Organization {target_org_id} not found")

        email = email.strip().lower()
        if await self._email_taken(session, email):
            raise ConflictError(f"User with email '{email}' already exists")

        user = UserModel(
            email=email,
            password_hash=self.hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role.value,
            avatar_url=avatar_url,
            organization_id=target_org_id,
        )
        session.add(user)
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.USER_CREATED, "user", user.organization_id,
                entity_id=user.id, actor=actor, context=context,
                new_values=snapshot(user),
            )
        return user

    async def update_user(
        self,
        session: AsyncSession,
        user_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        **fields: Any,
    ) -> UserModel:
        require_role(actor, *USER_ADMIN_ROLES)
        user = await self.get_user(session, user_id, actor)
        if user.role == UserRole.SUPER_ADMIN.value and not actor.is_super_admin:
            raise ForbiddenError("Only super admins can modify super admins")

        new_role = None
        if fields.get("role") is not None:
            new_role = _parse_role(fields["role"])
            if new_role == UserRole.SUPER_ADMIN and not actor.is_super_admin:
                raise ForbiddenError("Only super admins can grant the super admin role")

        new_email = fields.get("email")
        if new_email is not None:
            new_email = new_email.strip().lower()
            if new_email != user.email and await self._email_taken(session, new_email, user.id):
                raise ConflictError(f"User with email '{new_email}' already exists")

        new_hash = None
        if fields.get("password") is not None:
            new_hash = self.hash_password(fields["password"])

        old_values = snapshot(user)
        old_role = user.role
        for key, value in fields.items():
            if key in _UPDATABLE_FIELDS and value is not None:
                setattr(user, key, value)
        if new_email is not None:
            user.email = new_email
        if new_hash is not None:
            user.password_hash = new_hash
        if new_role is not None:
            user.role = new_role.value
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.USER_UPDATED, "user", user.organization_id,
                entity_id=user.id, actor=actor, context=context,
                old_values=old_values, new_values=snapshot(user),
            )
            if new_role is not None and new_role.value != old_role:
                await self.audit_service.record(
                    session, AuditAction.USER_ROLE_CHANGED, "user", user.organization_id,
                    entity_id=user.id, actor=actor, context=context,
                    old_values={"role": old_role},
                    new_values={"role": user.role},
                )
        return user

    async def delete_user(
        self,
        session: AsyncSession,
        user_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> None:
        require_role(actor, *USER_ADMIN_ROLES)
        user = await self.get_user(session, user_id, actor)
        if user.id == actor.user_id:
            raise ForbiddenError("Users cannot delete themselves")
        if user.role == UserRole.SUPER_ADMIN.value and not actor.is_super_admin:
            raise ForbiddenError("Only super admins can delete super admins")

        old_values = snapshot(user)
        user.soft_delete()
        user.is_active = False
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.USER_DELETED, "user", user.organization_id,
                entity_id=user.id, actor=actor, context=context,
                old_values=old_values,
            )

    # ── Read ──

    async def get_user(
        self, session: AsyncSession, user_id: str, actor: Actor,
    ) -> UserModel:
        result = await session.execute(
            select(UserModel).where(
                UserModel.id == user_id,
                UserModel.is_deleted == False,
            )
        )
        user = result.scalar_one_or_none()
        if user is None or not is_allowed(actor, user.organization_id):
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def list_users(
        self,
        session: AsyncSession,
        actor: Actor,
        organization_id: str | None = None,
        role: str | None = None,
    ) -> list[UserModel]:
        query = select(UserModel).where(UserModel.is_deleted == False)
        organization_id = scoped_organization(actor, organization_id)
        if organization_id is not None:
            query = query.where(UserModel.organization_id == organization_id)
        if role:
            query = query.where(UserModel.role == role)
        result = await session.execute(query.order_by(UserModel.created_at.desc()))
        return list(result.scalars().all())

    # ── Credentials ──

    async def authenticate(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        context: ClientContext | None = None,
    ) -> UserModel | None:
        """Check credentials for the token issuer. Returns the user or None."""
        result = await session.execute(
            select(UserModel).where(
                UserModel.email == email.strip().lower(),
                UserModel.is_deleted == False,
            )
        )
        user = result.scalar_one_or_none()
        if user is None or not self.verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            if self.audit_service:
                await self.audit_service.record(
                    session, AuditAction.LOGIN_FAILED, "user", "system",
                    entity_id=user.id if user else None, context=context,
                    metadata={"email": email},
                )
            return None
        if not user.is_active:
            return None

        user.last_login_at = utcnow()
        await session.flush()
        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.LOGIN, "user", user.organization_id,
                entity_id=user.id,
                actor=Actor(user.id, user.organization_id, UserRole(user.role)),
                context=context,
            )
        return user
