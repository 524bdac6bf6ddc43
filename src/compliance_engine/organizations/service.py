"""Organization service: tenant registry, settings and usage statistics."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.assets.models import AssetModel
from compliance_engine.audit.models import AuditAction
from compliance_engine.audit.service import snapshot
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import ConflictError, NotFoundError
from compliance_engine.common.tenancy import (
    Actor,
    ClientContext,
    UserRole,
    is_allowed,
    require_role,
)
from compliance_engine.organizations.models import OrganizationModel
from compliance_engine.posts.models import PostModel
from compliance_engine.users.models import UserModel

ORG_EDITOR_ROLES = (UserRole.SUPER_ADMIN, UserRole.ORGANIZATION_ADMIN)

_UPDATABLE_FIELDS = {"name", "slug", "description", "logo_url", "website", "is_active"}


class OrganizationService:
    """Tenant CRUD. Only super-admins create or delete organizations."""

    def __init__(self, settings: ComplianceSettings, audit_service=None):
        self.settings = settings
        self.audit_service = audit_service

    async def _slug_taken(
        self, session: AsyncSession, slug: str, exclude_id: str | None = None,
    ) -> bool:
        query = select(OrganizationModel.id).where(OrganizationModel.slug == slug)
        if exclude_id is not None:
            query = query.where(OrganizationModel.id != exclude_id)
        result = await session.execute(query)
        return result.first() is not None

    # ── Write ──

    async def create_organization(
        self,
        session: AsyncSession,
        name: str,
        slug: str,
        actor: Actor,
        context: ClientContext | None = None,
        **kwargs: Any,
    ) -> OrganizationModel:
        require_role(actor, UserRole.SUPER_ADMIN)
        if await self._slug_taken(session, slug):
            raise ConflictError(f"Organization slug '{slug}' already exists")

        org = OrganizationModel(
            name=name,
            slug=slug,
            description=kwargs.get("description", ""),
            logo_url=kwargs.get("logo_url"),
            website=kwargs.get("website"),
            settings=kwargs.get("settings") or {},
        )
        session.add(org)
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ORGANIZATION_CREATED, "organization", org.id,
                entity_id=org.id, actor=actor, context=context,
                new_values=snapshot(org),
            )
        return org

    async def update_organization(
        self,
        session: AsyncSession,
        organization_id: str,
        actor: Actor,
        context: ClientContext | None = None,
        **fields: Any,
    ) -> OrganizationModel:
        require_role(actor, *ORG_EDITOR_ROLES)
        org = await self.get_organization(session, organization_id, actor)
        new_slug = fields.get("slug")
        if new_slug and new_slug != org.slug and await self._slug_taken(session, new_slug, org.id):
            raise ConflictError(f"Organization slug '{new_slug}' already exists")

        old_values = snapshot(org)
        for key, value in fields.items():
            if key in _UPDATABLE_FIELDS and value is not None:
                setattr(org, key, value)
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ORGANIZATION_UPDATED, "organization", org.id,
                entity_id=org.id, actor=actor, context=context,
                old_values=old_values, new_values=snapshot(org),
            )
        return org

    async def update_settings(
        self,
        session: AsyncSession,
        organization_id: str,
        settings: dict[str, Any],
        actor: Actor,
        context: ClientContext | None = None,
    ) -> OrganizationModel:
        """Shallow-merge ``settings`` into the organization's settings map."""
        require_role(actor, *ORG_EDITOR_ROLES)
        org = await self.get_organization(session, organization_id, actor)
        old_settings = dict(org.settings or {})
        org.settings = {**old_settings, **settings}
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ORGANIZATION_SETTINGS_CHANGED, "organization", org.id,
                entity_id=org.id, actor=actor, context=context,
                old_values={"settings": old_settings},
                new_values={"settings": org.settings},
            )
        return org

    async def delete_organization(
        self,
        session: AsyncSession,
        organization_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> None:
        require_role(actor, UserRole.SUPER_ADMIN)
        org = await self.get_organization(session, organization_id, actor)
        old_values = snapshot(org)
        org.soft_delete()
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ORGANIZATION_DELETED, "organization", org.id,
                entity_id=org.id, actor=actor, context=context,
                old_values=old_values,
            )

    # ── Read ──

    async def get_organization(
        self, session: AsyncSession, organization_id: str, actor: Actor,
    ) -> OrganizationModel:
        result = await session.execute(
            select(OrganizationModel).where(
                OrganizationModel.id == organization_id,
                OrganizationModel.is_deleted == False,
            )
        )
        org = result.scalar_one_or_none()
        if org is None or not is_allowed(actor, org.id):
            raise NotFoundError(f"Organization {organization_id} not found")
        return org

    async def list_organizations(
        self, session: AsyncSession, actor: Actor, include_inactive: bool = False,
    ) -> list[OrganizationModel]:
        query = select(OrganizationModel).where(OrganizationModel.is_deleted == False)
        if not actor.is_super_admin:
            query = query.where(OrganizationModel.id == actor.organization_id)
        if not include_inactive:
            query = query.where(OrganizationModel.is_active == True)
        result = await session.execute(query.order_by(OrganizationModel.name))
        return list(result.scalars().all())

    async def statistics(
        self, session: AsyncSession, organization_id: str, actor: Actor,
    ) -> dict[str, int | str]:
        """Live counts of users, posts and assets, plus bytes stored."""
        org = await self.get_organization(session, organization_id, actor)

        async def _count(model) -> int:
            result = await session.execute(
                select(func.count(model.id)).where(
                    model.organization_id == org.id,
                    model.is_deleted == False,
                )
            )
            return result.scalar_one()

        storage = await session.execute(
            select(func.coalesce(func.sum(AssetModel.size), 0)).where(
                AssetModel.organization_id == org.id,
                AssetModel.is_deleted == False,
            )
        )
        return {
            "organization_id": org.id,
            "users": await _count(UserModel),
            "posts": await _count(PostModel),
            "assets": await _count(AssetModel),
            "storage_bytes": int(storage.scalar_one()),
        }
