"""Asset service: uploads, storage lifecycle and license metadata."""

import asyncio
import logging
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_engine.assets.models import (
    AssetLicenseModel,
    AssetModel,
    AssetType,
    LicenseType,
)
from compliance_engine.assets.storage import StorageBackend
from compliance_engine.audit.models import AuditAction
from compliance_engine.audit.service import snapshot
from compliance_engine.common.config import ComplianceSettings
from compliance_engine.common.exceptions import (
    ForbiddenError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from compliance_engine.common.tenancy import Actor, ClientContext, scoped_organization
from compliance_engine.posts.models import PostModel

logger = logging.getLogger(__name__)

_LICENSE_FIELDS = {
    "holder", "provider", "license_number", "start_date", "expiration_date",
    "usage_rights", "restrictions", "terms", "document_url", "cost", "notes",
}


class AssetService:
    """Media assets stored in object storage, tracked in the database."""

    def __init__(self, settings: ComplianceSettings, storage: StorageBackend, audit_service=None):
        self.settings = settings
        self.storage = storage
        self.audit_service = audit_service

    async def _storage_call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking storage call off the event loop, bounded by the storage timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args),
                timeout=self.settings.storage_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TransientError("Storage request timed out") from exc
        except (BotoCoreError, ClientError) as exc:
            raise TransientError("Storage service unavailable") from exc

    # ── Write ──

    async def upload(
        self,
        session: AsyncSession,
        data: bytes,
        filename: str,
        content_type: str,
        asset_type: AssetType | str,
        actor: Actor,
        context: ClientContext | None = None,
        description: str | None = None,
        post_id: str | None = None,
    ) -> AssetModel:
        """Store ``data`` and register it as an asset of the actor's organization."""
        try:
            asset_type = AssetType(asset_type)
        except ValueError:
            raise ValidationError(f"Unknown asset type '{asset_type}'")
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > self.settings.max_upload_bytes:
            raise ValidationError(
                f"File exceeds the maximum upload size of {self.settings.max_upload_bytes} bytes"
            )
        if actor.organization_id is None:
            raise ForbiddenError("Assets must be uploaded by a user of an organization")
        if post_id is not None:
            await self._get_post(session, post_id, actor)

        stored = await self._storage_call(
            self.storage.put,
            actor.organization_id,
            f"{asset_type.value}s",
            filename,
            content_type,
            data,
        )
        asset = AssetModel(
            type=asset_type.value,
            original_name=filename,
            file_name=stored.file_name,
            storage_path=stored.key,
            url=stored.url,
            mime_type=content_type,
            size=stored.size,
            checksum=stored.checksum,
            description=description or "",
            organization_id=actor.organization_id,
            post_id=post_id,
            uploaded_by_id=actor.user_id,
        )
        session.add(asset)
        try:
            await session.flush()
        except Exception:
            await self._discard_object(stored.key)
            raise

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ASSET_UPLOADED, "asset", asset.organization_id,
                entity_id=asset.id, actor=actor, context=context,
                metadata={
                    "original_name": filename,
                    "mime_type": content_type,
                    "size": asset.size,
                    "checksum": asset.checksum,
                },
            )
        return asset

    async def remove(
        self,
        session: AsyncSession,
        asset_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> None:
        """Soft-delete the asset. Removing the stored object is best-effort."""
        asset = await self.get_asset(session, asset_id, actor)
        await self._discard_object(asset.storage_path)

        old_values = snapshot(asset)
        asset.soft_delete()
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ASSET_DELETED, "asset", asset.organization_id,
                entity_id=asset.id, actor=actor, context=context,
                old_values=old_values,
            )

    async def attach_to_post(
        self,
        session: AsyncSession,
        asset_id: str,
        post_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> AssetModel:
        asset = await self.get_asset(session, asset_id, actor)
        post = await self._get_post(session, post_id, actor)
        if post.organization_id != asset.organization_id:
            raise NotFoundError(f"Post {post_id} not found")

        previous = asset.post_id
        asset.post_id = post.id
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ASSET_ATTACHED, "asset", asset.organization_id,
                entity_id=asset.id, actor=actor, context=context,
                old_values={"post_id": previous},
                new_values={"post_id": post.id},
            )
        return asset

    async def refresh_url(
        self,
        session: AsyncSession,
        asset_id: str,
        actor: Actor,
        context: ClientContext | None = None,
    ) -> AssetModel:
        """Re-derive the download URL from the stored path."""
        asset = await self.get_asset(session, asset_id, actor)
        asset.url = await self._storage_call(
            self.storage.presign, asset.storage_path, self.settings.presigned_url_ttl_seconds,
        )
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session, AuditAction.ASSET_ACCESSED, "asset", asset.organization_id,
                entity_id=asset.id, actor=actor, context=context,
            )
        return asset

    async def set_license(
        self,
        session: AsyncSession,
        asset_id: str,
        license_type: LicenseType | str,
        actor: Actor,
        context: ClientContext | None = None,
        **fields: Any,
    ) -> AssetLicenseModel:
        """Create or replace the asset's license metadata."""
        try:
            license_type = LicenseType(license_type)
        except ValueError:
            raise ValidationError(f"Unknown license type '{license_type}'")
        start, end = fields.get("start_date"), fields.get("expiration_date")
        if start is not None and end is not None and end < start:
            raise ValidationError("License expiration_date is before start_date")

        asset = await self.get_asset(session, asset_id, actor)
        license_obj = (await session.execute(
            select(AssetLicenseModel).where(AssetLicenseModel.asset_id == asset.id)
        )).scalar_one_or_none()

        old_values = snapshot(license_obj) if license_obj is not None else None
        if license_obj is None:
            license_obj = AssetLicenseModel(asset_id=asset.id, type=license_type.value)
            session.add(license_obj)
        license_obj.type = license_type.value
        for key, value in fields.items():
            if key in _LICENSE_FIELDS:
                setattr(license_obj, key, value)
        await session.flush()

        if self.audit_service:
            await self.audit_service.record(
                session,
                AuditAction.LICENSE_ADDED if old_values is None else AuditAction.LICENSE_UPDATED,
                "asset_license", asset.organization_id,
                entity_id=license_obj.id, actor=actor, context=context,
                metadata={"asset_id": asset.id},
                old_values=old_values, new_values=snapshot(license_obj),
            )
        return license_obj

    # ── Read ──

    async def get_asset(
        self, session: AsyncSession, asset_id: str, actor: Actor,
    ) -> AssetModel:
        query = select(AssetModel).where(
            AssetModel.id == asset_id,
            AssetModel.is_deleted == False,
        )
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(AssetModel.organization_id == organization_id)
        asset = (await session.execute(query)).scalar_one_or_none()
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        return asset

    async def list_assets(
        self,
        session: AsyncSession,
        actor: Actor,
        post_id: str | None = None,
        asset_type: str | None = None,
    ) -> list[AssetModel]:
        query = select(AssetModel).where(AssetModel.is_deleted == False)
        organization_id = scoped_organization(actor)
        if organization_id is not None:
            query = query.where(AssetModel.organization_id == organization_id)
        if post_id:
            query = query.where(AssetModel.post_id == post_id)
        if asset_type:
            query = query.where(AssetModel.type == asset_type)
        result = await session.execute(query.order_by(AssetModel.created_at.desc()))
        return list(result.scalars().all())

    async def get_license(
        self, session: AsyncSession, asset_id: str, actor: Actor,
    ) -> AssetLicenseModel:
        asset = await self.get_asset(session, asset_id, actor)
        license_obj = (await session.execute(
            select(AssetLicenseModel).where(AssetLicenseModel.asset_id == asset.id)
        )).scalar_one_or_none()
        if license_obj is None:
            raise NotFoundError(f"Asset {asset_id} has no license")
        return license_obj

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

    async def _discard_object(self, key: str) -> None:
        try:
            await self._storage_call(self.storage.delete, key)
        except Exception:
            logger.warning("Failed to delete stored object %s", key, exc_info=True)
