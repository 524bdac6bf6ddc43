"""Asset and license API router."""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from compliance_engine.assets.models import AssetModel, AssetType
from compliance_engine.assets.schemas import AssetResponse, LicenseResponse, LicenseUpsert
from compliance_engine.common.config import get_settings
from compliance_engine.common.exceptions import ComplianceError, ValidationError
from compliance_engine.common.security import client_context, resolve_actor, to_http_exception
from compliance_engine.common.tenancy import Actor, ClientContext

router = APIRouter()


def _get_service():
    from compliance_engine.deps import get_asset_service
    return get_asset_service()


def _get_db():
    from compliance_engine.deps import get_db
    return get_db()


def _to_response(a: AssetModel) -> AssetResponse:
    return AssetResponse(
        id=a.id,
        type=a.type,
        original_name=a.original_name,
        file_name=a.file_name,
        url=a.url,
        mime_type=a.mime_type,
        size=a.size,
        checksum=a.checksum,
        description=a.description or "",
        metadata=a.metadata_ or {},
        organization_id=a.organization_id,
        post_id=a.post_id,
        created_at=a.created_at,
    )


@router.post("/assets/upload", response_model=AssetResponse, status_code=201)
async def upload_asset(
    file: UploadFile = File(...),
    type: AssetType = Form(...),
    description: str | None = Form(None),
    post_id: str | None = Form(None),
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    limit = get_settings().max_upload_bytes
    try:
        # Bounded read: one byte past the cap is enough to detect an oversized file.
        if file.size is not None and file.size > limit:
            raise ValidationError(f"File exceeds the maximum upload size of {limit} bytes")
        data = await file.read(limit + 1)
        if len(data) > limit:
            raise ValidationError(f"File exceeds the maximum upload size of {limit} bytes")
        async with db.get_session() as session:
            asset = await svc.upload(
                session, data,
                filename=file.filename or "upload",
                content_type=file.content_type or "application/octet-stream",
                asset_type=type,
                actor=actor,
                context=context,
                description=description,
                post_id=post_id,
            )
            return _to_response(asset)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/assets", response_model=list[AssetResponse])
async def list_assets(
    post_id: str | None = Query(None),
    type: str | None = Query(None),
    actor: Actor = Depends(resolve_actor),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            assets = await svc.list_assets(session, actor, post_id=post_id, asset_type=type)
            return [_to_response(a) for a in assets]
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/assets/{asset_id}", response_model=AssetResponse)
async def get_asset(asset_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            asset = await svc.get_asset(session, asset_id, actor)
            return _to_response(asset)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.delete("/assets/{asset_id}", status_code=204)
async def delete_asset(
    asset_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.remove(session, asset_id, actor, context)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/assets/{asset_id}/attach/{post_id}", response_model=AssetResponse)
async def attach_asset(
    asset_id: str,
    post_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            asset = await svc.attach_to_post(session, asset_id, post_id, actor, context)
            return _to_response(asset)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.post("/assets/{asset_id}/refresh-url", response_model=AssetResponse)
async def refresh_asset_url(
    asset_id: str,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            asset = await svc.refresh_url(session, asset_id, actor, context)
            return _to_response(asset)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.put("/assets/{asset_id}/license", response_model=LicenseResponse)
async def set_asset_license(
    asset_id: str,
    body: LicenseUpsert,
    actor: Actor = Depends(resolve_actor),
    context: ClientContext = Depends(client_context),
):
    svc = _get_service()
    db = _get_db()
    fields = body.model_dump(exclude={"type"})
    try:
        async with db.get_session() as session:
            license_obj = await svc.set_license(
                session, asset_id, body.type, actor, context, **fields,
            )
            return LicenseResponse.model_validate(license_obj)
    except ComplianceError as e:
        raise to_http_exception(e)


@router.get("/assets/{asset_id}/license", response_model=LicenseResponse)
async def get_asset_license(asset_id: str, actor: Actor = Depends(resolve_actor)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            license_obj = await svc.get_license(session, asset_id, actor)
            return LicenseResponse.model_validate(license_obj)
    except ComplianceError as e:
        raise to_http_exception(e)
