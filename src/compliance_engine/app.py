"""FastAPI application factory for Compliance-Engine."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from compliance_engine.common.config import get_settings
from compliance_engine.common.logging import setup_logging
from compliance_engine.common.schemas import HealthResponse

logger = logging.getLogger(__name__)


async def audit_retention_loop(interval_seconds: float) -> None:
    """Purge expired audit entries every ``interval_seconds`` until cancelled."""
    from compliance_engine.deps import get_audit_service, get_db

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with get_db().get_session() as session:
                await get_audit_service().purge_older_than(session)
        except Exception:
            logger.exception("Audit retention sweep failed")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from compliance_engine.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        sweeper = None
        if settings.audit_sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(
                audit_retention_loop(settings.audit_sweep_interval_seconds)
            )
        yield
        # Shutdown
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from compliance_engine.organizations.router import router as organizations_router
    from compliance_engine.users.router import router as users_router
    from compliance_engine.posts.router import router as posts_router
    from compliance_engine.approvals.router import router as approvals_router
    from compliance_engine.assets.router import router as assets_router
    from compliance_engine.audit.router import router as audit_router

    prefix = settings.api_prefix
    app.include_router(organizations_router, prefix=prefix, tags=["organizations"])
    app.include_router(users_router, prefix=prefix, tags=["users"])
    app.include_router(posts_router, prefix=prefix, tags=["posts"])
    app.include_router(approvals_router, prefix=prefix, tags=["approvals"])
    app.include_router(assets_router, prefix=prefix, tags=["assets"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])

    return app
