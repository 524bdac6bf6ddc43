"""Async database manager for Compliance-Engine (single-DB)."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from compliance_engine.common.config import ComplianceSettings, get_settings
from compliance_engine.common.exceptions import TransientError
from compliance_engine.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import compliance_engine.organizations.models  # noqa: F401
import compliance_engine.users.models  # noqa: F401
import compliance_engine.posts.models  # noqa: F401
import compliance_engine.approvals.models  # noqa: F401
import compliance_engine.assets.models  # noqa: F401
import compliance_engine.audit.models  # noqa: F401

logger = logging.getLogger(__name__)


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Enforce foreign keys and let SQLAlchemy own BEGIN so SAVEPOINTs work."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: ComplianceSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=self._settings.db_echo)
        if self.engine.dialect.name == "sqlite":
            _install_sqlite_hooks(self.engine)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: commit on success, roll back on any error."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except (OperationalError, PoolTimeoutError) as exc:
                await session.rollback()
                logger.warning("Database unavailable: %s", exc.__class__.__name__)
                raise TransientError("Database temporarily unavailable") from exc
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
