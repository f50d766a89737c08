"""Engine and session factory for the billing tables.

The schema is owned by the Alembic migrations in ``alembic/versions``.
``init_db`` only creates tables when asked to (``DB_CREATE_SCHEMA`` for a
local database, or ``create_schema=True`` from a script).
"""

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from coursehub.core.config import get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str | None = None, create_schema: bool | None = None) -> None:
    """Create the engine and the session factory used by every service.

    Args:
        url: Database URL; defaults to ``DATABASE_URL``
        create_schema: Run ``create_all`` for the billing models; defaults to ``DB_CREATE_SCHEMA``
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    if create_schema is None:
        create_schema = settings.db_create_schema

    _engine = create_async_engine(url or settings.database_url, echo=settings.db_echo, pool_pre_ping=True)
    # Rows are returned to callers after commit (SubscriptionResponse, PlanResponse)
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    if create_schema:
        import coursehub.db.models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.warning("db_schema_created_outside_migrations", tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory injected into the billing services."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory
