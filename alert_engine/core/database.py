"""Database engine, sessions and declarative base.

The API and the scheduler share one engine per process. Evaluation units
open short-lived sessions from ``get_session_factory()`` so that a failing
unit never poisons another unit's transaction.
"""

from typing import Any, AsyncIterator, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from alert_engine.core.config import Settings, get_settings

logger = structlog.get_logger()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def _engine_options(settings: Settings) -> Dict[str, Any]:
    if settings.database_url_async.startswith("sqlite"):
        # In-memory SQLite only exists on a single shared connection
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    """Get or lazily create the process-wide async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url_async,
            echo=settings.DB_ECHO,
            **_engine_options(settings),
        )
        logger.info("Database engine created", driver=_engine.dialect.driver)
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get or lazily create the session factory bound to ``get_engine()``."""
    global _session_factory
    if _session_factory is None:
        # Loaded rows stay readable after a commit
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


class Base(DeclarativeBase):
    """Declarative base for engine-owned tables and core-platform read models."""


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Deployed databases are managed by Alembic."""
    import alert_engine.models  # noqa: F401

    try:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    logger.info("Database initialized successfully")


async def close_db() -> None:
    """Dispose of the engine; the next ``get_engine()`` starts a fresh pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connections closed")
