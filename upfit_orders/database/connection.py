"""
Async engine and session management for the order database.

The engine and session factory are created lazily on first use, so memory
mode never opens a connection. ``get_session`` is the unit of work: it
commits when the block succeeds and rolls back when it raises.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from upfit_orders.core.config import get_settings
from upfit_orders.core.logging import get_logger

logger = get_logger(__name__)

ASYNC_DRIVER_PREFIX = "postgresql+asyncpg://"

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def to_async_url(url: str) -> str:
    """Rewrite a plain ``postgresql://`` URL to use the asyncpg driver."""
    if url.startswith("postgresql://"):
        return ASYNC_DRIVER_PREFIX + url[len("postgresql://"):]
    return url


def get_engine() -> AsyncEngine:
    """
    Return the process-wide engine, creating it on first call.

    Raises:
        RuntimeError: If the engine cannot be created
    """
    global _engine

    if _engine is not None:
        return _engine

    settings = get_settings()
    engine_kwargs: dict[str, Any] = {
        "echo": settings.debug,
        "connect_args": {
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
            "timeout": 10,
        },
    }
    if settings.is_test:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    try:
        _engine = create_async_engine(to_async_url(settings.database_url), **engine_kwargs)
    except Exception as e:
        logger.error("Failed to create database engine", error=str(e))
        raise RuntimeError(f"Database engine initialization failed: {e}") from e

    logger.info("Database engine created", pool_size=engine_kwargs.get("pool_size"))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session that commits on success and rolls back on error.

    Yields:
        Async database session
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning("Database session rolled back", error_type=type(e).__name__)
        raise
    finally:
        await session.close()


async def dispose_engine() -> None:
    """Close pooled connections; called on application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None
