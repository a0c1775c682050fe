"""
Database connection and session management for the adminkit backend.

This module provides the async engine, session factory and the FastAPI session
dependency. The data explorer works on raw ``AsyncEngine`` connections, while
the audit log and plugin storage use ORM sessions.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import get_settings_instance
from .exceptions import StoreError
from .logging import get_logger

logger = get_logger(__name__)

# Create declarative base
Base = declarative_base()

# Global async engine and session factory - lazy initialization
_async_engine: AsyncEngine | None = None
_AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _redacted(url: str) -> str:
    return url.split("@", 1)[1] if "@" in url else url.split("://", 1)[0]


def get_async_engine() -> AsyncEngine:
    global _async_engine  # noqa: PLW0603
    if _async_engine is None:
        settings = get_settings_instance()
        database_url = settings.database_url
        logger.debug("Creating async engine", extra={"database": _redacted(database_url)})
        kwargs = {"pool_pre_ping": True, "echo": False}
        if not database_url.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_recycle=settings.database_pool_recycle,
            )
        try:
            _async_engine = create_async_engine(database_url, **kwargs)
        except Exception as e:
            logger.error(f"Failed to create async database engine: {e}")
            raise StoreError(f"engine creation: {e}", error_code="STORE_UNAVAILABLE", status_code=503) from e
    return _async_engine


def get_async_session_local() -> async_sessionmaker[AsyncSession]:
    global _AsyncSessionLocal  # noqa: PLW0603
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            bind=get_async_engine(),
            expire_on_commit=False,
            autoflush=False,
            class_=AsyncSession,
        )
    return _AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    session_local = get_async_session_local()
    async with session_local() as session:
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise StoreError(f"session operation: {e}") from e


async def init_db() -> None:
    """Create the tables owned by adminkit (audit log, plugin storage)."""
    from ..models import audit_log, plugin_storage  # noqa: F401

    engine = get_async_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        raise StoreError(f"database initialization: {e}", error_code="STORE_UNAVAILABLE", status_code=503) from e
    logger.info("Database tables initialized successfully")


async def close_db() -> None:
    global _async_engine, _AsyncSessionLocal  # noqa: PLW0603
    if _async_engine is None:
        return
    await _async_engine.dispose()
    _async_engine = None
    _AsyncSessionLocal = None
    logger.debug("Database connections closed")
