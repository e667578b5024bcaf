"""
Database Configuration and Session Management

Provides async SQLAlchemy engine and session factory for PostgreSQL.
Sessions from get_db commit on success and roll back on any exception,
so a passkey ceremony's credential write and challenge deletion land
together or not at all.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from passkey_api.config import Settings, get_settings
from passkey_api.models.orm.base import Base  # noqa: F401 - imported for Alembic


def prepare_database_url(url: str) -> tuple[str, dict[str, Any]]:
    """
    Split a libpq-style ``sslmode`` query parameter off the database URL.

    asyncpg rejects ``sslmode`` in the DSN but accepts the same mode names
    through its ``ssl`` connect argument.

    Returns:
        Tuple of (url without sslmode, connect_args for create_async_engine)
    """
    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)
    sslmode = query_params.pop("sslmode", None)
    if not sslmode:
        return url, {}

    cleaned_url = urlunparse(parsed._replace(query=urlencode(query_params, doseq=True)))
    return cleaned_url, {"ssl": sslmode[0]}


# Global engine and session factory (initialized on startup)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Get or create the async SQLAlchemy engine.

    Args:
        settings: Optional settings override (for testing)

    Returns:
        AsyncEngine instance
    """
    global _engine

    if _engine is None:
        if settings is None:
            settings = get_settings()

        db_url, connect_args = prepare_database_url(settings.database_url)
        engine_kwargs: dict[str, Any] = {"echo": settings.debug, "connect_args": connect_args}

        # SQLite (local development) does not take queue pool sizing
        if not db_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
            )

        _engine = create_async_engine(db_url, **engine_kwargs)

    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session factory.

    Args:
        settings: Optional settings override (for testing)

    Returns:
        async_sessionmaker instance
    """
    global _async_session_factory

    if _async_session_factory is None:
        engine = get_engine(settings)
        _async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions in FastAPI routes.

    Yields:
        AsyncSession that is committed after the request, or rolled back on error
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for getting database sessions outside of FastAPI routes.

    Used by the maintenance scheduler and the arq worker.

    Usage:
        async with get_db_context() as db:
            await purge_expired_challenges(db)
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database connection and verify connectivity.

    Called on application startup.
    """
    engine = get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(lambda _: None)


async def close_db() -> None:
    """
    Close database connections.

    Called on application shutdown.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


def reset_db_state() -> None:
    """Clear the engine and session factory so they are rebuilt from fresh settings."""
    global _engine, _async_session_factory
    _engine = None
    _async_session_factory = None
