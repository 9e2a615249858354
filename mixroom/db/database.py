"""
Async engine and request-scoped sessions for the Mixroom store.

SQLite (aiosqlite) is the development default; PostgreSQL (asyncpg) is used
when ``MIXROOM_DATABASE_URL`` points at it. One session per request: it
commits when the handler returns and rolls back when it raises. A commit
that fails because the database is unreachable or locked surfaces as
``TransientError`` (503), like every other store failure.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mixroom.config import settings
from mixroom.errors import TransientError

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = "sqlite+aiosqlite:///./mixroom.db"


class Base(DeclarativeBase):
    """Declarative base for every Mixroom table."""


# Set by init_db() during app startup; tests swap in their own.
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    url = settings.database_url
    if not url:
        logger.warning(f"No database URL configured, using SQLite: {DEFAULT_SQLITE_URL}")
        return DEFAULT_SQLITE_URL
    return url


def _engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Recycle pooled connections the server has closed.
    return {"pool_pre_ping": True}


async def init_db() -> None:
    """Create the engine and session factory, then any missing tables.

    Table creation runs only when ``MIXROOM_DB_CREATE_TABLES`` is true.
    """
    global _engine, _async_session_factory

    database_url = get_database_url()
    logger.info(f"Initializing database: {database_url.rsplit('@', 1)[-1]}")

    _engine = create_async_engine(
        database_url,
        echo=settings.debug,
        **_engine_options(database_url),
    )
    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    from mixroom.db import models  # noqa: F401

    if settings.db_create_tables:
        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")


async def close_db() -> None:
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    Raises:
        TransientError: The commit failed for a connection-level reason.
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        try:
            await session.commit()
        except (OperationalError, InterfaceError) as exc:
            await session.rollback()
            logger.warning("Commit failed transiently: %s", exc)
            raise TransientError("Store unavailable during commit") from exc
        except Exception:
            await session.rollback()
            raise
