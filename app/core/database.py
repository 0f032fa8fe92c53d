"""
Database Layer

Async engine and session handling for PostgreSQL (asyncpg + pgvector).

The engine is built on first use from ``settings`` so that importing the
package never opens a connection. Two ways to obtain a session:

    get_db          FastAPI dependency, one session per request.
    session_scope   ``async with`` block for scripts and background jobs.

Both roll back the open transaction if the caller raises.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first call."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        return _engine

    _engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        pool_pre_ping=True,
    )
    logger.info(
        "Engine ready for %s@%s:%s/%s (pool=%d)",
        settings.POSTGRES_USER,
        settings.POSTGRES_HOST,
        settings.POSTGRES_PORT,
        settings.POSTGRES_DB,
        settings.DB_POOL_SIZE,
    )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    # Instances stay readable after commit; ingestion reads document fields
    # between its status commits.
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    Standalone session for code running outside a request.

    Usage::

        async with session_scope() as session:
            await pipeline.ingest(session, document_id)
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: ``db: AsyncSession = Depends(get_db)``."""
    async with session_scope() as session:
        yield session


async def check_connection() -> None:
    """Run ``SELECT 1``; raises if the database is unreachable."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine (shutdown, scripts)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")
