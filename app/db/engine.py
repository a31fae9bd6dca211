"""Async SQLAlchemy engine and session factory.

When DATABASE_URL is configured, provides:
- async engine for PostgreSQL via asyncpg, with connect/command timeouts
- async session factory used by the Pg* repositories
- session_scope(): commit/rollback plus translation of driver-level
  connectivity failures into StoreUnavailableError
- FastAPI lifespan hook for startup/shutdown

When DATABASE_URL is None (no database configured), engine and factory are
None and the app falls back to in-memory repositories.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS
from app.core.retry import StoreUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


# --- Engine and session factory (None when no DATABASE_URL) ---

if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,  # log SQL in dev only
        pool_size=5,
        max_overflow=10,
        pool_timeout=SETTINGS.store_timeout_seconds,
        pool_pre_ping=True,
        connect_args={
            "timeout": SETTINGS.store_timeout_seconds,
            "command_timeout": SETTINGS.store_timeout_seconds,
        },
    )
    async_session_factory: async_sessionmaker[AsyncSession] | None = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session; commit on success, roll back on exception.

    Connection loss, pool exhaustion and timeouts surface as
    StoreUnavailableError so callers can retry them.  Integrity and
    programming errors propagate unchanged.
    """
    try:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except (OperationalError, PoolTimeoutError, asyncio.TimeoutError, OSError) as exc:
        raise StoreUnavailableError(str(exc)) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise StoreUnavailableError(str(exc)) from exc
        raise


async def check_database() -> bool:
    """Round-trip a trivial query; False when unconfigured or unreachable."""
    if async_session_factory is None:
        return False
    try:
        async with session_scope(async_session_factory) as session:
            await session.execute(text("SELECT 1"))
    except StoreUnavailableError:
        logger.warning("Database health check failed")
        return False
    return True


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine.

    Call from FastAPI's lifespan context manager.
    """
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string(hide_password=True))
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
