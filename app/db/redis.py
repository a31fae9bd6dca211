"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection pool is
created at import time; when it is None (local dev, tests) every consumer
falls back to its in-memory implementation and no Redis server is needed.

Redis backs the state that is shared across API instances and the worker
but does not need to be durable:
  - the progress_materialization task queue
  - the course directory cache and the materialization throttle
  - approximate per-verb usage statistics
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
        socket_timeout=SETTINGS.store_timeout_seconds,
        socket_connect_timeout=SETTINGS.store_timeout_seconds,
    )
else:
    redis_pool = None


async def check_redis() -> bool:
    """PING the pool; False when unconfigured or unreachable."""
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except aioredis.RedisError:
        logger.warning("Redis health check failed")
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db().

    An unreachable Redis at startup is logged but does not stop the app;
    Redis-backed calls fail individually until it comes back.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, Redis features use in-memory fallbacks")
        yield
        return

    if await check_redis():
        logger.info("Redis connected")
    else:
        logger.error("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
