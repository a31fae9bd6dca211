"""Short-lived shared key/value state.

Two users in this service:

  1. Read-through caching of the course directory (app/services/
     course_directory.py).  Entries expire after COURSE_CACHE_TTL_SECONDS;
     there is no explicit invalidation because the directory is owned by
     the catalog, so the TTL bounds staleness.

  2. The per-pair materialization throttle, which needs an atomic
     "set if absent with expiry" (Redis SET NX EX).

Redis errors are raised as StoreUnavailableError; callers decide whether a
cache outage is fatal (it never is here: both users fall back to the
source of truth).
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis

from app.core.metrics import CACHE_OPERATIONS
from app.core.retry import StoreUnavailableError
from app.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store only if the key is absent; True when this call stored it."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests.

    Expiry is checked lazily on read, against time.monotonic().
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            del self._store[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        value = self._live(key)
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (value, time.monotonic() + ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        if self._live(key) is not None:
            return False
        self._store[key] = (value, time.monotonic() + ttl_seconds)
        return True


class RedisCacheService:
    """Redis-backed cache, shared across all API instances and the worker."""

    # Key prefix prevents collisions with the task queue and verb stats
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(f"{self._PREFIX}{key}")
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"cache get: {exc}") from exc
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"cache set: {exc}") from exc

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            stored = await self._redis.set(
                f"{self._PREFIX}{key}", value, ex=ttl_seconds, nx=True
            )
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"cache set_if_absent: {exc}") from exc
        return bool(stored)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
