"""Per-verb usage statistics.

Recorded once per stored statement at ingestion: how often each verb id is
used, by how many distinct actors, on how many distinct activities, and
when it was last seen.  Admins use it to spot custom verbs that need a
configuration entry.

The numbers are approximate and eventually consistent:
  - Redis: counts via HINCRBY, distinct counts via HyperLogLog (PFADD /
    PFCOUNT, ~0.8% standard error), last_seen via HSET
  - in-memory: exact sets, per process

Both can be rebuilt from the statement store with rebuild_verb_usage().
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis

from app.core.retry import StoreUnavailableError
from app.db.redis import redis_pool
from app.models.verb import VerbUsage
from app.repos.statement_repo import StatementRepo

logger = logging.getLogger(__name__)


@runtime_checkable
class VerbUsageStats(Protocol):
    async def record(
        self, verb_id: str, actor_key: str, activity_id: str, seen_at: datetime
    ) -> None: ...
    async def get(self, verb_id: str) -> VerbUsage | None: ...
    async def list_all(self) -> list[VerbUsage]: ...
    async def reset(self) -> None: ...


class _Counters:
    __slots__ = ("count", "actors", "activities", "last_seen")

    def __init__(self) -> None:
        self.count = 0
        self.actors: set[str] = set()
        self.activities: set[str] = set()
        self.last_seen: datetime | None = None


class InMemoryVerbUsageStats:
    def __init__(self) -> None:
        self._by_verb: dict[str, _Counters] = {}

    async def record(
        self, verb_id: str, actor_key: str, activity_id: str, seen_at: datetime
    ) -> None:
        c = self._by_verb.setdefault(verb_id, _Counters())
        c.count += 1
        c.actors.add(actor_key)
        c.activities.add(activity_id)
        if c.last_seen is None or seen_at > c.last_seen:
            c.last_seen = seen_at

    async def get(self, verb_id: str) -> VerbUsage | None:
        c = self._by_verb.get(verb_id)
        return None if c is None else _usage(verb_id, c)

    async def list_all(self) -> list[VerbUsage]:
        return [_usage(v, c) for v, c in sorted(self._by_verb.items())]

    async def reset(self) -> None:
        self._by_verb.clear()


def _usage(verb_id: str, c: _Counters) -> VerbUsage:
    return VerbUsage(
        verb_id=verb_id,
        count=c.count,
        distinct_actors=len(c.actors),
        distinct_activities=len(c.activities),
        last_seen=c.last_seen,
    )


class RedisVerbUsageStats:
    """Redis-backed stats, shared by every API instance."""

    _PREFIX = "verbstats:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._counts = f"{self._PREFIX}counts"
        self._last_seen = f"{self._PREFIX}last_seen"

    def _actors_key(self, verb_id: str) -> str:
        return f"{self._PREFIX}actors:{verb_id}"

    def _activities_key(self, verb_id: str) -> str:
        return f"{self._PREFIX}activities:{verb_id}"

    async def record(
        self, verb_id: str, actor_key: str, activity_id: str, seen_at: datetime
    ) -> None:
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.hincrby(self._counts, verb_id, 1)
                pipe.pfadd(self._actors_key(verb_id), actor_key)
                pipe.pfadd(self._activities_key(verb_id), activity_id)
                pipe.hset(self._last_seen, verb_id, seen_at.isoformat())
                await pipe.execute()
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"verb stats record: {exc}") from exc

    async def get(self, verb_id: str) -> VerbUsage | None:
        try:
            count = await self._redis.hget(self._counts, verb_id)
            if count is None:
                return None
            return await self._load(verb_id, int(count))
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"verb stats get: {exc}") from exc

    async def list_all(self) -> list[VerbUsage]:
        try:
            counts = await self._redis.hgetall(self._counts)
            return [await self._load(v, int(counts[v])) for v in sorted(counts)]
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"verb stats list: {exc}") from exc

    async def _load(self, verb_id: str, count: int) -> VerbUsage:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.pfcount(self._actors_key(verb_id))
            pipe.pfcount(self._activities_key(verb_id))
            pipe.hget(self._last_seen, verb_id)
            actors, activities, last_seen = await pipe.execute()
        return VerbUsage(
            verb_id=verb_id,
            count=count,
            distinct_actors=int(actors),
            distinct_activities=int(activities),
            last_seen=datetime.fromisoformat(last_seen) if last_seen else None,
        )

    async def reset(self) -> None:
        try:
            cursor = 0
            while True:
                cursor, keys = await self._redis.scan(
                    cursor, match=f"{self._PREFIX}*", count=100
                )
                if keys:
                    await self._redis.delete(*keys)
                if cursor == 0:
                    break
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"verb stats reset: {exc}") from exc


async def rebuild_verb_usage(stats: VerbUsageStats, statements: StatementRepo) -> int:
    """Reset the stats and replay every stored statement; returns the count."""
    await stats.reset()
    scanned = 0
    async for batch in statements.iter_all():
        for s in batch:
            await stats.record(s.verb_id, s.actor_key, s.activity_id, s.stored)
        scanned += len(batch)
    logger.info("Verb usage rebuilt from %d statements", scanned)
    return scanned


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    verb_usage: VerbUsageStats = RedisVerbUsageStats(redis_pool)
else:
    verb_usage = InMemoryVerbUsageStats()
