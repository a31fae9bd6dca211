from __future__ import annotations

import asyncio

from app.models.statement import Statement
from app.repos.statement_repo import InMemoryStatementRepo
from app.services.verb_usage import InMemoryVerbUsageStats, rebuild_verb_usage
from tests.conftest import ts

VERB = "https://example.com/verbs/watched"


def test_record_counts_distinct_actors_and_activities() -> None:
    stats = InMemoryVerbUsageStats()

    async def _record() -> None:
        await stats.record(VERB, "a@example.com", "act-1", ts(0))
        await stats.record(VERB, "a@example.com", "act-2", ts(5))
        await stats.record(VERB, "b@example.com", "act-1", ts(3))

    asyncio.run(_record())
    usage = asyncio.run(stats.get(VERB))
    assert usage is not None
    assert usage.count == 3
    assert usage.distinct_actors == 2
    assert usage.distinct_activities == 2
    assert usage.last_seen == ts(5)


def test_unseen_verb_has_no_usage() -> None:
    assert asyncio.run(InMemoryVerbUsageStats().get(VERB)) is None


def test_list_all_is_sorted() -> None:
    stats = InMemoryVerbUsageStats()
    asyncio.run(stats.record("urn:b", "a", "x", ts(0)))
    asyncio.run(stats.record("urn:a", "a", "x", ts(0)))
    assert [u.verb_id for u in asyncio.run(stats.list_all())] == ["urn:a", "urn:b"]


def test_rebuild_replays_statement_store() -> None:
    repo = InMemoryStatementRepo()
    for i in range(7):
        statement = Statement(
            id=f"s{i}",
            actor_key=f"u{i % 3}@example.com",
            verb_id=VERB,
            activity_id="https://lms.example.com/courses/python-101",
            timestamp=ts(i),
            stored=ts(i),
        )
        asyncio.run(repo.append(statement))

    stats = InMemoryVerbUsageStats()
    asyncio.run(stats.record("urn:stale", "a", "x", ts(0)))

    scanned = asyncio.run(rebuild_verb_usage(stats, repo))
    assert scanned == 7
    assert asyncio.run(stats.get("urn:stale")) is None
    usage = asyncio.run(stats.get(VERB))
    assert usage is not None
    assert usage.count == 7
    assert usage.distinct_actors == 3
