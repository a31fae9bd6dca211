from __future__ import annotations

import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from app.models.statement import Statement

_PARTITION_KEY_MAX_LEN = 64
# Characters that are not safe in a partition key: path and query
# separators plus control characters.
_PARTITION_KEY_UNSAFE = re.compile(r"[/\\#?\x00-\x1f\x7f]")


class StatementConflictError(Exception):
    """A statement id was re-submitted with different content."""

    def __init__(self, statement_id: str) -> None:
        super().__init__(f"statement {statement_id!r} already exists with different content")
        self.statement_id = statement_id


@dataclass(frozen=True, slots=True)
class StatementQuery:
    activity_id: str | None = None
    related_activities: bool = False  # also match "<activity_id>/..."
    verb_id: str | None = None
    registration: str | None = None
    limit: int | None = None
    offset: int = 0


def partition_key(actor_key: str) -> str:
    """Bounded, sanitized prefix of an actor key.

    Not unique: two long actor keys can share a partition, so reads always
    filter on actor_key as well.
    """
    return _PARTITION_KEY_UNSAFE.sub("_", actor_key)[:_PARTITION_KEY_MAX_LEN] or "unknown"


def activity_matches(activity_id: str, wanted: str, *, related: bool) -> bool:
    if activity_id == wanted:
        return True
    return related and activity_id.startswith(wanted + "/")


def sort_key(statement: Statement) -> tuple:
    return (statement.timestamp, statement.id)


class StatementRepo(Protocol):
    async def append(self, statement: Statement) -> bool:
        """Store `statement`; True if inserted, False for an identical duplicate.

        Raises StatementConflictError when the id exists with another
        fingerprint.
        """
        ...

    async def get(self, statement_id: str) -> Statement | None: ...
    async def query(
        self, actor_key: str, query: StatementQuery | None = None
    ) -> list[Statement]: ...
    def iter_all(self, batch_size: int = 500) -> AsyncIterator[list[Statement]]: ...


class InMemoryStatementRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Statement] = {}
        self._by_actor: dict[str, list[Statement]] = {}

    async def append(self, statement: Statement) -> bool:
        # No await between the lookup and the insert, so this is atomic
        # with respect to other coroutines.
        existing = self._by_id.get(statement.id)
        if existing is not None:
            if existing.fingerprint == statement.fingerprint:
                return False
            raise StatementConflictError(statement.id)
        self._by_id[statement.id] = statement
        self._by_actor.setdefault(statement.actor_key, []).append(statement)
        return True

    async def get(self, statement_id: str) -> Statement | None:
        return self._by_id.get(statement_id)

    async def query(
        self, actor_key: str, query: StatementQuery | None = None
    ) -> list[Statement]:
        q = query or StatementQuery()
        matched = [
            s
            for s in self._by_actor.get(actor_key, ())
            if (
                q.activity_id is None
                or activity_matches(s.activity_id, q.activity_id, related=q.related_activities)
            )
            and (q.verb_id is None or s.verb_id == q.verb_id)
            and (q.registration is None or s.registration == q.registration)
        ]
        matched.sort(key=sort_key)
        end = None if q.limit is None else q.offset + q.limit
        return matched[q.offset : end]

    async def iter_all(self, batch_size: int = 500) -> AsyncIterator[list[Statement]]:
        ordered = sorted(self._by_id.values(), key=lambda s: s.id)
        for start in range(0, len(ordered), batch_size):
            yield ordered[start : start + batch_size]
