from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from app.models.knowledge_check import KcAttempt


@dataclass(frozen=True, slots=True)
class KcAttemptQuery:
    actor_key: str | None = None
    course_id: str | None = None
    registration: str | None = None
    assessment_id: str | None = None
    limit: int | None = None


def attempt_sort_key(attempt: KcAttempt) -> tuple:
    return (attempt.timestamp, attempt.statement_id)


class KcAttemptRepo(Protocol):
    async def upsert(self, attempt: KcAttempt) -> None:
        """Write the attempt, replacing any earlier copy with the same statement id."""
        ...

    async def query(self, query: KcAttemptQuery) -> list[KcAttempt]:
        """Matching attempts, oldest first."""
        ...


class InMemoryKcAttemptRepo:
    def __init__(self) -> None:
        self._by_statement: dict[str, KcAttempt] = {}

    async def upsert(self, attempt: KcAttempt) -> None:
        self._by_statement[attempt.statement_id] = attempt

    async def query(self, query: KcAttemptQuery) -> list[KcAttempt]:
        q = query
        matches = [
            a
            for a in self._by_statement.values()
            if (q.actor_key is None or a.actor_key == q.actor_key)
            and (q.course_id is None or a.course_id == q.course_id)
            and (q.registration is None or a.registration == q.registration)
            and (q.assessment_id is None or a.assessment_id == q.assessment_id)
        ]
        matches.sort(key=attempt_sort_key)
        return matches if q.limit is None else matches[: q.limit]
