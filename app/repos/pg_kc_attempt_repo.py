"""PostgreSQL implementation of KcAttemptRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import KcAttemptRow
from app.models.knowledge_check import KcAttempt
from app.repos.kc_attempt_repo import KcAttemptQuery

_VALUE_COLUMNS = (
    "actor_key",
    "course_id",
    "assessment_id",
    "assessment_name",
    "verb_id",
    "registration",
    "success",
    "score_scaled",
    "score_raw",
    "score_max",
    "response",
    "interaction_type",
    "timestamp",
)


class PgKcAttemptRepo:
    """Satisfies the KcAttemptRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, attempt: KcAttempt) -> None:
        values = {name: getattr(attempt, name) for name in _VALUE_COLUMNS}
        stmt = pg_insert(KcAttemptRow).values(statement_id=attempt.statement_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KcAttemptRow.statement_id],
            set_={name: stmt.excluded[name] for name in _VALUE_COLUMNS},
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(stmt)

    async def query(self, query: KcAttemptQuery) -> list[KcAttempt]:
        q = query
        stmt = select(KcAttemptRow)
        if q.actor_key is not None:
            stmt = stmt.where(KcAttemptRow.actor_key == q.actor_key)
        if q.course_id is not None:
            stmt = stmt.where(KcAttemptRow.course_id == q.course_id)
        if q.registration is not None:
            stmt = stmt.where(KcAttemptRow.registration == q.registration)
        if q.assessment_id is not None:
            stmt = stmt.where(KcAttemptRow.assessment_id == q.assessment_id)
        stmt = stmt.order_by(KcAttemptRow.timestamp, KcAttemptRow.statement_id)
        if q.limit is not None:
            stmt = stmt.limit(q.limit)

        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_attempt(r) for r in rows]


def _row_to_attempt(row: KcAttemptRow) -> KcAttempt:
    return KcAttempt(
        statement_id=row.statement_id,
        **{name: getattr(row, name) for name in _VALUE_COLUMNS},
    )
