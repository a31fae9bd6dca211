"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import CourseProgressRow
from app.models.progress import Progress

_VALUE_COLUMNS = (
    "completion_status",
    "score",
    "time_spent_seconds",
    "progress_percent",
    "started_at",
    "completed_at",
    "statement_count",
    "last_activity_at",
    "completion_verb_id",
    "completion_statement_id",
    "success",
)


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, actor_key: str, course_id: str) -> Progress | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(CourseProgressRow, (actor_key, course_id))
            return None if row is None else _row_to_progress(row)

    async def list_for_actor(self, actor_key: str) -> list[Progress]:
        stmt = (
            select(CourseProgressRow)
            .where(CourseProgressRow.actor_key == actor_key)
            .order_by(CourseProgressRow.course_id)
        )
        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_progress(r) for r in rows]

    async def put(self, progress: Progress) -> None:
        values = {name: getattr(progress, name) for name in _VALUE_COLUMNS}
        stmt = pg_insert(CourseProgressRow).values(
            actor_key=progress.actor_key, course_id=progress.course_id, **values
        )
        # Single-statement upsert: readers see the old row or the new row,
        # never a mix.
        stmt = stmt.on_conflict_do_update(
            index_elements=[CourseProgressRow.actor_key, CourseProgressRow.course_id],
            set_={name: stmt.excluded[name] for name in _VALUE_COLUMNS},
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(stmt)


def _row_to_progress(row: CourseProgressRow) -> Progress:
    return Progress(
        actor_key=row.actor_key,
        course_id=row.course_id,
        completion_status=row.completion_status,  # type: ignore[arg-type]
        score=row.score,
        time_spent_seconds=row.time_spent_seconds,
        progress_percent=row.progress_percent,
        started_at=row.started_at,
        completed_at=row.completed_at,
        statement_count=row.statement_count,
        last_activity_at=row.last_activity_at,
        completion_verb_id=row.completion_verb_id,
        completion_statement_id=row.completion_statement_id,
        success=row.success,
    )
