"""PostgreSQL implementation of CourseRepo (read-only)."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import CourseRow
from app.models.course import Course


class PgCourseRepo:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_all(self) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.course_id)
        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                Course(
                    course_id=r.course_id,
                    activity_id=r.activity_id,
                    title=r.title or "",
                    expected_interactions=r.expected_interactions,
                )
                for r in rows
            ]
