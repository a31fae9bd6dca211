"""PostgreSQL implementation of ModuleRuleRepo.

One row per course; the rule list is stored as a JSONB array so a PUT
replaces it in a single statement.
"""

from __future__ import annotations

import datetime
from dataclasses import asdict
from typing import Any

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import ModuleRulesRow
from app.models.module_rule import ModuleRule


class PgModuleRuleRepo:
    """Satisfies the ModuleRuleRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, course_id: str) -> list[ModuleRule]:
        async with session_scope(self._session_factory) as session:
            row = await session.get(ModuleRulesRow, course_id)
            return [] if row is None else [_rule_from_json(r) for r in row.rules]

    async def put(self, course_id: str, rules: list[ModuleRule]) -> None:
        now = datetime.datetime.now(datetime.UTC)
        stmt = pg_insert(ModuleRulesRow).values(
            course_id=course_id, rules=[asdict(r) for r in rules], updated=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ModuleRulesRow.course_id],
            set_={"rules": stmt.excluded.rules, "updated": stmt.excluded.updated},
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(stmt)

    async def delete(self, course_id: str) -> bool:
        stmt = delete(ModuleRulesRow).where(ModuleRulesRow.course_id == course_id)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0


def _rule_from_json(raw: dict[str, Any]) -> ModuleRule:
    return ModuleRule(
        module_id=raw["module_id"],
        match_value=raw["match_value"],
        match_type=raw.get("match_type", "prefix"),
        completion_verbs=tuple(raw.get("completion_verbs") or ()),
        score_threshold=raw.get("score_threshold"),
    )
