"""PostgreSQL implementation of StatementRepo."""

from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import StatementRow
from app.models.statement import Statement, StatementResult
from app.repos.statement_repo import (
    StatementConflictError,
    StatementQuery,
    partition_key,
)


class PgStatementRepo:
    """Satisfies the StatementRepo Protocol using PostgreSQL via SQLAlchemy.

    Each call runs in its own short transaction; statements are never
    updated, so there is nothing to coordinate across calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, statement: Statement) -> bool:
        insert_stmt = (
            pg_insert(StatementRow)
            .values(
                id=statement.id,
                partition_key=partition_key(statement.actor_key),
                actor_key=statement.actor_key,
                verb_id=statement.verb_id,
                activity_id=statement.activity_id,
                registration=statement.registration,
                timestamp=statement.timestamp,
                stored=statement.stored,
                fingerprint=statement.fingerprint,
                payload=statement.payload,
            )
            .on_conflict_do_nothing(index_elements=[StatementRow.id])
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(insert_stmt)
            if result.rowcount == 1:
                return True
            existing = await session.scalar(
                select(StatementRow.fingerprint).where(StatementRow.id == statement.id)
            )
        if existing == statement.fingerprint:
            return False
        raise StatementConflictError(statement.id)

    async def get(self, statement_id: str) -> Statement | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(StatementRow, statement_id)
            return None if row is None else _row_to_statement(row)

    async def query(
        self, actor_key: str, query: StatementQuery | None = None
    ) -> list[Statement]:
        q = query or StatementQuery()
        stmt = select(StatementRow).where(
            StatementRow.partition_key == partition_key(actor_key),
            StatementRow.actor_key == actor_key,
        )
        if q.activity_id is not None:
            if q.related_activities:
                stmt = stmt.where(
                    or_(
                        StatementRow.activity_id == q.activity_id,
                        StatementRow.activity_id.startswith(
                            q.activity_id + "/", autoescape=True
                        ),
                    )
                )
            else:
                stmt = stmt.where(StatementRow.activity_id == q.activity_id)
        if q.verb_id is not None:
            stmt = stmt.where(StatementRow.verb_id == q.verb_id)
        if q.registration is not None:
            stmt = stmt.where(StatementRow.registration == q.registration)
        stmt = stmt.order_by(StatementRow.timestamp, StatementRow.id).offset(q.offset)
        if q.limit is not None:
            stmt = stmt.limit(q.limit)

        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_statement(r) for r in rows]

    async def iter_all(self, batch_size: int = 500) -> AsyncIterator[list[Statement]]:
        # Keyset pagination on the primary key so each batch is its own
        # short transaction.
        last_id: str | None = None
        while True:
            stmt = select(StatementRow).order_by(StatementRow.id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(StatementRow.id > last_id)
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(stmt)).scalars().all()
                batch = [_row_to_statement(r) for r in rows]
            if not batch:
                return
            yield batch
            last_id = batch[-1].id


def _row_to_statement(row: StatementRow) -> Statement:
    return Statement(
        id=row.id,
        actor_key=row.actor_key,
        verb_id=row.verb_id,
        activity_id=row.activity_id,
        timestamp=row.timestamp,
        stored=row.stored,
        result=StatementResult.from_payload(row.payload.get("result")),
        registration=row.registration,
        fingerprint=row.fingerprint,
        payload=row.payload,
    )
