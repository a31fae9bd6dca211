"""PostgreSQL implementation of VerbConfigRepo."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import VerbConfigurationRow
from app.models.verb import VerbConfig
from app.repos.verb_config_repo import VerbConfigExistsError, VerbConfigNotFoundError


class PgVerbConfigRepo:
    """Satisfies the VerbConfigRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_all(self) -> list[VerbConfig]:
        stmt = select(VerbConfigurationRow).order_by(VerbConfigurationRow.verb_id)
        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_config(r) for r in rows]

    async def get(self, verb_id: str) -> VerbConfig | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(VerbConfigurationRow, verb_id)
            return None if row is None else _row_to_config(row)

    async def create(self, config: VerbConfig) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                session.add(
                    VerbConfigurationRow(
                        verb_id=config.verb_id,
                        category=config.category,
                        action=config.action,
                        description=config.description,
                    )
                )
                await session.flush()
        except IntegrityError:
            raise VerbConfigExistsError(config.verb_id) from None

    async def update(self, config: VerbConfig) -> None:
        stmt = (
            update(VerbConfigurationRow)
            .where(VerbConfigurationRow.verb_id == config.verb_id)
            .values(
                category=config.category,
                action=config.action,
                description=config.description,
            )
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise VerbConfigNotFoundError(config.verb_id)

    async def delete(self, verb_id: str) -> None:
        stmt = delete(VerbConfigurationRow).where(VerbConfigurationRow.verb_id == verb_id)
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise VerbConfigNotFoundError(verb_id)


def _row_to_config(row: VerbConfigurationRow) -> VerbConfig:
    return VerbConfig(
        verb_id=row.verb_id,
        category=row.category,  # type: ignore[arg-type]
        action=row.action,  # type: ignore[arg-type]
        description=row.description or "",
    )
