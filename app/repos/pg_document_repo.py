"""PostgreSQL implementation of DocumentRepo."""

from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import session_scope
from app.db.tables import XapiDocumentRow
from app.models.document import DocumentKey, XapiDocument


def _key_columns(key: DocumentKey) -> dict[str, str]:
    return {
        "kind": key.kind,
        "activity_id": key.activity_id,
        "actor_key": key.actor_key,
        "registration": key.registration,
        "document_id": key.document_id,
    }


class PgDocumentRepo:
    """Satisfies the DocumentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: DocumentKey) -> XapiDocument | None:
        pk = (key.kind, key.activity_id, key.actor_key, key.registration, key.document_id)
        async with session_scope(self._session_factory) as session:
            row = await session.get(XapiDocumentRow, pk)
            return None if row is None else _row_to_document(row)

    async def put(self, document: XapiDocument) -> None:
        stmt = pg_insert(XapiDocumentRow).values(
            **_key_columns(document.key),
            content=document.content,
            content_type=document.content_type,
            updated=document.updated,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                XapiDocumentRow.kind,
                XapiDocumentRow.activity_id,
                XapiDocumentRow.actor_key,
                XapiDocumentRow.registration,
                XapiDocumentRow.document_id,
            ],
            set_={
                "content": stmt.excluded.content,
                "content_type": stmt.excluded.content_type,
                "updated": stmt.excluded.updated,
            },
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(stmt)

    async def delete(self, key: DocumentKey) -> bool:
        cols = _key_columns(key)
        stmt = delete(XapiDocumentRow).where(
            *(getattr(XapiDocumentRow, name) == value for name, value in cols.items())
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0


def _row_to_document(row: XapiDocumentRow) -> XapiDocument:
    return XapiDocument(
        key=DocumentKey(
            kind=row.kind,  # type: ignore[arg-type]
            document_id=row.document_id,
            activity_id=row.activity_id,
            actor_key=row.actor_key,
            registration=row.registration,
        ),
        content=row.content,
        content_type=row.content_type,
        updated=row.updated,
    )
