from __future__ import annotations

from typing import Protocol

from app.models.document import DocumentKey, XapiDocument


class DocumentRepo(Protocol):
    async def get(self, key: DocumentKey) -> XapiDocument | None: ...
    async def put(self, document: XapiDocument) -> None:
        """Create or overwrite the document stored under document.key."""
        ...

    async def delete(self, key: DocumentKey) -> bool:
        """False when nothing was stored under the key."""
        ...


class InMemoryDocumentRepo:
    def __init__(self) -> None:
        self._docs: dict[DocumentKey, XapiDocument] = {}

    async def get(self, key: DocumentKey) -> XapiDocument | None:
        return self._docs.get(key)

    async def put(self, document: XapiDocument) -> None:
        self._docs[document.key] = document

    async def delete(self, key: DocumentKey) -> bool:
        return self._docs.pop(key, None) is not None
