"""xAPI document storage: State, Activity Profile and Agent Profile.

Documents are opaque: the body is stored as sent, with its Content-Type,
and returned unchanged.  A save overwrites; deleting a missing document is
not an error.

State documents named "resume" or "bookmark" outlive a single launch.
Content packages start every launch with a new registration, so these
are also saved without the registration, and reads look there first.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from app.core.metrics import XAPI_DOCUMENT_OPERATIONS
from app.core.retry import with_retries
from app.models.document import DocumentKey, XapiDocument
from app.repos import stores
from app.repos.document_repo import DocumentRepo

logger = logging.getLogger(__name__)

PERSISTENT_STATE_IDS = frozenset({"resume", "bookmark"})


def state_key(
    activity_id: str, actor_key: str, state_id: str, registration: str | None = None
) -> DocumentKey:
    return DocumentKey(
        kind="state",
        document_id=state_id,
        activity_id=activity_id,
        actor_key=actor_key,
        registration=registration or "",
    )


def activity_profile_key(activity_id: str, profile_id: str) -> DocumentKey:
    return DocumentKey(kind="activity_profile", document_id=profile_id, activity_id=activity_id)


def agent_profile_key(actor_key: str, profile_id: str) -> DocumentKey:
    return DocumentKey(kind="agent_profile", document_id=profile_id, actor_key=actor_key)


class DocumentService:
    def __init__(self, repo: DocumentRepo) -> None:
        self._repo = repo

    # ---- generic ----

    async def save(self, key: DocumentKey, content: bytes, content_type: str) -> None:
        document = XapiDocument(
            key=key, content=content, content_type=content_type, updated=datetime.now(UTC)
        )
        await with_retries(lambda: self._repo.put(document), name="documents.put")
        XAPI_DOCUMENT_OPERATIONS.labels(kind=key.kind, operation="save").inc()

    async def get(self, key: DocumentKey) -> XapiDocument | None:
        document = await with_retries(lambda: self._repo.get(key), name="documents.get")
        XAPI_DOCUMENT_OPERATIONS.labels(
            kind=key.kind, operation="hit" if document is not None else "miss"
        ).inc()
        return document

    async def delete(self, key: DocumentKey) -> None:
        deleted = await with_retries(lambda: self._repo.delete(key), name="documents.delete")
        XAPI_DOCUMENT_OPERATIONS.labels(kind=key.kind, operation="delete").inc()
        if not deleted:
            logger.debug("Delete of missing %s document %s", key.kind, key.document_id)

    # ---- state ----

    async def save_state(
        self,
        activity_id: str,
        actor_key: str,
        state_id: str,
        registration: str | None,
        content: bytes,
        content_type: str,
    ) -> None:
        if state_id in PERSISTENT_STATE_IDS:
            await self.save(state_key(activity_id, actor_key, state_id), content, content_type)
            if not registration:
                return
        await self.save(
            state_key(activity_id, actor_key, state_id, registration), content, content_type
        )

    async def get_state(
        self, activity_id: str, actor_key: str, state_id: str, registration: str | None
    ) -> XapiDocument | None:
        if state_id in PERSISTENT_STATE_IDS:
            document = await self.get(state_key(activity_id, actor_key, state_id))
            if document is not None or not registration:
                return document
        return await self.get(state_key(activity_id, actor_key, state_id, registration))

    async def delete_state(
        self, activity_id: str, actor_key: str, state_id: str, registration: str | None
    ) -> None:
        if state_id in PERSISTENT_STATE_IDS:
            await self.delete(state_key(activity_id, actor_key, state_id))
            if not registration:
                return
        await self.delete(state_key(activity_id, actor_key, state_id, registration))


document_service = DocumentService(stores.document_repo)
