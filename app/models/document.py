from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

DocumentKind = Literal["state", "activity_profile", "agent_profile"]


@dataclass(frozen=True, slots=True)
class DocumentKey:
    """Identity of one stored xAPI document.

    Fields a kind does not use are empty strings rather than None so the
    key can be a composite primary key: activity profiles have no actor,
    agent profiles have no activity, only state documents carry a
    registration.
    """

    kind: DocumentKind
    document_id: str
    activity_id: str = ""
    actor_key: str = ""
    registration: str = ""


@dataclass(frozen=True, slots=True)
class XapiDocument:
    key: DocumentKey
    content: bytes
    content_type: str
    updated: datetime
