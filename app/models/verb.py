from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

VerbCategory = Literal["start", "completion", "interaction", "custom", "unknown"]
VerbAction = Literal[
    "mark_started",
    "mark_completed",
    "mark_passed",
    "mark_failed",
    "track_interaction",
    "track_answer",
    "track_attempt",
    "track_download",
    "track_share",
    "track_bookmark",
    "track_access",
    "none",
]
ClassificationSource = Literal["builtin", "override", "heuristic", "default"]

# "unknown" is classifier output only; admins cannot configure it.
CONFIGURABLE_CATEGORIES: tuple[str, ...] = ("start", "completion", "interaction", "custom")


@dataclass(frozen=True, slots=True)
class VerbConfig:
    """Admin-managed classification for one verb IRI."""

    verb_id: str
    category: VerbCategory
    action: VerbAction
    description: str = ""


@dataclass(frozen=True, slots=True)
class VerbClassification:
    category: VerbCategory
    action: VerbAction
    source: ClassificationSource

    @property
    def is_known(self) -> bool:
        return self.category != "unknown"


@dataclass(frozen=True, slots=True)
class VerbUsage:
    """Approximate usage counters for one verb id."""

    verb_id: str
    count: int = 0
    distinct_actors: int = 0
    distinct_activities: int = 0
    last_seen: datetime | None = None
