from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MatchType = Literal["prefix", "contains"]


@dataclass(frozen=True, slots=True)
class ModuleRule:
    """How to recognise completion of one module inside a course.

    A statement completes the module when its activity id matches
    `match_value` (by prefix or substring), its verb is one of
    `completion_verbs`, and, when `score_threshold` is set, its score
    percent reaches the threshold.
    """

    module_id: str
    match_value: str
    match_type: MatchType = "prefix"
    completion_verbs: tuple[str, ...] = field(default_factory=tuple)
    score_threshold: float | None = None


@dataclass(frozen=True, slots=True)
class ModuleCompletion:
    module_id: str
    completed_at: datetime
    verb_id: str
    statement_id: str
    score_percent: float | None = None
