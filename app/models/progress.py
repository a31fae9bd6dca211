from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

CompletionStatus = Literal["not_started", "in_progress", "completed", "passed", "failed"]


@dataclass(frozen=True, slots=True)
class Progress:
    """Projection / read model for one (actor, course) pair.

    Derived entirely from the pair's statements and overwritten as a whole on
    every materialization.  No updated_at: the same statement set always
    yields an identical record.
    """

    actor_key: str
    course_id: str
    completion_status: CompletionStatus = "not_started"
    score: int | None = None  # 0-100
    time_spent_seconds: int = 0
    progress_percent: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    statement_count: int = 0
    last_activity_at: datetime | None = None
    completion_verb_id: str | None = None
    completion_statement_id: str | None = None
    success: bool | None = None
