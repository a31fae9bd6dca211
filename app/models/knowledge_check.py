from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def score_percent_of(
    scaled: float | None, raw: float | None, max_: float | None
) -> float | None:
    """Score as a percentage: scaled first, then raw/max, then raw as given."""
    if scaled is not None:
        return scaled * 100
    if raw is not None and max_ is not None and max_ > 0:
        return raw / max_ * 100
    return raw


@dataclass(frozen=True, slots=True)
class KcAttempt:
    """One answered knowledge-check question, projected from a statement.

    Keyed by the statement id, so re-recording the same statement
    overwrites the same attempt.  `assessment_id` is the statement's object
    id (the question or check); `course_id` is the course it resolved to.
    """

    statement_id: str
    actor_key: str
    course_id: str
    assessment_id: str
    verb_id: str
    timestamp: datetime
    assessment_name: str | None = None
    registration: str | None = None
    success: bool | None = None
    score_scaled: float | None = None
    score_raw: float | None = None
    score_max: float | None = None
    response: str | None = None
    interaction_type: str | None = None

    @property
    def score_percent(self) -> float | None:
        return score_percent_of(self.score_scaled, self.score_raw, self.score_max)


@dataclass(frozen=True, slots=True)
class KcSummary:
    """Aggregate over one group of attempts: an assessment, or an actor.

    Percentages are rounded half-up to one decimal; the success rate to a
    whole number and only over attempts that reported success at all.
    """

    key: str
    attempts: int
    scored_attempts: int
    average_score_percent: float | None
    best_score_percent: float | None
    last_score_percent: float | None
    success_rate_percent: int | None
    last_attempt_at: datetime | None
    name: str | None = None
