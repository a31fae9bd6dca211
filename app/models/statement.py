from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class Score:
    scaled: float | None = None
    raw: float | None = None
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True, slots=True)
class StatementResult:
    success: bool | None = None
    completion: bool | None = None
    score: Score | None = None
    duration: str | None = None  # ISO-8601 duration, informational only

    @staticmethod
    def from_payload(raw: dict[str, Any] | None) -> StatementResult | None:
        # `raw` has already been validated at ingestion; this only rebuilds
        # the typed view from stored JSON.
        if not raw:
            return None
        score_raw = raw.get("score")
        score = None
        if score_raw:
            score = Score(
                scaled=score_raw.get("scaled"),
                raw=score_raw.get("raw"),
                min=score_raw.get("min"),
                max=score_raw.get("max"),
            )
        return StatementResult(
            success=raw.get("success"),
            completion=raw.get("completion"),
            score=score,
            duration=raw.get("duration"),
        )


@dataclass(frozen=True, slots=True)
class Statement:
    """One immutable learning record.

    `payload` is the full JSON document as accepted (with id/stored/timestamp
    filled in).  `fingerprint` is a digest of the document as the client sent
    it, and is what decides duplicate vs. conflict on re-submission.
    """

    id: str
    actor_key: str
    verb_id: str
    activity_id: str
    timestamp: datetime  # event time, tz-aware UTC
    stored: datetime  # receipt time, tz-aware UTC
    result: StatementResult | None = None
    registration: str | None = None
    fingerprint: str = ""
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def score(self) -> Score | None:
        return self.result.score if self.result is not None else None
