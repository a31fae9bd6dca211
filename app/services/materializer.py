"""Progress materialization: statement history -> one Progress record.

compute_progress() is a pure function of the pair's statements, the course
directory, a classifier snapshot and the policy.  It has no clock, no I/O
and no dependence on the order statements arrived in, so re-running it on
the same inputs produces an identical record.  That is what makes
concurrent materializations of one pair safe without locks: each is a
read-then-whole-record-overwrite of the same value.

ProgressMaterializer wraps it with the store reads/writes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import SETTINGS
from app.core.metrics import MATERIALIZATION_DURATION, MATERIALIZATIONS
from app.core.retry import StoreUnavailableError, with_retries
from app.models.course import Course
from app.models.progress import CompletionStatus, Progress
from app.models.statement import Score, Statement
from app.models.verb import VerbClassification
from app.repos import stores
from app.repos.progress_repo import ProgressRepo
from app.repos.statement_repo import StatementQuery, StatementRepo, sort_key
from app.repos.verb_config_repo import VerbConfigRepo
from app.services.activity_resolver import resolve_course
from app.services.course_directory import CourseDirectory, course_directory, find_course
from app.services.verb_classifier import VerbClassifier, load_classifier

logger = logging.getLogger(__name__)

MAX_INCOMPLETE_PERCENT = 95

_COMPLETION_STATUS: dict[str, CompletionStatus] = {
    "mark_passed": "passed",
    "mark_failed": "failed",
    "mark_completed": "completed",
}


@dataclass(frozen=True, slots=True)
class ProgressPolicy:
    expected_interactions: int = 80
    idle_gap_seconds: int = 300

    @staticmethod
    def from_settings() -> ProgressPolicy:
        return ProgressPolicy(
            expected_interactions=SETTINGS.expected_interactions,
            idle_gap_seconds=SETTINGS.idle_gap_seconds,
        )


def round_half_up(value: Decimal | float | int) -> int:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _clamp_percent(value: int) -> int:
    return max(0, min(100, value))


def score_percent(score: Score | None) -> int | None:
    """Normalize an xAPI score to 0-100.

    Priority: scaled, then raw/max (max > 0), then bare raw.
    """
    if score is None:
        return None
    if score.scaled is not None:
        return _clamp_percent(round_half_up(Decimal(str(score.scaled)) * 100))
    if score.raw is not None and score.max is not None and score.max > 0:
        ratio = Decimal(str(score.raw)) / Decimal(str(score.max))
        return _clamp_percent(round_half_up(ratio * 100))
    if score.raw is not None:
        return _clamp_percent(round_half_up(score.raw))
    return None


def active_seconds(statements: Sequence[Statement], idle_gap_seconds: int) -> int:
    """Sum of consecutive gaps no longer than idle_gap_seconds.

    `statements` must already be ordered by (timestamp, id).  A single
    statement counts as 1 s; several statements whose gaps are all idle (or
    all zero) count as one second each.
    """
    if not statements:
        return 0
    if len(statements) == 1:
        return 1

    total = Decimal(0)
    for prev, cur in zip(statements, statements[1:]):
        gap = (cur.timestamp - prev.timestamp).total_seconds()
        if gap <= idle_gap_seconds:
            total += Decimal(str(gap))
    seconds = round_half_up(total)
    return seconds if seconds > 0 else max(1, len(statements))


def _first(
    pairs: Iterable[tuple[Statement, VerbClassification]], actions: tuple[str, ...]
) -> Statement | None:
    for statement, classification in pairs:
        if classification.action in actions:
            return statement
    return None


def compute_progress(
    actor_key: str,
    course: Course,
    statements: Iterable[Statement],
    courses: Sequence[Course],
    classifier: VerbClassifier,
    policy: ProgressPolicy,
) -> Progress | None:
    """Derive the Progress record for (actor_key, course), or None.

    Only statements whose activity resolves to `course` and whose verb
    classifies as something other than unknown take part.  None means no
    such statement exists and nothing should be written.
    """
    relevant: list[tuple[Statement, VerbClassification]] = []
    for statement in statements:
        if statement.actor_key != actor_key:
            continue
        resolved = resolve_course(statement.activity_id, courses)
        if resolved is None or resolved.course_id != course.course_id:
            continue
        classification = classifier.classify(statement.verb_id)
        if not classification.is_known:
            continue
        relevant.append((statement, classification))

    if not relevant:
        return None

    # (timestamp, id) order makes "earliest" and the time deltas
    # independent of arrival order.
    relevant.sort(key=lambda pair: sort_key(pair[0]))
    ordered = [s for s, _ in relevant]

    status: CompletionStatus = "in_progress"
    started = _first(relevant, ("mark_started",))
    started_at = started.timestamp if started is not None else None

    completion = _first(relevant, ("mark_passed", "mark_failed")) or _first(
        relevant, ("mark_completed",)
    )
    completed_at = None
    score = None
    success = None
    if completion is not None:
        action = classifier.classify(completion.verb_id).action
        status = _COMPLETION_STATUS[action]
        completed_at = completion.timestamp
        if started_at is None:
            started_at = completed_at
        score = score_percent(completion.score)
        if completion.result is not None:
            success = completion.result.success
        percent = 100
    else:
        expected = course.expected_interactions or policy.expected_interactions
        percent = min(
            MAX_INCOMPLETE_PERCENT,
            round_half_up(Decimal(len(ordered)) * 100 / Decimal(expected)),
        )

    return Progress(
        actor_key=actor_key,
        course_id=course.course_id,
        completion_status=status,
        score=score,
        time_spent_seconds=active_seconds(ordered, policy.idle_gap_seconds),
        progress_percent=percent,
        started_at=started_at,
        completed_at=completed_at,
        statement_count=len(ordered),
        last_activity_at=ordered[-1].timestamp,
        completion_verb_id=completion.verb_id if completion is not None else None,
        completion_statement_id=completion.id if completion is not None else None,
        success=success,
    )


class ProgressMaterializer:
    """Reads a pair's history, computes, and overwrites its Progress row."""

    def __init__(
        self,
        statements: StatementRepo,
        progress: ProgressRepo,
        verb_configs: VerbConfigRepo,
        directory: CourseDirectory,
        policy: ProgressPolicy | None = None,
    ) -> None:
        self._statements = statements
        self._progress = progress
        self._verb_configs = verb_configs
        self._directory = directory
        self._policy = policy or ProgressPolicy.from_settings()

    async def materialize(self, actor_key: str, course_id: str) -> Progress | None:
        """Recompute and persist; None when there is nothing to write.

        Store failures are retried and then raised as StoreUnavailableError;
        the previous Progress row is left as it was.
        """
        log_ctx = {"actor_key": actor_key, "course_id": course_id}
        started = time.perf_counter()
        try:
            courses = await self._directory.list_courses()
            course = find_course(courses, course_id)
            if course is None:
                MATERIALIZATIONS.labels(outcome="unknown_course").inc()
                logger.warning("Materialization skipped: unknown course", extra=log_ctx)
                return None

            classifier = await with_retries(
                lambda: load_classifier(self._verb_configs), name="verb_configs.list"
            )
            history = await with_retries(
                lambda: self._statements.query(
                    actor_key,
                    StatementQuery(activity_id=course.activity_id, related_activities=True),
                ),
                name="statements.query",
            )

            progress = compute_progress(
                actor_key, course, history, courses, classifier, self._policy
            )
            if progress is None:
                MATERIALIZATIONS.labels(outcome="empty").inc()
                logger.info("No progress-relevant statements; nothing written", extra=log_ctx)
                return None

            await with_retries(lambda: self._progress.put(progress), name="progress.put")
        finally:
            MATERIALIZATION_DURATION.observe(time.perf_counter() - started)

        MATERIALIZATIONS.labels(outcome="written").inc()
        logger.info(
            "Progress written: status=%s percent=%d statements=%d",
            progress.completion_status,
            progress.progress_percent,
            progress.statement_count,
            extra=log_ctx,
        )
        return progress

    async def materialize_safely(self, actor_key: str, course_id: str) -> None:
        """Background entry point: failures are logged and counted, never raised."""
        try:
            await self.materialize(actor_key, course_id)
        except StoreUnavailableError:
            MATERIALIZATIONS.labels(outcome="failed").inc()
            logger.exception(
                "Materialization failed: store unavailable",
                extra={"actor_key": actor_key, "course_id": course_id},
            )
        except Exception:
            MATERIALIZATIONS.labels(outcome="failed").inc()
            logger.exception(
                "Materialization failed",
                extra={"actor_key": actor_key, "course_id": course_id},
            )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

progress_materializer = ProgressMaterializer(
    stores.statement_repo,
    stores.progress_repo,
    stores.verb_config_repo,
    course_directory,
)
