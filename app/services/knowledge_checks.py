"""Knowledge-check attempts: recognise them, project them, summarize them.

A statement counts as a knowledge-check attempt when its verb is
classified as an answer or attempt, or when its object is a question
(an interactionType, or a definition type naming an interaction or
question) and it carries an outcome: a response, a score or a success
flag.

Attempts are recorded at ingestion for statements that resolve to a
course (see app/services/ingestion.py) and summarized on read.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.models.course import Course
from app.models.knowledge_check import KcAttempt, KcSummary
from app.models.statement import Statement
from app.models.verb import VerbClassification
from app.repos.kc_attempt_repo import attempt_sort_key

_ATTEMPT_ACTIONS = ("track_answer", "track_attempt")


def _definition(statement: Statement) -> dict[str, Any]:
    obj = statement.payload.get("object")
    definition = obj.get("definition") if isinstance(obj, dict) else None
    return definition if isinstance(definition, dict) else {}


def _response(statement: Statement) -> str | None:
    result = statement.payload.get("result")
    response = result.get("response") if isinstance(result, dict) else None
    return response if isinstance(response, str) and response else None


def _display_name(definition: dict[str, Any]) -> str | None:
    names = definition.get("name")
    if not isinstance(names, dict) or not names:
        return None
    for lang in ("en-US", "en"):
        if isinstance(names.get(lang), str):
            return names[lang]
    first = next(iter(names.values()))
    return first if isinstance(first, str) else None


def is_knowledge_check(statement: Statement, classification: VerbClassification) -> bool:
    if classification.action in _ATTEMPT_ACTIONS:
        return True

    definition = _definition(statement)
    interaction_type = definition.get("interactionType")
    definition_type = definition.get("type")
    definition_type = definition_type if isinstance(definition_type, str) else ""
    is_question = bool(interaction_type) or (
        "interaction" in definition_type or "question" in definition_type
    )
    if not is_question:
        return False

    score = statement.score
    has_score = score is not None and (score.scaled is not None or score.raw is not None)
    has_success = statement.result is not None and statement.result.success is not None
    return _response(statement) is not None or has_score or has_success


def attempt_from_statement(statement: Statement, course: Course) -> KcAttempt:
    definition = _definition(statement)
    interaction_type = definition.get("interactionType")
    score = statement.score
    return KcAttempt(
        statement_id=statement.id,
        actor_key=statement.actor_key,
        course_id=course.course_id,
        assessment_id=statement.activity_id,
        verb_id=statement.verb_id,
        timestamp=statement.timestamp,
        assessment_name=_display_name(definition),
        registration=statement.registration,
        success=statement.result.success if statement.result is not None else None,
        score_scaled=score.scaled if score is not None else None,
        score_raw=score.raw if score is not None else None,
        score_max=score.max if score is not None else None,
        response=_response(statement),
        interaction_type=interaction_type if isinstance(interaction_type, str) else None,
    )


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def _round(value: float, places: str) -> Decimal:
    return Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _one_decimal(value: float | None) -> float | None:
    return None if value is None else float(_round(value, "0.1"))


def summarize(key: str, attempts: list[KcAttempt]) -> KcSummary:
    """Summary of a non-empty group of attempts."""
    scores = [s for s in (a.score_percent for a in attempts) if s is not None]
    outcomes = [a.success for a in attempts if a.success is not None]
    latest = max(attempts, key=attempt_sort_key)
    name = next((a.assessment_name for a in attempts if a.assessment_name), None)

    return KcSummary(
        key=key,
        attempts=len(attempts),
        scored_attempts=len(scores),
        average_score_percent=_one_decimal(sum(scores) / len(scores)) if scores else None,
        best_score_percent=_one_decimal(max(scores)) if scores else None,
        last_score_percent=_one_decimal(latest.score_percent),
        success_rate_percent=(
            int(_round(sum(outcomes) / len(outcomes) * 100, "1")) if outcomes else None
        ),
        last_attempt_at=latest.timestamp,
        name=name,
    )


def _summarize_groups(
    attempts: Iterable[KcAttempt], group_key: Callable[[KcAttempt], str]
) -> list[KcSummary]:
    groups: dict[str, list[KcAttempt]] = defaultdict(list)
    for attempt in sorted(attempts, key=attempt_sort_key):
        groups[group_key(attempt)].append(attempt)
    return [summarize(key, groups[key]) for key in sorted(groups)]


def summarize_by_assessment(attempts: Iterable[KcAttempt]) -> list[KcSummary]:
    return _summarize_groups(attempts, lambda a: a.assessment_id)


def summarize_by_actor(attempts: Iterable[KcAttempt]) -> list[KcSummary]:
    summaries = _summarize_groups(attempts, lambda a: a.actor_key)
    # Per-actor summaries span assessments, so no title
    return [replace(s, name=None) for s in summaries]
