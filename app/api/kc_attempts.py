"""Knowledge-check attempts and their summaries.

  GET /v1/kc-attempts?actor=...                   one learner's attempts
  GET /v1/kc-attempts/summary?actor=...           per-assessment summary
  GET /v1/admin/kc-attempts?course_id=|actor=     attempts across learners (admin)
  GET /v1/admin/kc-attempts/summary?course_id=|actor=

The admin summary groups by learner when filtered by course, and by
assessment when filtered by learner.
"""

from __future__ import annotations

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.api.dependencies import require_admin, store_unavailable
from app.core.retry import StoreUnavailableError, with_retries
from app.models.knowledge_check import KcAttempt, KcSummary
from app.repos import stores
from app.repos.kc_attempt_repo import KcAttemptQuery
from app.services.ingestion import normalize_actor_key
from app.services.knowledge_checks import summarize_by_actor, summarize_by_assessment

router = APIRouter(prefix="/v1/kc-attempts", tags=["knowledge-checks"])
admin_router = APIRouter(
    prefix="/v1/admin/kc-attempts",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

MAX_ATTEMPTS = 1000


class KcAttemptOut(BaseModel):
    statement_id: str
    actor_key: str
    course_id: str
    assessment_id: str
    assessment_name: str | None
    verb_id: str
    registration: str | None
    success: bool | None
    score_scaled: float | None
    score_raw: float | None
    score_max: float | None
    score_percent: float | None
    response: str | None
    interaction_type: str | None
    timestamp: datetime.datetime

    @staticmethod
    def from_attempt(a: KcAttempt) -> KcAttemptOut:
        return KcAttemptOut(
            statement_id=a.statement_id,
            actor_key=a.actor_key,
            course_id=a.course_id,
            assessment_id=a.assessment_id,
            assessment_name=a.assessment_name,
            verb_id=a.verb_id,
            registration=a.registration,
            success=a.success,
            score_scaled=a.score_scaled,
            score_raw=a.score_raw,
            score_max=a.score_max,
            score_percent=a.score_percent,
            response=a.response,
            interaction_type=a.interaction_type,
            timestamp=a.timestamp,
        )


class SummaryStatsOut(BaseModel):
    attempts: int
    scored_attempts: int
    average_score_percent: float | None
    best_score_percent: float | None
    last_score_percent: float | None
    success_rate_percent: int | None
    last_attempt_at: datetime.datetime | None


class AssessmentSummaryOut(SummaryStatsOut):
    assessment_id: str
    assessment_name: str | None


class ActorSummaryOut(SummaryStatsOut):
    actor_key: str


def _stats(s: KcSummary) -> dict:
    return {
        "attempts": s.attempts,
        "scored_attempts": s.scored_attempts,
        "average_score_percent": s.average_score_percent,
        "best_score_percent": s.best_score_percent,
        "last_score_percent": s.last_score_percent,
        "success_rate_percent": s.success_rate_percent,
        "last_attempt_at": s.last_attempt_at,
    }


def _by_assessment(attempts: list[KcAttempt]) -> list[AssessmentSummaryOut]:
    return [
        AssessmentSummaryOut(assessment_id=s.key, assessment_name=s.name, **_stats(s))
        for s in summarize_by_assessment(attempts)
    ]


def _by_actor(attempts: list[KcAttempt]) -> list[ActorSummaryOut]:
    return [ActorSummaryOut(actor_key=s.key, **_stats(s)) for s in summarize_by_actor(attempts)]


async def _load(query: KcAttemptQuery) -> list[KcAttempt]:
    try:
        return await with_retries(
            lambda: stores.kc_attempt_repo.query(query), name="kc_attempts.query"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None


ActorParam = Annotated[str, Query(min_length=1, description="Actor key, e.g. an email")]
LimitParam = Annotated[int, Query(ge=1, le=MAX_ATTEMPTS)]


# ---------------------------------------------------------------------------
# Learner
# ---------------------------------------------------------------------------


@router.get("", response_model=list[KcAttemptOut])
async def list_attempts(
    actor: ActorParam,
    course_id: str | None = None,
    registration: str | None = None,
    assessment_id: str | None = None,
    limit: LimitParam = MAX_ATTEMPTS,
) -> list[KcAttemptOut]:
    attempts = await _load(
        KcAttemptQuery(
            actor_key=normalize_actor_key(actor),
            course_id=course_id,
            registration=registration,
            assessment_id=assessment_id,
            limit=limit,
        )
    )
    return [KcAttemptOut.from_attempt(a) for a in attempts]


@router.get("/summary", response_model=list[AssessmentSummaryOut])
async def summarize_attempts(
    actor: ActorParam,
    course_id: str | None = None,
    registration: str | None = None,
) -> list[AssessmentSummaryOut]:
    attempts = await _load(
        KcAttemptQuery(
            actor_key=normalize_actor_key(actor),
            course_id=course_id,
            registration=registration,
        )
    )
    return _by_assessment(attempts)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def _admin_query(
    actor: str | None, course_id: str | None, registration: str | None, **extra
) -> KcAttemptQuery:
    if not actor and not course_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="actor or course_id is required",
        )
    return KcAttemptQuery(
        actor_key=normalize_actor_key(actor) if actor else None,
        course_id=course_id or None,
        registration=registration,
        **extra,
    )


@admin_router.get("", response_model=list[KcAttemptOut])
async def admin_list_attempts(
    actor: str | None = None,
    course_id: str | None = None,
    registration: str | None = None,
    assessment_id: str | None = None,
    limit: LimitParam = MAX_ATTEMPTS,
) -> list[KcAttemptOut]:
    query = _admin_query(
        actor, course_id, registration, assessment_id=assessment_id, limit=limit
    )
    return [KcAttemptOut.from_attempt(a) for a in await _load(query)]


@admin_router.get(
    "/summary", response_model=list[AssessmentSummaryOut] | list[ActorSummaryOut]
)
async def admin_summarize_attempts(
    actor: str | None = None,
    course_id: str | None = None,
    registration: str | None = None,
) -> list[AssessmentSummaryOut] | list[ActorSummaryOut]:
    attempts = await _load(_admin_query(actor, course_id, registration))
    if actor:
        return _by_assessment(attempts)
    return _by_actor(attempts)
