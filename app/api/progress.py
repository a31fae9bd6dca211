"""Materialized progress endpoints.

  GET  /v1/progress?actor=...                      all rows for a learner
  GET  /v1/progress/{course_id}?actor=...          one row or 404
  GET  /v1/progress/{course_id}/modules?actor=   module completion from rules
  POST /v1/progress/{course_id}/materialize?actor= synchronous recompute (admin)

Rows are written only by the materializer; these endpoints read them as
they are.  Module progress is not materialized: it is computed on each
request from the learner's statements and the course's module rules.
The admin recompute is the repair path after a course directory
or verb configuration change for one learner; scripts/rematerialize_progress.py
does the same for everyone.
"""

from __future__ import annotations

import datetime
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.api.dependencies import require_admin, store_unavailable
from app.core.retry import StoreUnavailableError, with_retries
from app.models.progress import Progress
from app.repos import stores
from app.repos.statement_repo import StatementQuery
from app.services.course_directory import course_directory
from app.services.ingestion import normalize_actor_key
from app.services.materializer import progress_materializer
from app.services.module_progress import ModuleStatus, compute_module_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class ProgressOut(BaseModel):
    actor_key: str
    course_id: str
    completion_status: str
    score: int | None
    time_spent_seconds: int
    progress_percent: int
    started_at: datetime.datetime | None
    completed_at: datetime.datetime | None
    statement_count: int
    last_activity_at: datetime.datetime | None
    completion_verb_id: str | None
    completion_statement_id: str | None
    success: bool | None

    @staticmethod
    def from_progress(p: Progress) -> ProgressOut:
        return ProgressOut(
            actor_key=p.actor_key,
            course_id=p.course_id,
            completion_status=p.completion_status,
            score=p.score,
            time_spent_seconds=p.time_spent_seconds,
            progress_percent=p.progress_percent,
            started_at=p.started_at,
            completed_at=p.completed_at,
            statement_count=p.statement_count,
            last_activity_at=p.last_activity_at,
            completion_verb_id=p.completion_verb_id,
            completion_statement_id=p.completion_statement_id,
            success=p.success,
        )



class ModuleStatusOut(BaseModel):
    module_id: str
    status: str
    completed_at: datetime.datetime | None = None
    verb_id: str | None = None
    statement_id: str | None = None
    score_percent: float | None = None

    @staticmethod
    def from_status(m: ModuleStatus) -> ModuleStatusOut:
        c = m.completion
        if c is None:
            return ModuleStatusOut(module_id=m.module_id, status=m.status)
        return ModuleStatusOut(
            module_id=m.module_id,
            status=m.status,
            completed_at=c.completed_at,
            verb_id=c.verb_id,
            statement_id=c.statement_id,
            score_percent=c.score_percent,
        )


class ModuleProgressOut(BaseModel):
    actor_key: str
    course_id: str
    registration: str | None
    modules: list[ModuleStatusOut]


ActorParam = Annotated[str, Query(min_length=1, description="Actor key, e.g. an email")]


@router.get("", response_model=list[ProgressOut])
async def list_progress(actor: ActorParam) -> list[ProgressOut]:
    actor_key = normalize_actor_key(actor)
    try:
        rows = await with_retries(
            lambda: stores.progress_repo.list_for_actor(actor_key), name="progress.list"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return [ProgressOut.from_progress(p) for p in rows]


@router.get("/{course_id}", response_model=ProgressOut)
async def get_progress(course_id: str, actor: ActorParam) -> ProgressOut:
    actor_key = normalize_actor_key(actor)
    try:
        row = await with_retries(
            lambda: stores.progress_repo.get(actor_key, course_id), name="progress.get"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No progress")
    return ProgressOut.from_progress(row)


@router.get("/{course_id}/modules", response_model=ModuleProgressOut)
async def get_module_progress(
    course_id: str, actor: ActorParam, registration: str | None = None
) -> ModuleProgressOut:
    """Per-module completion, optionally within one registration."""
    actor_key = normalize_actor_key(actor)
    try:
        course = await course_directory.get(course_id)
        if course is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown course")
        rules = await with_retries(
            lambda: stores.module_rule_repo.get(course_id), name="module_rules.get"
        )
        history = await with_retries(
            lambda: stores.statement_repo.query(
                actor_key,
                StatementQuery(
                    activity_id=course.activity_id,
                    related_activities=True,
                    registration=registration,
                ),
            ),
            name="statements.query",
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    modules = compute_module_progress(history, rules)
    return ModuleProgressOut(
        actor_key=actor_key,
        course_id=course_id,
        registration=registration,
        modules=[ModuleStatusOut.from_status(m) for m in modules],
    )


@router.post(
    "/{course_id}/materialize",
    response_model=ProgressOut,
    dependencies=[Depends(require_admin)],
)
async def materialize_progress(course_id: str, actor: ActorParam) -> ProgressOut:
    actor_key = normalize_actor_key(actor)
    try:
        progress = await progress_materializer.materialize(actor_key, course_id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Nothing to materialize for this actor and course",
        )
    logger.info(
        "Progress re-materialized on request",
        extra={"actor_key": actor_key, "course_id": course_id},
    )
    return ProgressOut.from_progress(progress)
