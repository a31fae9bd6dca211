"""Admin module completion rules, per course.

  GET    /v1/admin/courses/{course_id}/module-rules
  PUT    /v1/admin/courses/{course_id}/module-rules   replace the whole list
  DELETE /v1/admin/courses/{course_id}/module-rules

Rules are read on every module-progress request, so a change applies to
the next read.  All endpoints require an admin API key (X-API-Key).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.dependencies import require_admin, store_unavailable
from app.core.retry import StoreUnavailableError, with_retries
from app.models.module_rule import ModuleRule
from app.repos import stores
from app.services.course_directory import course_directory

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/admin/courses",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

MAX_RULES = 200

MatchType = Annotated[str, Field(pattern=r"^(prefix|contains)$")]


class ModuleRuleIn(BaseModel):
    module_id: str = Field(min_length=1, max_length=200)
    match_value: str = Field(min_length=1, max_length=2048)
    match_type: MatchType = "prefix"
    completion_verbs: list[str] = Field(default_factory=list)
    score_threshold: float | None = Field(default=None, ge=0, le=100)

    def to_rule(self) -> ModuleRule:
        return ModuleRule(
            module_id=self.module_id,
            match_value=self.match_value,
            match_type=self.match_type,  # type: ignore[arg-type]
            completion_verbs=tuple(self.completion_verbs),
            score_threshold=self.score_threshold,
        )


class ModuleRuleOut(BaseModel):
    module_id: str
    match_value: str
    match_type: str
    completion_verbs: list[str]
    score_threshold: float | None


class ModuleRulesBody(BaseModel):
    rules: list[ModuleRuleIn] = Field(max_length=MAX_RULES)


class ModuleRulesOut(BaseModel):
    course_id: str
    rules: list[ModuleRuleOut]

    @staticmethod
    def build(course_id: str, rules: list[ModuleRule]) -> ModuleRulesOut:
        return ModuleRulesOut(
            course_id=course_id,
            rules=[
                ModuleRuleOut(
                    module_id=r.module_id,
                    match_value=r.match_value,
                    match_type=r.match_type,
                    completion_verbs=list(r.completion_verbs),
                    score_threshold=r.score_threshold,
                )
                for r in rules
            ],
        )


async def _require_course(course_id: str) -> None:
    if await course_directory.get(course_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown course {course_id}",
        )


@router.get("/{course_id}/module-rules", response_model=ModuleRulesOut)
async def get_module_rules(course_id: str) -> ModuleRulesOut:
    try:
        rules = await with_retries(
            lambda: stores.module_rule_repo.get(course_id), name="module_rules.get"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return ModuleRulesOut.build(course_id, rules)


@router.put("/{course_id}/module-rules", response_model=ModuleRulesOut)
async def put_module_rules(course_id: str, body: ModuleRulesBody) -> ModuleRulesOut:
    rules = [r.to_rule() for r in body.rules]
    try:
        await _require_course(course_id)
        await with_retries(
            lambda: stores.module_rule_repo.put(course_id, rules), name="module_rules.put"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    logger.info("Module rules saved: %d rules", len(rules), extra={"course_id": course_id})
    return ModuleRulesOut.build(course_id, rules)


@router.delete("/{course_id}/module-rules", status_code=status.HTTP_204_NO_CONTENT)
async def delete_module_rules(course_id: str) -> None:
    try:
        deleted = await with_retries(
            lambda: stores.module_rule_repo.delete(course_id), name="module_rules.delete"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No module rules for course {course_id}",
        )
    logger.info("Module rules deleted", extra={"course_id": course_id})
