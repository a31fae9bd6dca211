"""Admin verb configuration.

Overrides tell the classifier how to treat verbs outside the built-in ADL
table, and win over the keyword heuristic.  Changes apply from the next
ingestion request or materialization; existing Progress rows are not
recomputed (use the materialize endpoint or the rematerialize script).

All endpoints require an admin API key (X-API-Key).
"""

from __future__ import annotations

import datetime
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import require_admin, store_unavailable
from app.core.retry import StoreUnavailableError, with_retries
from app.models.verb import VerbConfig
from app.repos import stores
from app.repos.verb_config_repo import VerbConfigExistsError, VerbConfigNotFoundError
from app.services.verb_classifier import BUILTIN_VERBS, VerbClassifier, load_classifier
from app.services.verb_usage import rebuild_verb_usage, verb_usage

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/admin/verbs",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

# Same sets as app.models.verb, minus the classifier-only "unknown"
ConfigurableCategory = Annotated[
    str, Field(pattern=r"^(start|completion|interaction|custom)$")
]
ConfigurableAction = Annotated[
    str,
    Field(
        pattern=(
            r"^(mark_started|mark_completed|mark_passed|mark_failed|"
            r"track_interaction|track_answer|track_attempt|track_download|"
            r"track_share|track_bookmark|track_access|none)$"
        )
    ),
]


class VerbConfigBody(BaseModel):
    category: ConfigurableCategory
    action: ConfigurableAction
    description: str = Field(default="", max_length=500)


class VerbConfigIn(VerbConfigBody):
    verb_id: str = Field(min_length=1, max_length=2048)


class VerbUsageOut(BaseModel):
    count: int
    distinct_actors: int
    distinct_activities: int
    last_seen: datetime.datetime | None


class VerbOut(BaseModel):
    verb_id: str
    category: str
    action: str
    description: str
    source: str  # builtin | override
    usage: VerbUsageOut | None = None


class ClassificationOut(BaseModel):
    verb_id: str
    category: str
    action: str
    source: str


class RebuildOut(BaseModel):
    statements_scanned: int


def _not_found(verb_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No configuration for verb {verb_id}",
    )


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get("", response_model=list[VerbOut])
async def list_verbs() -> list[VerbOut]:
    """Built-in verbs, admin overrides and every verb seen in usage stats."""
    try:
        overrides = await with_retries(stores.verb_config_repo.list_all, name="verb_configs.list")
        usage = {u.verb_id: u for u in await verb_usage.list_all()}
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    out: dict[str, VerbOut] = {}
    for source, configs in (("builtin", BUILTIN_VERBS.values()), ("override", overrides)):
        for c in configs:
            out.setdefault(
                c.verb_id,
                VerbOut(
                    verb_id=c.verb_id,
                    category=c.category,
                    action=c.action,
                    description=c.description,
                    source=source,
                ),
            )

    classifier = VerbClassifier(overrides=overrides)
    for verb_id in usage:
        if verb_id not in out:
            c = classifier.classify(verb_id)
            out[verb_id] = VerbOut(
                verb_id=verb_id,
                category=c.category,
                action=c.action,
                description="",
                source=c.source,
            )

    for verb_id, verb in out.items():
        u = usage.get(verb_id)
        if u is not None:
            verb.usage = VerbUsageOut(
                count=u.count,
                distinct_actors=u.distinct_actors,
                distinct_activities=u.distinct_activities,
                last_seen=u.last_seen,
            )
    return [out[k] for k in sorted(out)]


@router.get("/classify", response_model=ClassificationOut)
async def classify_verb(
    verb_id: Annotated[str, Query(min_length=1)],
) -> ClassificationOut:
    try:
        classifier = await with_retries(
            lambda: load_classifier(stores.verb_config_repo), name="verb_configs.list"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    c = classifier.classify(verb_id)
    return ClassificationOut(
        verb_id=verb_id, category=c.category, action=c.action, source=c.source
    )


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


@router.post("", response_model=VerbOut, status_code=status.HTTP_201_CREATED)
async def create_verb(body: VerbConfigIn) -> VerbOut:
    if VerbClassifier().is_builtin(body.verb_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Built-in verbs cannot be overridden",
        )
    config = VerbConfig(
        verb_id=body.verb_id,
        category=body.category,  # type: ignore[arg-type]
        action=body.action,  # type: ignore[arg-type]
        description=body.description,
    )
    try:
        await stores.verb_config_repo.create(config)
    except VerbConfigExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Verb {body.verb_id} is already configured",
        ) from None
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    logger.info(
        "Verb configured: category=%s action=%s",
        config.category,
        config.action,
        extra={"verb_id": config.verb_id},
    )
    return VerbOut(
        verb_id=config.verb_id,
        category=config.category,
        action=config.action,
        description=config.description,
        source="override",
    )


@router.put("/{verb_id:path}", response_model=VerbOut)
async def update_verb(verb_id: str, body: VerbConfigBody) -> VerbOut:
    config = VerbConfig(
        verb_id=verb_id,
        category=body.category,  # type: ignore[arg-type]
        action=body.action,  # type: ignore[arg-type]
        description=body.description,
    )
    try:
        await stores.verb_config_repo.update(config)
    except VerbConfigNotFoundError:
        raise _not_found(verb_id) from None
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    logger.info("Verb configuration updated", extra={"verb_id": verb_id})
    return VerbOut(
        verb_id=config.verb_id,
        category=config.category,
        action=config.action,
        description=config.description,
        source="override",
    )


@router.delete("/{verb_id:path}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_verb(verb_id: str) -> None:
    try:
        await stores.verb_config_repo.delete(verb_id)
    except VerbConfigNotFoundError:
        raise _not_found(verb_id) from None
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    logger.info("Verb configuration deleted", extra={"verb_id": verb_id})


@router.post("/stats/rebuild", response_model=RebuildOut)
async def rebuild_stats() -> RebuildOut:
    try:
        scanned = await rebuild_verb_usage(verb_usage, stores.statement_repo)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return RebuildOut(statements_scanned=scanned)
