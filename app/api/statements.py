"""xAPI statement resource.

  POST /xapi/statements          one statement or a list -> list of ids
  PUT  /xapi/statements?statementId=...   store under the given id -> 204
  GET  /xapi/statements?statementId=...   one statement
  GET  /xapi/statements?agent=...|actor=...  filtered, paged query

Statements are stored before the response is sent; progress for the
affected (actor, course) pairs is materialized afterwards.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, HTTPException, Query, Response, status

from app.api.dependencies import store_unavailable
from app.core.retry import StoreUnavailableError, with_retries
from app.repos import stores
from app.repos.statement_repo import StatementConflictError, StatementQuery
from app.services.ingestion import (
    StatementValidationError,
    actor_key_from_agent,
    ingestion_service,
    normalize_actor_key,
)

router = APIRouter(prefix="/xapi/statements", tags=["statements"])

MAX_PAGE_SIZE = 500


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _conflict(exc: StatementConflictError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _parse_statement_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="statementId must be a UUID",
        ) from None


# ---------------------------------------------------------------------------
# POST /xapi/statements
# ---------------------------------------------------------------------------


@router.post("", response_model=list[str])
async def post_statements(
    background_tasks: BackgroundTasks,
    body: Annotated[Any, Body()],
) -> list[str]:
    try:
        result = await ingestion_service.ingest(body)
    except StatementValidationError as exc:
        raise _bad_request(exc) from None
    except StatementConflictError as exc:
        raise _conflict(exc) from None
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    await ingestion_service.schedule(result.pairs, background_tasks)
    return result.statement_ids


# ---------------------------------------------------------------------------
# PUT /xapi/statements?statementId=...
# ---------------------------------------------------------------------------


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
async def put_statement(
    background_tasks: BackgroundTasks,
    statement_id: Annotated[str, Query(alias="statementId")],
    body: Annotated[Any, Body()],
) -> Response:
    sid = _parse_statement_id(statement_id)
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="PUT takes a single statement object",
        )
    try:
        result = await ingestion_service.ingest(body, statement_id=sid)
    except StatementValidationError as exc:
        raise _bad_request(exc) from None
    except StatementConflictError as exc:
        raise _conflict(exc) from None
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    await ingestion_service.schedule(result.pairs, background_tasks)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# GET /xapi/statements
# ---------------------------------------------------------------------------


@router.get("")
async def get_statements(
    statement_id: Annotated[str | None, Query(alias="statementId")] = None,
    agent: str | None = None,
    actor: str | None = None,
    activity: str | None = None,
    verb: str | None = None,
    registration: str | None = None,
    related_activities: bool = False,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    if statement_id is not None:
        sid = _parse_statement_id(statement_id)
        try:
            found = await with_retries(
                lambda: stores.statement_repo.get(sid), name="statements.get"
            )
        except StoreUnavailableError as exc:
            raise store_unavailable(exc) from None
        if found is None:
            raise HTTPException(status_code=404, detail="Statement not found")
        return found.payload

    if agent is not None:
        try:
            actor_key = actor_key_from_agent(agent)
        except StatementValidationError as exc:
            raise _bad_request(exc) from None
    elif actor:
        actor_key = normalize_actor_key(actor)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="statementId, agent or actor is required",
        )

    # Fetch one extra row to learn whether another page exists
    query = StatementQuery(
        activity_id=activity,
        related_activities=related_activities,
        verb_id=verb,
        registration=registration,
        limit=limit + 1,
        offset=offset,
    )
    try:
        rows = await with_retries(
            lambda: stores.statement_repo.query(actor_key, query), name="statements.query"
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None

    more = str(offset + limit) if len(rows) > limit else ""
    return {"statements": [s.payload for s in rows[:limit]], "more": more}
