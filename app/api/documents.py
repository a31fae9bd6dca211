"""xAPI document resources.

  PUT|GET|DELETE /xapi/activities/state?activityId=&agent=&stateId=[&registration=]
  PUT|GET|DELETE /xapi/activities/profile?activityId=&profileId=
  PUT|GET|DELETE /xapi/agents/profile?agent=&profileId=

`agent` is a JSON actor object, identified the same way as a statement
actor.  Bodies are stored and returned byte for byte.  GET of a missing
document is 404; DELETE of one is 204.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from app.api.dependencies import store_unavailable
from app.core.retry import StoreUnavailableError
from app.models.document import XapiDocument
from app.services.documents import activity_profile_key, agent_profile_key, document_service
from app.services.ingestion import StatementValidationError, actor_key_from_agent

router = APIRouter(prefix="/xapi", tags=["documents"])

_DEFAULT_CONTENT_TYPE = "application/octet-stream"

ActivityIdParam = Annotated[str, Query(alias="activityId", min_length=1)]
AgentParam = Annotated[str, Query(min_length=1)]
StateIdParam = Annotated[str, Query(alias="stateId", min_length=1)]
ProfileIdParam = Annotated[str, Query(alias="profileId", min_length=1)]
RegistrationParam = Annotated[str | None, Query()]


def _actor_key(agent: str) -> str:
    try:
        return actor_key_from_agent(agent)
    except StatementValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None


def _document_response(document: XapiDocument | None) -> Response:
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No such document")
    return Response(content=document.content, media_type=document.content_type)


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@router.put("/activities/state", status_code=status.HTTP_204_NO_CONTENT)
async def put_state(
    request: Request,
    activity_id: ActivityIdParam,
    agent: AgentParam,
    state_id: StateIdParam,
    registration: RegistrationParam = None,
) -> Response:
    actor_key = _actor_key(agent)
    content = await request.body()
    content_type = request.headers.get("content-type", _DEFAULT_CONTENT_TYPE)
    try:
        await document_service.save_state(
            activity_id, actor_key, state_id, registration, content, content_type
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()


@router.get("/activities/state")
async def get_state(
    activity_id: ActivityIdParam,
    agent: AgentParam,
    state_id: StateIdParam,
    registration: RegistrationParam = None,
) -> Response:
    actor_key = _actor_key(agent)
    try:
        document = await document_service.get_state(
            activity_id, actor_key, state_id, registration
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _document_response(document)


@router.delete("/activities/state", status_code=status.HTTP_204_NO_CONTENT)
async def delete_state(
    activity_id: ActivityIdParam,
    agent: AgentParam,
    state_id: StateIdParam,
    registration: RegistrationParam = None,
) -> Response:
    actor_key = _actor_key(agent)
    try:
        await document_service.delete_state(activity_id, actor_key, state_id, registration)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()


# ---------------------------------------------------------------------------
# Activity profile
# ---------------------------------------------------------------------------


@router.put("/activities/profile", status_code=status.HTTP_204_NO_CONTENT)
async def put_activity_profile(
    request: Request, activity_id: ActivityIdParam, profile_id: ProfileIdParam
) -> Response:
    content = await request.body()
    content_type = request.headers.get("content-type", _DEFAULT_CONTENT_TYPE)
    try:
        await document_service.save(
            activity_profile_key(activity_id, profile_id), content, content_type
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()


@router.get("/activities/profile")
async def get_activity_profile(
    activity_id: ActivityIdParam, profile_id: ProfileIdParam
) -> Response:
    try:
        document = await document_service.get(activity_profile_key(activity_id, profile_id))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _document_response(document)


@router.delete("/activities/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity_profile(
    activity_id: ActivityIdParam, profile_id: ProfileIdParam
) -> Response:
    try:
        await document_service.delete(activity_profile_key(activity_id, profile_id))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()


# ---------------------------------------------------------------------------
# Agent profile
# ---------------------------------------------------------------------------


@router.put("/agents/profile", status_code=status.HTTP_204_NO_CONTENT)
async def put_agent_profile(
    request: Request, agent: AgentParam, profile_id: ProfileIdParam
) -> Response:
    key = agent_profile_key(_actor_key(agent), profile_id)
    content = await request.body()
    content_type = request.headers.get("content-type", _DEFAULT_CONTENT_TYPE)
    try:
        await document_service.save(key, content, content_type)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()


@router.get("/agents/profile")
async def get_agent_profile(agent: AgentParam, profile_id: ProfileIdParam) -> Response:
    key = agent_profile_key(_actor_key(agent), profile_id)
    try:
        document = await document_service.get(key)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _document_response(document)


@router.delete("/agents/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent_profile(agent: AgentParam, profile_id: ProfileIdParam) -> Response:
    key = agent_profile_key(_actor_key(agent), profile_id)
    try:
        await document_service.delete(key)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc) from None
    return _no_content()
