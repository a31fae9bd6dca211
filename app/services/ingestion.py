"""Statement ingestion: validate, persist, record usage, schedule work.

A request carries one statement or a batch.  The whole batch is validated
before anything is written, and client-supplied ids are checked for
conflicts up front, so a bad batch is rejected without partial writes in
the common case.  The response returns once the statements are stored;
progress materialization for each affected (actor, course) pair runs
afterwards, on the worker (Redis configured) or as an in-process
background task.

After storage the whole batch, duplicates included, is resolved to
(actor, course) pairs and knowledge-check attempts are recorded.  A store
failure in that step fails the request with 503; the statements are kept,
and the client's resend comes back as duplicates that still yield the
same pairs and attempts.  Verb usage and enqueueing are best effort: a
failure there is logged and counted but never turns a stored statement
into an error response.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fastapi import BackgroundTasks
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.core.config import SETTINGS
from app.core.metrics import (
    KC_ATTEMPTS_RECORDED,
    MATERIALIZATIONS,
    STATEMENTS_INGESTED,
    VERB_CLASSIFICATIONS,
)
from app.core.retry import StoreUnavailableError, with_retries
from app.db.redis import redis_pool
from app.models.statement import Score, Statement, StatementResult
from app.repos import stores
from app.repos.kc_attempt_repo import KcAttemptRepo
from app.repos.statement_repo import StatementConflictError, StatementRepo
from app.repos.verb_config_repo import VerbConfigRepo
from app.services.activity_resolver import resolve_course
from app.services.cache import CacheService, cache_service
from app.services.course_directory import CourseDirectory, course_directory
from app.services.knowledge_checks import attempt_from_statement, is_knowledge_check
from app.services.materializer import ProgressMaterializer, progress_materializer
from app.services.task_queue import MATERIALIZATION_QUEUE, TaskQueue, task_queue
from app.services.verb_classifier import load_classifier
from app.services.verb_usage import VerbUsageStats, verb_usage

logger = logging.getLogger(__name__)

# Fields the server assigns; excluded from the content fingerprint
_SERVER_FIELDS = ("id", "stored")


class StatementValidationError(ValueError):
    pass


def normalize_actor_key(raw: str) -> str:
    """Actor key for a caller-supplied mailbox or key (`mailto:` optional)."""
    return raw.strip().lower().removeprefix("mailto:")


# ---------------------------------------------------------------------------
# Wire models (validation boundary; unknown fields are kept, not rejected)
# ---------------------------------------------------------------------------


class AccountIn(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    home_page: str = Field(alias="homePage", min_length=1)
    name: str = Field(min_length=1)


class ActorIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    objectType: str | None = None
    name: str | None = None
    mbox: str | None = None
    mbox_sha1sum: str | None = None
    openid: str | None = None
    account: AccountIn | None = None

    @model_validator(mode="after")
    def _require_identifier(self) -> ActorIn:
        if not (self.mbox or self.mbox_sha1sum or self.openid or self.account):
            raise ValueError("actor needs one of mbox, mbox_sha1sum, openid or account")
        return self

    def key(self) -> str:
        """Stable, case-insensitive identity key for this actor."""
        if self.mbox:
            return normalize_actor_key(self.mbox)
        if self.mbox_sha1sum:
            return f"sha1:{self.mbox_sha1sum.strip().lower()}"
        if self.openid:
            return self.openid.strip().lower()
        if self.account is not None:
            return f"{self.account.home_page}|{self.account.name}".strip().lower()
        raise StatementValidationError("actor has no identifier")


class VerbIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)


class ObjectIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    objectType: str | None = None


class ScoreIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    scaled: float | None = Field(default=None, strict=True, allow_inf_nan=False)
    raw: float | None = Field(default=None, strict=True, allow_inf_nan=False)
    min: float | None = Field(default=None, strict=True, allow_inf_nan=False)
    max: float | None = Field(default=None, strict=True, allow_inf_nan=False)


class ResultIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool | None = Field(default=None, strict=True)
    completion: bool | None = Field(default=None, strict=True)
    score: ScoreIn | None = None
    duration: str | None = None


class ContextIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    registration: uuid.UUID | None = None


class StatementIn(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: uuid.UUID | None = None
    actor: ActorIn
    verb: VerbIn
    object_: ObjectIn = Field(alias="object")
    result: ResultIn | None = None
    context: ContextIn | None = None
    timestamp: datetime | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ())) or "statement"
    return f"{where}: {err.get('msg', 'invalid')}"


def actor_key_from_agent(agent_json: str) -> str:
    """Parse an `agent` query parameter (JSON actor object) into an actor key."""
    try:
        return ActorIn.model_validate_json(agent_json).key()
    except ValidationError as exc:
        raise StatementValidationError(f"agent {_first_error(exc)}") from None


def fingerprint(document: dict[str, Any]) -> str:
    content = {k: v for k, v in document.items() if k not in _SERVER_FIELDS}
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _isoformat(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_statement(
    document: dict[str, Any],
    parsed: StatementIn,
    *,
    statement_id: str,
    received_at: datetime,
) -> Statement:
    timestamp = _to_utc(parsed.timestamp) if parsed.timestamp else received_at

    result = None
    if parsed.result is not None:
        score = None
        if parsed.result.score is not None:
            s = parsed.result.score
            score = Score(scaled=s.scaled, raw=s.raw, min=s.min, max=s.max)
        result = StatementResult(
            success=parsed.result.success,
            completion=parsed.result.completion,
            score=score,
            duration=parsed.result.duration,
        )

    registration = None
    if parsed.context is not None and parsed.context.registration is not None:
        registration = str(parsed.context.registration)

    payload = dict(document)
    payload["id"] = statement_id
    payload["timestamp"] = _isoformat(timestamp)
    payload["stored"] = _isoformat(received_at)

    return Statement(
        id=statement_id,
        actor_key=parsed.actor.key(),
        verb_id=parsed.verb.id,
        activity_id=parsed.object_.id,
        timestamp=timestamp,
        stored=received_at,
        result=result,
        registration=registration,
        fingerprint=fingerprint(document),
        payload=payload,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class IngestResult:
    statement_ids: list[str] = field(default_factory=list)
    accepted: int = 0
    duplicates: int = 0
    # (actor_key, course_id) -> True when a completion-type verb was seen
    pairs: dict[tuple[str, str], bool] = field(default_factory=dict)


class IngestionService:
    def __init__(
        self,
        statements: StatementRepo,
        verb_configs: VerbConfigRepo,
        directory: CourseDirectory,
        usage: VerbUsageStats,
        queue: TaskQueue,
        cache: CacheService,
        materializer: ProgressMaterializer,
        *,
        kc_attempts: KcAttemptRepo,
        use_queue: bool,
        throttle_seconds: int,
    ) -> None:
        self._statements = statements
        self._verb_configs = verb_configs
        self._directory = directory
        self._usage = usage
        self._queue = queue
        self._cache = cache
        self._materializer = materializer
        self._kc_attempts = kc_attempts
        self._use_queue = use_queue
        self._throttle_seconds = throttle_seconds

    def parse(
        self, body: Any, *, statement_id: str | None = None
    ) -> list[tuple[dict[str, Any], StatementIn]]:
        """Validate every document; raise on the first malformed one."""
        documents = body if isinstance(body, list) else [body]
        if not documents:
            raise StatementValidationError("no statements supplied")

        parsed: list[tuple[dict[str, Any], StatementIn]] = []
        seen_ids: set[str] = set()
        for i, doc in enumerate(documents):
            if not isinstance(doc, dict):
                raise StatementValidationError(f"statement[{i}] must be a JSON object")
            try:
                model = StatementIn.model_validate(doc)
            except ValidationError as exc:
                raise StatementValidationError(f"statement[{i}] {_first_error(exc)}") from None

            if statement_id is not None:
                if model.id is not None and str(model.id) != statement_id:
                    raise StatementValidationError(
                        "statement id does not match the statementId parameter"
                    )
            elif model.id is not None:
                sid = str(model.id)
                if sid in seen_ids:
                    raise StatementValidationError(f"statement[{i}] repeats id {sid}")
                seen_ids.add(sid)
            parsed.append((doc, model))
        return parsed

    async def ingest(self, body: Any, *, statement_id: str | None = None) -> IngestResult:
        """Validate and store a statement or batch.

        Raises StatementValidationError (nothing stored),
        StatementConflictError (an id exists with different content) or
        StoreUnavailableError (store down after retries; part of the batch
        may already be stored, and resending the same batch is safe).
        """
        try:
            parsed = self.parse(body, statement_id=statement_id)
        except StatementValidationError as exc:
            STATEMENTS_INGESTED.labels(outcome="rejected").inc()
            logger.warning("Rejected statement batch: %s", exc)
            raise

        received_at = datetime.now(UTC)
        batch: list[Statement] = []
        for doc, model in parsed:
            if statement_id is not None:
                sid = statement_id
            elif model.id is not None:
                sid = str(model.id)
            else:
                sid = str(uuid.uuid4())
            batch.append(
                build_statement(doc, model, statement_id=sid, received_at=received_at)
            )

        await self._check_conflicts(batch)

        result = IngestResult()
        inserted_ids: set[str] = set()
        for statement in batch:
            try:
                inserted = await with_retries(
                    lambda s=statement: self._statements.append(s), name="statements.append"
                )
            except StatementConflictError:
                STATEMENTS_INGESTED.labels(outcome="conflict").inc()
                raise
            result.statement_ids.append(statement.id)
            if inserted:
                result.accepted += 1
                inserted_ids.add(statement.id)
            else:
                result.duplicates += 1
        STATEMENTS_INGESTED.labels(outcome="accepted").inc(result.accepted)
        STATEMENTS_INGESTED.labels(outcome="duplicate").inc(result.duplicates)

        await self._after_store(batch, inserted_ids, result)

        logger.info(
            "Ingested %d statements (%d duplicate), %d pairs to materialize",
            result.accepted,
            result.duplicates,
            len(result.pairs),
        )
        return result

    async def _check_conflicts(self, batch: list[Statement]) -> None:
        for statement in batch:
            existing = await with_retries(
                lambda s=statement: self._statements.get(s.id), name="statements.get"
            )
            if existing is not None and existing.fingerprint != statement.fingerprint:
                STATEMENTS_INGESTED.labels(outcome="conflict").inc()
                logger.warning(
                    "Statement id reused with different content",
                    extra={"statement_id": statement.id},
                )
                raise StatementConflictError(statement.id)

    async def _after_store(
        self, batch: list[Statement], inserted_ids: set[str], result: IngestResult
    ) -> None:
        """Derive pairs and knowledge-check attempts for the whole batch.

        Duplicates are included so a resend after a partial failure still
        schedules every pair.  Usage and classification counters only see
        newly inserted statements.
        """
        classifier = await with_retries(
            lambda: load_classifier(self._verb_configs), name="verb_configs.list"
        )
        courses = await self._directory.list_courses()

        for statement in batch:
            is_new = statement.id in inserted_ids
            classification = classifier.classify(statement.verb_id)
            if is_new:
                VERB_CLASSIFICATIONS.labels(
                    category=classification.category, source=classification.source
                ).inc()
                await self._record_usage(statement)

            course = resolve_course(statement.activity_id, courses, record_unresolved=is_new)
            if course is None:
                if is_new:
                    logger.warning(
                        "Statement activity %s does not resolve to a course",
                        statement.activity_id,
                        extra={"statement_id": statement.id, "actor_key": statement.actor_key},
                    )
                continue

            if is_knowledge_check(statement, classification):
                attempt = attempt_from_statement(statement, course)
                await with_retries(
                    lambda a=attempt: self._kc_attempts.upsert(a), name="kc_attempts.upsert"
                )
                if is_new:
                    KC_ATTEMPTS_RECORDED.inc()

            if not classification.is_known:
                continue
            pair = (statement.actor_key, course.course_id)
            is_completion = classification.category == "completion"
            result.pairs[pair] = result.pairs.get(pair, False) or is_completion

    async def _record_usage(self, statement: Statement) -> None:
        try:
            await self._usage.record(
                statement.verb_id,
                statement.actor_key,
                statement.activity_id,
                statement.stored,
            )
        except StoreUnavailableError:
            logger.warning(
                "Verb usage not recorded",
                extra={"statement_id": statement.id, "verb_id": statement.verb_id},
            )

    async def schedule(
        self, pairs: dict[tuple[str, str], bool], background_tasks: BackgroundTasks
    ) -> None:
        """Queue or defer one materialization per pair."""
        for (actor_key, course_id), is_completion in pairs.items():
            log_ctx = {"actor_key": actor_key, "course_id": course_id}
            if not await self._should_materialize(actor_key, course_id, is_completion):
                MATERIALIZATIONS.labels(outcome="throttled").inc()
                logger.debug("Materialization throttled", extra=log_ctx)
                continue

            if not self._use_queue:
                background_tasks.add_task(
                    self._materializer.materialize_safely, actor_key, course_id
                )
                continue

            try:
                task = await self._queue.enqueue(
                    MATERIALIZATION_QUEUE, {"actor_key": actor_key, "course_id": course_id}
                )
            except StoreUnavailableError:
                MATERIALIZATIONS.labels(outcome="failed").inc()
                logger.exception("Could not enqueue materialization", extra=log_ctx)
                continue
            logger.debug("Materialization enqueued", extra={**log_ctx, "task_id": task.id})

    async def _should_materialize(
        self, actor_key: str, course_id: str, is_completion: bool
    ) -> bool:
        if self._throttle_seconds <= 0:
            return True
        key = f"materialize:{actor_key}:{course_id}"
        try:
            if is_completion:
                await self._cache.set(key, "1", self._throttle_seconds)
                return True
            return await self._cache.set_if_absent(key, "1", self._throttle_seconds)
        except StoreUnavailableError:
            logger.warning("Throttle unavailable, materializing anyway")
            return True


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

ingestion_service = IngestionService(
    stores.statement_repo,
    stores.verb_config_repo,
    course_directory,
    verb_usage,
    task_queue,
    cache_service,
    progress_materializer,
    kc_attempts=stores.kc_attempt_repo,
    use_queue=redis_pool is not None,
    throttle_seconds=SETTINGS.materialize_min_interval_seconds,
)
