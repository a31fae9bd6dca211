from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime

import pytest
from fastapi import BackgroundTasks

from app.core.retry import StoreUnavailableError
from app.models.course import Course
from app.models.statement import Statement
from app.models.verb import VerbConfig
from app.repos.course_repo import InMemoryCourseRepo
from app.repos.kc_attempt_repo import InMemoryKcAttemptRepo, KcAttemptQuery
from app.repos.progress_repo import InMemoryProgressRepo
from app.repos.statement_repo import InMemoryStatementRepo, StatementConflictError
from app.repos.verb_config_repo import InMemoryVerbConfigRepo
from app.services.cache import InMemoryCacheService
from app.services.course_directory import CourseDirectory
from app.services.ingestion import (
    ActorIn,
    IngestionService,
    StatementValidationError,
    actor_key_from_agent,
    fingerprint,
)
from app.services.materializer import ProgressMaterializer, ProgressPolicy
from app.services.task_queue import MATERIALIZATION_QUEUE, InMemoryTaskQueue
from app.services.verb_usage import InMemoryVerbUsageStats
from tests.conftest import ADL, make_statement_doc

COURSE = Course(course_id="python-101", activity_id="https://lms.example.com/courses/python-101")
SQL = Course(course_id="sql-201", activity_id="https://lms.example.com/courses/sql-201")
ACTOR = "learner@example.com"


class _Env:
    """One IngestionService wired to fresh in-memory stores."""

    def __init__(
        self,
        *,
        use_queue: bool = False,
        throttle_seconds: int = 0,
        statements: InMemoryStatementRepo | None = None,
        verb_configs: InMemoryVerbConfigRepo | None = None,
    ) -> None:
        self.statements = statements if statements is not None else InMemoryStatementRepo()
        self.progress = InMemoryProgressRepo()
        self.verb_configs = verb_configs if verb_configs is not None else InMemoryVerbConfigRepo()
        self.kc_attempts = InMemoryKcAttemptRepo()
        self.cache = InMemoryCacheService()
        self.usage = InMemoryVerbUsageStats()
        self.queue = InMemoryTaskQueue()
        directory = CourseDirectory(InMemoryCourseRepo([COURSE, SQL]), self.cache, ttl_seconds=0)
        self.materializer = ProgressMaterializer(
            self.statements, self.progress, self.verb_configs, directory, ProgressPolicy()
        )
        self.service = IngestionService(
            self.statements,
            self.verb_configs,
            directory,
            self.usage,
            self.queue,
            self.cache,
            self.materializer,
            kc_attempts=self.kc_attempts,
            use_queue=use_queue,
            throttle_seconds=throttle_seconds,
        )

    def ingest(self, body, **kwargs):
        return asyncio.run(self.service.ingest(body, **kwargs))


@pytest.fixture
def env() -> _Env:
    return _Env()


# ---- validation ----


@pytest.mark.parametrize(
    "mutate,message",
    [
        (lambda d: d.pop("actor"), "actor"),
        (lambda d: d.__setitem__("actor", {"name": "No Identifier"}), "actor"),
        (lambda d: d.pop("object"), "object"),
        (lambda d: d["object"].pop("id"), "object.id"),
        (lambda d: d["verb"].__setitem__("id", ""), "verb.id"),
        (lambda d: d.__setitem__("result", {"score": {"scaled": "0.9"}}), "result.score.scaled"),
        (lambda d: d.__setitem__("result", {"success": "yes"}), "result.success"),
        (lambda d: d.__setitem__("context", {"registration": "not-a-uuid"}), "registration"),
        (lambda d: d.__setitem__("id", "not-a-uuid"), "id"),
        (lambda d: d.__setitem__("timestamp", "yesterday"), "timestamp"),
    ],
)
def test_malformed_statement_is_rejected(env: _Env, mutate, message: str) -> None:
    doc = make_statement_doc("experienced")
    mutate(doc)
    with pytest.raises(StatementValidationError, match=message):
        env.ingest(doc)
    assert env.statements._by_id == {}


def test_empty_batch_is_rejected(env: _Env) -> None:
    with pytest.raises(StatementValidationError, match="no statements"):
        env.ingest([])


def test_non_object_entry_is_rejected(env: _Env) -> None:
    with pytest.raises(StatementValidationError, match=r"statement\[1\]"):
        env.ingest([make_statement_doc("experienced"), "not a statement"])
    assert env.statements._by_id == {}


def test_one_bad_statement_rejects_whole_batch(env: _Env) -> None:
    bad = make_statement_doc("experienced")
    del bad["actor"]
    with pytest.raises(StatementValidationError):
        env.ingest([make_statement_doc("initialized"), bad])
    assert env.statements._by_id == {}


def test_repeated_id_in_batch_is_rejected(env: _Env) -> None:
    sid = str(uuid.uuid4())
    docs = [
        make_statement_doc("initialized", statement_id=sid),
        make_statement_doc("completed", statement_id=sid),
    ]
    with pytest.raises(StatementValidationError, match="repeats id"):
        env.ingest(docs)


def test_put_id_must_match_body_id(env: _Env) -> None:
    doc = make_statement_doc("experienced", statement_id=str(uuid.uuid4()))
    with pytest.raises(StatementValidationError, match="does not match"):
        env.ingest(doc, statement_id=str(uuid.uuid4()))


# ---- storage ----


def test_assigns_id_and_stored_time(env: _Env) -> None:
    doc = make_statement_doc("experienced")
    result = env.ingest(doc)
    assert len(result.statement_ids) == 1
    sid = result.statement_ids[0]
    uuid.UUID(sid)

    stored = env.statements._by_id[sid]
    assert stored.actor_key == ACTOR
    assert stored.timestamp == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    assert stored.stored > stored.timestamp
    assert stored.payload["id"] == sid
    assert stored.payload["timestamp"] == "2024-03-01T10:00:00.000Z"
    assert stored.payload["stored"].endswith("Z")
    assert "id" not in doc  # caller's document is not mutated


def test_missing_timestamp_defaults_to_receipt_time(env: _Env) -> None:
    doc = make_statement_doc("experienced")
    del doc["timestamp"]
    sid = env.ingest(doc).statement_ids[0]
    stored = env.statements._by_id[sid]
    assert stored.timestamp == stored.stored


def test_offset_timestamp_is_normalized_to_utc(env: _Env) -> None:
    doc = make_statement_doc("experienced", timestamp="2024-03-01T12:00:00+02:00")
    sid = env.ingest(doc).statement_ids[0]
    assert env.statements._by_id[sid].timestamp == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)


def test_unknown_fields_are_kept(env: _Env) -> None:
    doc = make_statement_doc("experienced")
    doc["context"] = {"platform": "Moodle", "extensions": {"https://x.io/ext": 1}}
    sid = env.ingest(doc).statement_ids[0]
    assert env.statements._by_id[sid].payload["context"]["platform"] == "Moodle"


def test_result_is_parsed(env: _Env) -> None:
    doc = make_statement_doc(
        "passed", result={"success": True, "score": {"raw": 42, "max": 50}}
    )
    sid = env.ingest(doc).statement_ids[0]
    stored = env.statements._by_id[sid]
    assert stored.result is not None
    assert stored.result.success is True
    assert stored.score is not None
    assert (stored.score.raw, stored.score.max) == (42, 50)


def test_identical_resubmission_stores_nothing_new(env: _Env) -> None:
    doc = make_statement_doc("experienced", statement_id=str(uuid.uuid4()))
    first = env.ingest(doc)
    second = env.ingest(dict(doc))
    assert first.accepted == 1
    assert second.accepted == 0
    assert second.duplicates == 1
    assert second.statement_ids == first.statement_ids
    assert second.pairs == first.pairs == {(ACTOR, "python-101"): False}
    assert len(env.statements._by_id) == 1


def test_conflicting_resubmission_is_rejected(env: _Env) -> None:
    sid = str(uuid.uuid4())
    env.ingest(make_statement_doc("experienced", statement_id=sid))
    with pytest.raises(StatementConflictError):
        env.ingest(make_statement_doc("completed", statement_id=sid))
    assert env.statements._by_id[sid].verb_id == ADL + "experienced"


def test_conflict_in_batch_stores_nothing(env: _Env) -> None:
    sid = str(uuid.uuid4())
    env.ingest(make_statement_doc("experienced", statement_id=sid))
    batch = [
        make_statement_doc("initialized", statement_id=str(uuid.uuid4())),
        make_statement_doc("completed", statement_id=sid),
    ]
    with pytest.raises(StatementConflictError):
        env.ingest(batch)
    assert len(env.statements._by_id) == 1


def test_unresolvable_activity_is_stored_without_pairs(env: _Env) -> None:
    doc = make_statement_doc("completed", activity="https://elsewhere.example.com/x")
    result = env.ingest(doc)
    assert result.accepted == 1
    assert result.pairs == {}


def test_unknown_verb_is_stored_and_counted(env: _Env) -> None:
    verb = "https://example.com/verbs/smiled"
    result = env.ingest(make_statement_doc(verb))
    assert result.accepted == 1
    assert result.pairs == {}
    usage = asyncio.run(env.usage.get(verb))
    assert usage is not None
    assert usage.count == 1


def test_pairs_flag_completion(env: _Env) -> None:
    result = env.ingest(
        [
            make_statement_doc("experienced", activity=COURSE.activity_id + "/m1"),
            make_statement_doc("completed", activity=COURSE.activity_id),
            make_statement_doc("experienced", email="other@example.com"),
        ]
    )
    assert result.pairs == {
        (ACTOR, "python-101"): True,
        ("other@example.com", "python-101"): False,
    }



# ---- partial failure and resend ----


class _FailingAppendRepo(InMemoryStatementRepo):
    """Appends of one statement id fail until `down` is cleared."""

    def __init__(self, failing_id: str) -> None:
        super().__init__()
        self.failing_id = failing_id
        self.down = True

    async def append(self, statement: Statement) -> bool:
        if self.down and statement.id == self.failing_id:
            raise StoreUnavailableError("connection refused")
        return await super().append(statement)


class _FailingVerbConfigRepo(InMemoryVerbConfigRepo):
    def __init__(self) -> None:
        super().__init__()
        self.down = True

    async def list_all(self) -> list[VerbConfig]:
        if self.down:
            raise StoreUnavailableError("connection refused")
        return await super().list_all()


def test_resend_after_partial_batch_failure_yields_every_pair() -> None:
    second_id = str(uuid.uuid4())
    statements = _FailingAppendRepo(second_id)
    env = _Env(statements=statements)
    batch = [
        make_statement_doc("completed", statement_id=str(uuid.uuid4())),
        make_statement_doc("completed", activity=SQL.activity_id, statement_id=second_id),
    ]

    with pytest.raises(StoreUnavailableError):
        env.ingest(batch)
    assert len(statements._by_id) == 1

    statements.down = False
    result = env.ingest(batch)
    assert (result.accepted, result.duplicates) == (1, 1)
    assert result.pairs == {(ACTOR, "python-101"): True, (ACTOR, "sql-201"): True}


def test_post_store_failure_is_raised_and_resend_materializes() -> None:
    verb_configs = _FailingVerbConfigRepo()
    env = _Env(verb_configs=verb_configs)
    doc = make_statement_doc("completed", statement_id=str(uuid.uuid4()))

    with pytest.raises(StoreUnavailableError):
        env.ingest(doc)
    assert len(env.statements._by_id) == 1

    verb_configs.down = False
    result = env.ingest(doc)
    assert result.duplicates == 1
    assert result.pairs == {(ACTOR, "python-101"): True}

    tasks = BackgroundTasks()
    asyncio.run(env.service.schedule(result.pairs, tasks))
    asyncio.run(tasks())
    progress = asyncio.run(env.progress.get(ACTOR, "python-101"))
    assert progress is not None
    assert progress.completion_status == "completed"


def test_resend_does_not_recount_verb_usage(env: _Env) -> None:
    doc = make_statement_doc("experienced", statement_id=str(uuid.uuid4()))
    env.ingest(doc)
    env.ingest(doc)
    usage = asyncio.run(env.usage.get(ADL + "experienced"))
    assert usage is not None
    assert usage.count == 1


# ---- knowledge-check attempts ----


def _answer_doc(**kwargs) -> dict:
    doc = make_statement_doc(
        "answered", activity=COURSE.activity_id + "/quiz-1/q1", **kwargs
    )
    doc["object"]["definition"] = {
        "name": {"en-US": "Question 1"},
        "interactionType": "choice",
    }
    doc["context"] = {"registration": "8f7b3a1e-2c4d-4e5f-9a6b-7c8d9e0f1a2b"}
    return doc


def _attempts(env: _Env) -> list:
    return asyncio.run(env.kc_attempts.query(KcAttemptQuery(actor_key=ACTOR)))


def test_answer_is_recorded_as_attempt(env: _Env) -> None:
    doc = _answer_doc(result={"success": True, "response": "b", "score": {"scaled": 1.0}})
    sid = env.ingest(doc).statement_ids[0]

    [attempt] = _attempts(env)
    assert attempt.statement_id == sid
    assert attempt.course_id == "python-101"
    assert attempt.assessment_id == COURSE.activity_id + "/quiz-1/q1"
    assert attempt.assessment_name == "Question 1"
    assert attempt.interaction_type == "choice"
    assert attempt.response == "b"
    assert attempt.success is True
    assert attempt.score_percent == 100
    assert attempt.registration == "8f7b3a1e-2c4d-4e5f-9a6b-7c8d9e0f1a2b"


def test_attempt_survives_resend_after_failure() -> None:
    verb_configs = _FailingVerbConfigRepo()
    env = _Env(verb_configs=verb_configs)
    doc = _answer_doc(statement_id=str(uuid.uuid4()), result={"success": False})

    with pytest.raises(StoreUnavailableError):
        env.ingest(doc)
    assert _attempts(env) == []

    verb_configs.down = False
    env.ingest(doc)
    env.ingest(doc)
    assert len(_attempts(env)) == 1


def test_unresolved_answer_is_not_recorded(env: _Env) -> None:
    doc = _answer_doc()
    doc["object"]["id"] = "https://elsewhere.example.com/q1"
    env.ingest(doc)
    assert _attempts(env) == []


def test_plain_interaction_is_not_an_attempt(env: _Env) -> None:
    env.ingest(make_statement_doc("experienced"))
    assert _attempts(env) == []


# ---- actor identity ----


def test_mbox_key_is_case_insensitive(env: _Env) -> None:
    doc = make_statement_doc("experienced")
    doc["actor"] = {"mbox": "mailto:Learner@Example.COM"}
    sid = env.ingest(doc).statement_ids[0]
    assert env.statements._by_id[sid].actor_key == ACTOR


@pytest.mark.parametrize(
    "agent,expected",
    [
        ('{"mbox": "mailto:Learner@Example.com"}', "learner@example.com"),
        ('{"mbox_sha1sum": "ABC123"}', "sha1:abc123"),
        ('{"openid": "https://id.example.com/U1"}', "https://id.example.com/u1"),
        (
            '{"account": {"homePage": "https://lms.example.com", "name": "U-42"}}',
            "https://lms.example.com|u-42",
        ),
    ],
)
def test_actor_key_from_agent(agent: str, expected: str) -> None:
    assert actor_key_from_agent(agent) == expected


def test_actor_key_from_agent_rejects_bad_json() -> None:
    with pytest.raises(StatementValidationError, match="agent"):
        actor_key_from_agent("{not json")


def test_actor_without_identifier_has_no_key() -> None:
    with pytest.raises(StatementValidationError, match="no identifier"):
        ActorIn.model_construct().key()


def test_fingerprint_ignores_server_fields() -> None:
    doc = make_statement_doc("experienced")
    with_server_fields = {**doc, "id": str(uuid.uuid4()), "stored": "2024-03-02T00:00:00Z"}
    assert fingerprint(doc) == fingerprint(with_server_fields)
    assert fingerprint(doc) != fingerprint(make_statement_doc("completed"))


# ---- scheduling ----


def test_schedule_in_process_adds_background_task(env: _Env) -> None:
    tasks = BackgroundTasks()
    asyncio.run(env.service.schedule({(ACTOR, "python-101"): False}, tasks))
    assert len(tasks.tasks) == 1
    assert tasks.tasks[0].args == (ACTOR, "python-101")
    assert asyncio.run(env.queue.queue_length(MATERIALIZATION_QUEUE)) == 0


def test_schedule_with_queue_enqueues_task() -> None:
    env = _Env(use_queue=True)
    tasks = BackgroundTasks()
    asyncio.run(env.service.schedule({(ACTOR, "python-101"): False}, tasks))
    assert tasks.tasks == []
    task = asyncio.run(env.queue.dequeue(MATERIALIZATION_QUEUE))
    assert task is not None
    assert task.payload == {"actor_key": ACTOR, "course_id": "python-101"}


def test_throttle_skips_repeat_interactions_but_not_completion() -> None:
    env = _Env(throttle_seconds=60)
    pair = (ACTOR, "python-101")

    tasks = BackgroundTasks()
    asyncio.run(env.service.schedule({pair: False}, tasks))
    asyncio.run(env.service.schedule({pair: False}, tasks))
    assert len(tasks.tasks) == 1

    asyncio.run(env.service.schedule({pair: True}, tasks))
    assert len(tasks.tasks) == 2


def test_ingest_then_run_scheduled_task_writes_progress(env: _Env) -> None:
    result = env.ingest(
        [
            make_statement_doc("initialized"),
            make_statement_doc("completed", timestamp="2024-03-01T10:05:00Z"),
        ]
    )
    tasks = BackgroundTasks()
    asyncio.run(env.service.schedule(result.pairs, tasks))
    asyncio.run(tasks())
    progress = asyncio.run(env.progress.get(ACTOR, "python-101"))
    assert progress is not None
    assert progress.completion_status == "completed"
    assert progress.time_spent_seconds == 300
