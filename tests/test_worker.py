"""Worker loop: dequeue, dispatch, survive handler failures."""

from __future__ import annotations

import asyncio
import logging

import pytest

from app.models.statement import Statement
from app.repos import stores
from app.services.task_queue import MATERIALIZATION_QUEUE, task_queue
from app.worker import HANDLERS, handle_materialization, process_one
from tests.conftest import ADL, PYTHON_COURSE, ts

ACTOR = "learner@example.com"


def _seed_completion() -> None:
    asyncio.run(
        stores.statement_repo.append(
            Statement(
                id="s-1",
                actor_key=ACTOR,
                verb_id=ADL + "completed",
                activity_id=PYTHON_COURSE.activity_id,
                timestamp=ts(0),
                stored=ts(0),
                fingerprint="s-1",
            )
        )
    )


def test_materialization_handler_is_registered() -> None:
    assert HANDLERS[MATERIALIZATION_QUEUE] is handle_materialization


def test_process_one_on_empty_queue_returns_none() -> None:
    assert asyncio.run(process_one(MATERIALIZATION_QUEUE, timeout=0)) is None


def test_process_one_materializes_progress() -> None:
    _seed_completion()
    asyncio.run(
        task_queue.enqueue(MATERIALIZATION_QUEUE, {"actor_key": ACTOR, "course_id": "python-101"})
    )

    task = asyncio.run(process_one(MATERIALIZATION_QUEUE, timeout=0))

    assert task is not None
    progress = asyncio.run(stores.progress_repo.get(ACTOR, "python-101"))
    assert progress is not None
    assert progress.completion_status == "completed"
    assert asyncio.run(task_queue.queue_length(MATERIALIZATION_QUEUE)) == 0


def test_malformed_task_is_logged_and_dropped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger="worker"):
        asyncio.run(handle_materialization({"actor_key": ACTOR}))
    assert "Malformed materialization task" in caplog.text
    assert asyncio.run(stores.progress_repo.list_for_actor(ACTOR)) == []


def test_handler_failure_does_not_stop_the_worker(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def explode(payload: dict) -> None:
        raise RuntimeError("boom")

    monkeypatch.setitem(HANDLERS, MATERIALIZATION_QUEUE, explode)
    asyncio.run(task_queue.enqueue(MATERIALIZATION_QUEUE, {"n": 1}))

    with caplog.at_level(logging.ERROR, logger="worker"):
        task = asyncio.run(process_one(MATERIALIZATION_QUEUE, timeout=0))

    assert task is not None
    assert task.payload == {"n": 1}
    assert "failed" in caplog.text
