"""Background worker process.

RUN:  python -m app.worker

Consumes the progress_materialization queue that the API fills when
REDIS_URL is configured.  Same image as the API, different command:

  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

Several workers can consume the same queue.  Two workers materializing the
same (actor, course) pair at once is harmless: both compute the same record
from the same history and the last overwrite wins.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.core.retry import StoreUnavailableError
from app.services.materializer import progress_materializer
from app.services.task_queue import MATERIALIZATION_QUEUE, Task, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

# Pause after a failed dequeue so a Redis outage does not spin the loop
_DEQUEUE_BACKOFF_SECONDS = 2.0


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(MATERIALIZATION_QUEUE)
async def handle_materialization(payload: dict) -> None:
    """Recompute one (actor, course) Progress row; never raises."""
    actor_key = payload.get("actor_key")
    course_id = payload.get("course_id")
    if not actor_key or not course_id:
        logger.error("Malformed materialization task: %r", payload)
        return
    await progress_materializer.materialize_safely(actor_key, course_id)


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, timeout: int = 1) -> Task | None:
    """Dequeue and run at most one task from `queue_name`."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return None

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task on [%s] completed", queue_name, extra={"task_id": task.id})
    except Exception:
        # At-most-once delivery: the task is dropped after logging
        logger.exception("Task on [%s] failed", queue_name, extra={"task_id": task.id})
    return task


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        for queue_name in queues:
            try:
                await process_one(queue_name)
            except StoreUnavailableError:
                logger.exception("Queue unavailable, backing off")
                await asyncio.sleep(_DEQUEUE_BACKOFF_SECONDS)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
