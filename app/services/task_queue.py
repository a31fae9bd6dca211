"""Background task queue using Redis lists.

  Producer (API):    LPUSH task onto a Redis list, returns immediately
  Consumer (worker): BRPOP from the list, processes the task, loops

LPUSH adds at the head, BRPOP removes from the tail, so each queue is FIFO.
BRPOP blocks server-side until a task arrives or the timeout expires, so an
idle worker does not spin.

Delivery is at-most-once: a task popped by a worker that then crashes is
lost.  For progress materialization that is acceptable because every task
is a full recompute; the next statement for the pair, or
scripts/rematerialize_progress.py, repairs the row.

Without REDIS_URL the in-memory queue is used; the API then runs
materialization in-process instead of enqueueing (see
app/services/ingestion.py).
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis

from app.core.metrics import QUEUE_DEPTH
from app.core.retry import StoreUnavailableError
from app.db.redis import redis_pool

MATERIALIZATION_QUEUE = "progress_materialization"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      Unique identifier for tracking and logging.
    queue:   Which queue this task belongs to.
    payload: JSON-serializable data the handler needs.
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for tests, no Redis needed."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        self._queues.setdefault(queue, []).append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(self._queues[queue]))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if tasks:
            task = tasks.pop(0)  # FIFO: remove from front
            QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
            return task
        return None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        task_json = json.dumps({"id": task.id, "queue": task.queue, "payload": task.payload})
        try:
            depth = await self._redis.lpush(f"{self._PREFIX}{queue}", task_json)
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"enqueue on {queue}: {exc}") from exc
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        try:
            result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"dequeue on {queue}: {exc}") from exc
        if result is None:
            return None
        _, task_json = result
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        try:
            length = await self._redis.llen(f"{self._PREFIX}{queue}")
        except aioredis.RedisError as exc:
            raise StoreUnavailableError(f"queue length on {queue}: {exc}") from exc
        QUEUE_DEPTH.labels(queue_name=queue).set(length)
        return length


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
