"""Background task queue using Redis lists.

Producers (API endpoints) LPUSH a task and return immediately; the worker
process (campus_core/worker.py) BRPOPs from the other end, so each queue
is FIFO.  Delivery is at-most-once: a task in flight when the worker dies
is lost.  That is acceptable for the only queue we run, org_stats_refresh,
because the worker's timer rebuilds every snapshot anyway.

Tasks may carry a ``dedupe_key``.  While a task with that key is waiting,
enqueueing another one is a no-op: a batch import of 500 students asks
for one snapshot rebuild, not 500.  The key is released when the task is
dequeued, so a write that lands while the worker is rebuilding still
schedules a fresh rebuild.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Protocol, runtime_checkable

from campus_core.core.metrics import QUEUE_DEPTH
from campus_core.db.redis import redis_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    queue:      which queue the task belongs to (e.g. "org_stats_refresh").
    payload:    JSON-serializable data the handler needs.
    dedupe_key: pending tasks sharing a key collapse into one.
    """

    id: str
    queue: str
    payload: dict
    dedupe_key: str | None = None


def _new_task(queue: str, payload: dict, dedupe_key: str | None) -> Task:
    return Task(id=str(uuid.uuid4()), queue=queue, payload=payload, dedupe_key=dedupe_key)


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(
        self, queue: str, payload: dict, *, dedupe_key: str | None = None
    ) -> Task | None:
        """Returns None when an identical task is already waiting."""
        ...

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for tests; no Redis needed."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}
        self._pending: dict[str, set[str]] = {}

    async def enqueue(
        self, queue: str, payload: dict, *, dedupe_key: str | None = None
    ) -> Task | None:
        pending = self._pending.setdefault(queue, set())
        if dedupe_key is not None:
            if dedupe_key in pending:
                logger.debug("Task coalesced queue=%s key=%s", queue, dedupe_key)
                return None
            pending.add(dedupe_key)
        task = _new_task(queue, payload, dedupe_key)
        self._queues.setdefault(queue, []).append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(self._queues[queue]))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if not tasks:
            return None
        task = tasks.pop(0)
        if task.dedupe_key is not None:
            self._pending.get(queue, set()).discard(task.dedupe_key)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue: a list per queue plus a set of pending keys."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _list(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}"

    def _pending(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}:pending"

    async def enqueue(
        self, queue: str, payload: dict, *, dedupe_key: str | None = None
    ) -> Task | None:
        # SADD is atomic, so two API instances cannot both win the same key.
        if dedupe_key is not None and not await self._redis.sadd(
            self._pending(queue), dedupe_key
        ):
            logger.debug("Task coalesced queue=%s key=%s", queue, dedupe_key)
            return None
        task = _new_task(queue, payload, dedupe_key)
        depth = await self._redis.lpush(self._list(queue), json.dumps(asdict(task)))
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Blocks up to `timeout` seconds; None means nothing arrived.
        result = await self._redis.brpop(self._list(queue), timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        task = Task(**json.loads(task_json))
        if task.dedupe_key is not None:
            await self._redis.srem(self._pending(queue), task.dedupe_key)
        return task

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._list(queue))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
