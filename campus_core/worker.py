"""Background worker process.

RUN:  python -m campus_core.worker

Same image as the API, different command.  The worker keeps the
organization statistics snapshots warm:

  - it drains the ``org_stats_refresh`` queue that allocation endpoints
    feed after every successful write, and
  - every ORG_STATS_REFRESH_SECONDS it rebuilds the snapshot of every
    company, so a lost task only delays a refresh by one interval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from campus_core.api.deps import MEMORY_STORES, Stores, pg_stores
from campus_core.core.config import SETTINGS
from campus_core.core.logging import setup_logging
from campus_core.db.engine import async_session_factory, session_scope
from campus_core.services import org_stats
from campus_core.services.task_queue import InMemoryTaskQueue, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("campus_core.worker")


@asynccontextmanager
async def open_stores() -> AsyncIterator[Stores]:
    """Repositories for one unit of work, committed when it finishes."""
    if async_session_factory is None:
        yield MEMORY_STORES
        return
    async with session_scope() as session:
        yield pg_stores(session)


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


@register_handler(org_stats.ORG_STATS_QUEUE)
async def handle_org_stats_refresh(payload: dict) -> None:
    company_id = UUID(payload["company_id"])
    async with open_stores() as stores:
        stats = await org_stats.refresh_org_stats(
            stores.orgs,
            stores.students,
            stores.staff,
            stores.licenses,
            company_id,
            trigger="queued",
        )
    if stats is None:
        logger.warning("Refresh requested for unknown company=%s", company_id)


async def refresh_all_companies() -> int:
    """Rebuild every company's snapshot.  Returns how many were refreshed."""
    refreshed = 0
    async with open_stores() as stores:
        for company in await stores.orgs.list_companies():
            stats = await org_stats.refresh_org_stats(
                stores.orgs,
                stores.students,
                stores.staff,
                stores.licenses,
                company.id,
                trigger="scheduled",
            )
            if stats is not None:
                refreshed += 1
    logger.info("Scheduled org stats refresh finished companies=%d", refreshed)
    return refreshed


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and run a single task.  Returns False when the queue was empty."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False
    try:
        await HANDLERS[queue_name](task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # The timer refresh rebuilds the snapshot regardless.
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    queues = list(HANDLERS.keys())
    logger.info(
        "Worker started, listening on queues: %s refresh_every=%ds",
        queues,
        SETTINGS.org_stats_refresh_seconds,
    )

    next_sweep = time.monotonic()
    while True:
        if time.monotonic() >= next_sweep:
            try:
                await refresh_all_companies()
            except Exception:
                logger.exception("Scheduled org stats refresh failed")
            next_sweep = time.monotonic() + SETTINGS.org_stats_refresh_seconds

        idle = True
        for queue_name in queues:
            if await process_one(queue_name):
                idle = False
        if idle and isinstance(task_queue, InMemoryTaskQueue):
            # The in-memory queue does not block on dequeue.
            await asyncio.sleep(1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
