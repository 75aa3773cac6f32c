"""Prometheus scrape endpoint.

Exposes the HTTP metrics plus the domain counters from core/metrics.py
(scope checks, license allocations, impersonated requests, stats
refreshes) in text exposition format.  Restrict it to the scraper's
network in production.

Queue depth is read from the queue itself on every scrape: with Redis the
queue is shared by every API instance and the worker, so the gauge a
single process last set on enqueue would be stale.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError

from campus_core.core.metrics import QUEUE_DEPTH
from campus_core.services.org_stats import ORG_STATS_QUEUE
from campus_core.services.task_queue import task_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["observability"])

OBSERVED_QUEUES = (ORG_STATS_QUEUE,)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    for queue in OBSERVED_QUEUES:
        try:
            QUEUE_DEPTH.labels(queue_name=queue).set(await task_queue.queue_length(queue))
        except (RedisError, OSError):
            logger.warning("Could not read queue depth queue=%s", queue)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
