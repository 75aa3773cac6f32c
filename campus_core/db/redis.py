"""Redis connection pool.

Redis holds only derived, rebuildable data: the organization statistics
snapshots and the org_stats_refresh task queue.  Licenses, assignments and
audit rows live in PostgreSQL, so losing Redis slows dashboards down and
never changes an allocation or scope decision.

Without REDIS_URL (local dev, tests) ``redis_pool`` is None and the cache
and task queue use their in-memory implementations.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from campus_core.core.config import SETTINGS

logger = logging.getLogger(__name__)

# A read of the stats snapshot falls back to a live count when Redis is
# slow; keep that fallback quick.
SOCKET_TIMEOUT_SECONDS = 2.0


def _create_pool(url: str) -> aioredis.Redis:  # type: ignore[type-arg]
    return aioredis.from_url(
        url,
        decode_responses=True,
        max_connections=20,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
        health_check_interval=30,
    )


redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    _create_pool(SETTINGS.redis_url) if SETTINGS.redis_url else None
)


@asynccontextmanager
async def lifespan_redis():
    if redis_pool is None:
        logger.info("No REDIS_URL configured, stats cache and task queue are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except (RedisError, OSError):
        # Start anyway: stats are computed live until Redis comes back.
        logger.exception("Redis unreachable on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
