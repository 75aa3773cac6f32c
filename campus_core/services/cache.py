"""Snapshot cache for derived, rebuildable data.

Flow:  caller -> cache -> miss -> recompute from PostgreSQL -> store -> return
       caller -> cache -> hit  -> return

Every entry carries a TTL, so a missed refresh can only leave data stale
for one TTL.  The organization statistics snapshot (org_stats.py) is the
only consumer; its TTL is ORG_STATS_REFRESH_SECONDS.

The Redis implementation lets RedisError propagate so callers can fall
back to a live compute.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from campus_core.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on miss or expiry."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


class InMemoryCacheService:
    """Process-local cache for tests and local dev.

    Expiry is checked on read, the same contract Redis gives with SETEX.
    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (value, self._clock() + ttl_seconds)


class RedisCacheService:
    """Redis-backed cache shared by every API instance and the worker."""

    # Keeps cache keys apart from the task queue lists.
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
