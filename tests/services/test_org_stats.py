from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError

from campus_core.core.metrics import CACHE_OPERATIONS, ORG_STATS_REFRESHES
from campus_core.models.organization import NodeStatus
from campus_core.models.staff import AdminLevel
from campus_core.services import license_ledger, org_stats
from campus_core.services.cache import cache_service
from campus_core.services.task_queue import task_queue
from tests.conftest import (
    seed_actor,
    seed_branch,
    seed_company,
    seed_license,
    seed_school,
    seed_staff,
    seed_student,
    stores,
)


class _DownCache:
    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("down")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise RedisConnectionError("down")


def _repos() -> tuple:
    return stores.orgs, stores.students, stores.staff, stores.licenses


def _build_company():
    company = seed_company()
    north = seed_school(company.id, "North")
    annex = seed_branch(north.id, "Annex")
    seed_student(company.id, school_id=north.id)
    seed_student(company.id, school_id=north.id, branch_id=annex.id)
    seed_student(company.id)
    seed_staff(seed_actor(), company.id, AdminLevel.ENTITY_ADMIN)
    license = seed_license(company.id, total_quantity=7)
    return company, north, annex, license


def test_compute_counts_the_live_graph() -> None:
    company, _, _, license = _build_company()
    student = asyncio.run(stores.students.list_by_company(company.id))[0]
    asyncio.run(
        license_ledger.assign_license(
            stores.licenses, stores.students, license.id, student.id, assigned_by=None
        )
    )

    stats = asyncio.run(org_stats.compute_org_stats(*_repos(), company.id))

    assert stats.company_active is True
    assert (stats.schools, stats.branches, stats.students, stats.staff) == (1, 1, 3, 1)
    assert (stats.licenses, stats.license_seats_total, stats.license_seats_used) == (1, 7, 1)


def test_inactive_nodes_and_their_students_are_excluded() -> None:
    company, _, annex, _ = _build_company()
    asyncio.run(
        stores.orgs.add_branch(
            replace(annex, status=NodeStatus.INACTIVE)
        )
    )

    stats = asyncio.run(org_stats.compute_org_stats(*_repos(), company.id))

    assert stats.branches == 0
    assert stats.students == 2


def test_inactive_company_reports_zeros() -> None:
    company, _, _, _ = _build_company()
    asyncio.run(
        stores.orgs.add_company(
            replace(company, status=NodeStatus.INACTIVE)
        )
    )

    stats = asyncio.run(org_stats.compute_org_stats(*_repos(), company.id))

    assert stats.company_active is False
    assert stats.students == 0
    assert stats.license_seats_total == 0


def test_license_of_inactive_schools_leaves_the_seat_totals() -> None:
    company, north, _, _ = _build_company()
    closed = seed_school(company.id, "Closed")
    seed_license(company.id, total_quantity=9, school_ids=(closed.id,))
    seed_license(company.id, total_quantity=4, school_ids=(closed.id, north.id))
    asyncio.run(stores.orgs.add_school(replace(closed, status=NodeStatus.INACTIVE)))

    stats = asyncio.run(org_stats.compute_org_stats(*_repos(), company.id))

    assert stats.licenses == 2
    assert stats.license_seats_total == 7 + 4


def test_unknown_company_has_no_stats() -> None:
    assert asyncio.run(org_stats.get_org_stats(*_repos(), uuid4())) is None


def test_read_through_serves_the_snapshot_until_refreshed() -> None:
    company, north, _, _ = _build_company()
    miss = CACHE_OPERATIONS.labels(operation="miss")
    hit = CACHE_OPERATIONS.labels(operation="hit")
    misses, hits = miss._value.get(), hit._value.get()

    first = asyncio.run(org_stats.get_org_stats(*_repos(), company.id))
    seed_student(company.id, school_id=north.id)
    second = asyncio.run(org_stats.get_org_stats(*_repos(), company.id))

    assert first == second
    assert second.students == 3
    assert miss._value.get() == misses + 1
    assert hit._value.get() == hits + 1

    refreshed = asyncio.run(
        org_stats.refresh_org_stats(*_repos(), company.id, trigger="on_demand")
    )
    assert refreshed.students == 4
    assert asyncio.run(org_stats.get_org_stats(*_repos(), company.id)).students == 4


def test_snapshot_is_stored_under_company_key() -> None:
    company, _, _, _ = _build_company()

    asyncio.run(org_stats.get_org_stats(*_repos(), company.id))

    assert asyncio.run(cache_service.get(org_stats.cache_key(company.id))) is not None


def test_unreachable_cache_falls_back_to_live_compute() -> None:
    company, _, _, _ = _build_company()

    stats = asyncio.run(org_stats.get_org_stats(*_repos(), company.id, cache=_DownCache()))
    refreshed = asyncio.run(
        org_stats.refresh_org_stats(
            *_repos(), company.id, trigger="on_demand", cache=_DownCache()
        )
    )

    assert stats.students == 3
    assert refreshed.students == 3


def test_refresh_counts_trigger() -> None:
    company, _, _, _ = _build_company()
    counter = ORG_STATS_REFRESHES.labels(trigger="scheduled")
    before = counter._value.get()

    asyncio.run(org_stats.refresh_org_stats(*_repos(), company.id, trigger="scheduled"))

    assert counter._value.get() == before + 1


def test_request_refresh_enqueues_company() -> None:
    company = seed_company()

    asyncio.run(org_stats.request_refresh(company.id))

    task = asyncio.run(task_queue.dequeue(org_stats.ORG_STATS_QUEUE))
    assert task is not None
    assert task.payload == {"company_id": str(company.id)}
