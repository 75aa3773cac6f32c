"""Organization statistics snapshot.

Counting every school, branch, student and seat of a company on each
dashboard load does not scale, so the counts are computed into a snapshot
and kept in the cache service for ORG_STATS_REFRESH_SECONDS.  Readers
accept that the numbers can lag by up to that interval.

The snapshot is rebuilt:
  - on a read miss (first read after expiry),
  - on demand, when an operator asks for a refresh,
  - by the worker, on a timer and for queued refresh tasks that the
    allocation endpoints enqueue after every successful write.

The cache only holds derived data.  If Redis is unreachable the snapshot
is computed live and the read still succeeds.
"""

from __future__ import annotations

import dataclasses
import datetime
import json
import logging
from uuid import UUID

from redis.exceptions import RedisError

from campus_core.core.config import SETTINGS
from campus_core.core.metrics import CACHE_OPERATIONS, ORG_STATS_REFRESHES
from campus_core.models.org_stats import OrgStats
from campus_core.models.organization import NodeStatus
from campus_core.repos.actor_repo import StudentRepo
from campus_core.repos.license_repo import LicenseRepo
from campus_core.repos.org_repo import OrgRepo
from campus_core.repos.staff_repo import StaffRepo
from campus_core.services import license_ledger
from campus_core.services.cache import CacheService, cache_service
from campus_core.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

ORG_STATS_QUEUE = "org_stats_refresh"


def cache_key(company_id: UUID) -> str:
    return f"org_stats:{company_id}"


async def compute_org_stats(
    orgs: OrgRepo,
    students: StudentRepo,
    staff: StaffRepo,
    licenses: LicenseRepo,
    company_id: UUID,
) -> OrgStats | None:
    """Count the live graph.  Returns None for an unknown company."""
    company = await orgs.get_company(company_id)
    if company is None:
        return None
    now = int(datetime.datetime.now(datetime.UTC).timestamp())

    if company.status is not NodeStatus.ACTIVE:
        return OrgStats(
            company_id=company_id,
            company_active=False,
            schools=0,
            branches=0,
            students=0,
            staff=0,
            licenses=0,
            license_seats_total=0,
            license_seats_used=0,
            generated_at=now,
        )

    active_schools = {
        s.id for s in await orgs.list_schools(company_id) if s.status is NodeStatus.ACTIVE
    }
    active_branches: set[UUID] = set()
    for school_id in active_schools:
        active_branches.update(
            b.id
            for b in await orgs.list_branches(school_id)
            if b.status is NodeStatus.ACTIVE
        )

    student_count = 0
    for student in await students.list_by_company(company_id):
        if not student.is_active:
            continue
        if student.branch_id is not None and student.branch_id not in active_branches:
            continue
        if student.school_id is not None and student.school_id not in active_schools:
            continue
        student_count += 1

    active_licenses = await license_ledger.live_licenses(licenses, orgs, company_id)

    return OrgStats(
        company_id=company_id,
        company_active=True,
        schools=len(active_schools),
        branches=len(active_branches),
        students=student_count,
        staff=sum(1 for a in await staff.list_by_company(company_id) if a.is_active),
        licenses=len(active_licenses),
        license_seats_total=sum(lic.total_quantity for lic in active_licenses),
        license_seats_used=sum(lic.used_quantity for lic in active_licenses),
        generated_at=now,
    )


def _dump(stats: OrgStats) -> str:
    data = dataclasses.asdict(stats)
    data["company_id"] = str(stats.company_id)
    return json.dumps(data)


def _load(raw: str) -> OrgStats:
    data = json.loads(raw)
    data["company_id"] = UUID(data["company_id"])
    return OrgStats(**data)


async def refresh_org_stats(
    orgs: OrgRepo,
    students: StudentRepo,
    staff: StaffRepo,
    licenses: LicenseRepo,
    company_id: UUID,
    *,
    trigger: str,
    cache: CacheService | None = None,
) -> OrgStats | None:
    """Recompute and store the snapshot.  ``trigger`` labels the metric."""
    cache = cache or cache_service
    stats = await compute_org_stats(orgs, students, staff, licenses, company_id)
    if stats is None:
        return None
    ORG_STATS_REFRESHES.labels(trigger=trigger).inc()
    try:
        await cache.set(
            cache_key(company_id), _dump(stats), SETTINGS.org_stats_refresh_seconds
        )
    except RedisError:
        logger.warning("Could not store org stats snapshot company=%s", company_id)
    logger.debug("Org stats refreshed company=%s trigger=%s", company_id, trigger)
    return stats


async def get_org_stats(
    orgs: OrgRepo,
    students: StudentRepo,
    staff: StaffRepo,
    licenses: LicenseRepo,
    company_id: UUID,
    *,
    cache: CacheService | None = None,
) -> OrgStats | None:
    """Read-through: snapshot on hit, rebuild on miss."""
    cache = cache or cache_service
    try:
        raw = await cache.get(cache_key(company_id))
    except RedisError:
        logger.warning("Org stats cache unavailable, computing live company=%s", company_id)
        return await compute_org_stats(orgs, students, staff, licenses, company_id)

    if raw is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return _load(raw)

    CACHE_OPERATIONS.labels(operation="miss").inc()
    return await refresh_org_stats(
        orgs, students, staff, licenses, company_id, trigger="read_miss", cache=cache
    )


async def request_refresh(company_id: UUID, *, queue: TaskQueue | None = None) -> None:
    """Ask the worker to rebuild a company's snapshot."""
    queue = queue or task_queue
    try:
        await queue.enqueue(
            ORG_STATS_QUEUE,
            {"company_id": str(company_id)},
            dedupe_key=str(company_id),
        )
    except RedisError:
        # The timer refresh catches up; the write itself already succeeded.
        logger.warning("Could not enqueue org stats refresh company=%s", company_id)
