"""Organization statistics snapshot endpoints."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from campus_core.api.deps import PrincipalDep, ResolverDep, Stores, StoresDep
from campus_core.models.org_stats import OrgStats
from campus_core.services import org_stats
from campus_core.services.access_policies import can_manage_company

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["stats"])


class OrgStatsOut(BaseModel):
    company_id: str
    company_active: bool
    schools: int
    branches: int
    students: int
    staff: int
    licenses: int
    license_seats_total: int
    license_seats_used: int
    generated_at: int


def _stats_out(stats: OrgStats) -> OrgStatsOut:
    return OrgStatsOut(
        company_id=str(stats.company_id),
        company_active=stats.company_active,
        schools=stats.schools,
        branches=stats.branches,
        students=stats.students,
        staff=stats.staff,
        licenses=stats.licenses,
        license_seats_total=stats.license_seats_total,
        license_seats_used=stats.license_seats_used,
        generated_at=stats.generated_at,
    )


def _repos(stores: Stores) -> tuple:
    return stores.orgs, stores.students, stores.staff, stores.licenses


@router.get("/companies/{company_id}/stats", response_model=OrgStatsOut)
async def get_company_stats(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> OrgStatsOut:
    """Cached snapshot; may lag the live graph by ORG_STATS_REFRESH_SECONDS."""
    if not await resolver.can_access_company(principal.actor_id, company_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="company not found")
    stats = await org_stats.get_org_stats(*_repos(stores), company_id)
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="company not found")
    return _stats_out(stats)


@router.post("/companies/{company_id}/stats/refresh", response_model=OrgStatsOut)
async def refresh_company_stats(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> OrgStatsOut:
    if not await can_manage_company(resolver, principal.actor_id, company_id):
        logger.warning(
            "Access denied: actor=%s cannot refresh stats company=%s",
            principal.actor_id,
            company_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    stats = await org_stats.refresh_org_stats(
        *_repos(stores), company_id, trigger="on_demand"
    )
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="company not found")
    return _stats_out(stats)
