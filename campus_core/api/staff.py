"""Entity staff assignment endpoints."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from campus_core.api.deps import PrincipalDep, ResolverDep, Stores, StoresDep, http_error
from campus_core.core.errors import CampusCoreError
from campus_core.models.staff import AdminLevel, EntityStaffAssignment
from campus_core.services import staff_service
from campus_core.services.access_policies import (
    can_manage_company,
    filter_visible,
    staff_assignment_visible,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["staff"])


class StaffAssignmentIn(BaseModel):
    actor_id: UUID
    admin_level: AdminLevel
    school_ids: list[UUID] = []
    branch_ids: list[UUID] = []


class StaffAssignmentOut(BaseModel):
    id: str
    actor_id: str
    company_id: str
    admin_level: str
    is_active: bool
    school_ids: list[str]
    branch_ids: list[str]


async def _assignment_out(
    stores: Stores, assignment: EntityStaffAssignment
) -> StaffAssignmentOut:
    schools = await stores.staff.school_scope(assignment.id)
    branches = await stores.staff.branch_scope(assignment.id)
    return StaffAssignmentOut(
        id=str(assignment.id),
        actor_id=str(assignment.actor_id),
        company_id=str(assignment.company_id),
        admin_level=assignment.admin_level.value,
        is_active=assignment.is_active,
        school_ids=sorted(str(s) for s in schools),
        branch_ids=sorted(str(b) for b in branches),
    )


@router.post(
    "/companies/{company_id}/staff",
    response_model=StaffAssignmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_staff_assignment(
    company_id: UUID,
    body: StaffAssignmentIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> StaffAssignmentOut:
    """Grant an admin level in a company.  Entity admins and operators only."""
    if not await can_manage_company(resolver, principal.actor_id, company_id):
        logger.warning(
            "Access denied: actor=%s cannot grant staff roles in company=%s",
            principal.actor_id,
            company_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    try:
        assignment = await staff_service.create_staff_assignment(
            stores.staff,
            stores.orgs,
            stores.actors,
            actor_id=body.actor_id,
            company_id=company_id,
            admin_level=body.admin_level,
            school_ids=body.school_ids,
            branch_ids=body.branch_ids,
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    logger.info(
        "Staff role granted assignment=%s by=%s", assignment.id, principal.real_actor_id
    )
    return await _assignment_out(stores, assignment)


@router.get("/companies/{company_id}/staff", response_model=list[StaffAssignmentOut])
async def list_staff(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[StaffAssignmentOut]:
    visible = await filter_visible(
        resolver,
        principal.actor_id,
        await stores.staff.list_by_company(company_id),
        staff_assignment_visible,
    )
    return [await _assignment_out(stores, a) for a in visible]


@router.post("/staff/{assignment_id}/deactivate", response_model=StaffAssignmentOut)
async def deactivate_staff_assignment(
    assignment_id: UUID,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> StaffAssignmentOut:
    assignment = await stores.staff.get(assignment_id)
    if assignment is None or not await staff_assignment_visible(
        resolver, principal.actor_id, assignment
    ):
        raise HTTPException(status_code=404, detail="staff assignment not found")
    if not await can_manage_company(resolver, principal.actor_id, assignment.company_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    try:
        updated = await staff_service.deactivate_staff_assignment(
            stores.staff, assignment_id
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return await _assignment_out(stores, updated)
