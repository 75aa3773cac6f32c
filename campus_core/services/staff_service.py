"""Entity staff assignments and their scope rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from campus_core.core.errors import IntegrityViolation, NotFoundError
from campus_core.models.actor import ActorType
from campus_core.models.staff import AdminLevel, EntityStaffAssignment
from campus_core.repos.actor_repo import ActorRepo
from campus_core.repos.org_repo import OrgRepo
from campus_core.repos.staff_repo import StaffRepo
from campus_core.services.org_service import schools_in_company

logger = logging.getLogger(__name__)


async def create_staff_assignment(
    staff: StaffRepo,
    orgs: OrgRepo,
    actors: ActorRepo,
    *,
    actor_id: UUID,
    company_id: UUID,
    admin_level: AdminLevel,
    school_ids: Iterable[UUID] = (),
    branch_ids: Iterable[UUID] = (),
) -> EntityStaffAssignment:
    """Create an assignment plus its scope rows.

    school_admin needs at least one school, branch_admin at least one
    branch, and company-wide levels take neither.  Every scope row must
    name a node inside ``company_id``.
    """
    actor = await actors.get_by_id(actor_id)
    if actor is None:
        raise NotFoundError(f"actor {actor_id} not found")
    if actor.actor_type is not ActorType.ENTITY_STAFF:
        raise IntegrityViolation("only entity_staff actors can hold staff assignments")
    if await orgs.get_company(company_id) is None:
        raise NotFoundError(f"company {company_id} not found")

    schools = frozenset(await schools_in_company(orgs, company_id, school_ids))
    branches = frozenset(branch_ids)
    for branch_id in branches:
        branch = await orgs.get_branch(branch_id)
        if branch is None or branch.school_id is None:
            raise IntegrityViolation(f"branch {branch_id} has no school")
        await schools_in_company(orgs, company_id, (branch.school_id,))

    if admin_level is AdminLevel.SCHOOL_ADMIN and (not schools or branches):
        raise IntegrityViolation("school_admin needs school scope rows only")
    if admin_level is AdminLevel.BRANCH_ADMIN and (not branches or schools):
        raise IntegrityViolation("branch_admin needs branch scope rows only")
    if admin_level in (AdminLevel.ENTITY_ADMIN, AdminLevel.SUB_ENTITY_ADMIN) and (
        schools or branches
    ):
        raise IntegrityViolation(f"{admin_level.value} is company-wide; no scope rows")

    assignment = EntityStaffAssignment.new(
        actor_id=actor_id, company_id=company_id, admin_level=admin_level
    )
    await staff.add(assignment, schools, branches)
    logger.info(
        "Created staff assignment id=%s actor=%s company=%s level=%s",
        assignment.id,
        actor_id,
        company_id,
        admin_level.value,
    )
    return assignment


async def deactivate_staff_assignment(
    staff: StaffRepo, assignment_id: UUID
) -> EntityStaffAssignment:
    updated = await staff.set_active(assignment_id, False)
    if updated is None:
        raise NotFoundError(f"staff assignment {assignment_id} not found")
    logger.info("Deactivated staff assignment id=%s", assignment_id)
    return updated
