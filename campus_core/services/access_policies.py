"""Row-level access predicates, one per protected table.

Each predicate answers "may actor X see/touch this row" by calling
ScopeResolver routines only; none of them joins the staff table itself.
List endpoints pass their candidate rows through ``filter_visible`` so a
denied row simply does not appear in the response.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar
from uuid import UUID

from campus_core.models.actor import Student
from campus_core.models.license import License, LicenseAssignment
from campus_core.models.organization import AcademicGroup, Branch, Company, School
from campus_core.models.staff import ActorScope, EntityStaffAssignment
from campus_core.services.scope_resolver import ScopeResolver

T = TypeVar("T")

Predicate = Callable[[ScopeResolver, UUID, T], Awaitable[bool]]


async def filter_visible(
    resolver: ScopeResolver,
    actor_id: UUID,
    rows: Iterable[T],
    predicate: Predicate[T],
) -> list[T]:
    return [row for row in rows if await predicate(resolver, actor_id, row)]


# --- Organizational graph ---


async def company_visible(
    resolver: ScopeResolver, actor_id: UUID, company: Company
) -> bool:
    return await resolver.can_access_company(actor_id, company.id)


async def school_visible(resolver: ScopeResolver, actor_id: UUID, school: School) -> bool:
    return await resolver.can_access_school(actor_id, school.id)


async def branch_visible(resolver: ScopeResolver, actor_id: UUID, branch: Branch) -> bool:
    return await resolver.can_access_branch(actor_id, branch.id)


async def academic_group_visible(
    resolver: ScopeResolver, actor_id: UUID, group: AcademicGroup
) -> bool:
    if group.is_company_wide:
        return await resolver.can_access_company(actor_id, group.company_id)
    return await resolver.can_access_academic_group_for_schools(
        actor_id, group.school_ids
    )


# --- Staff ---


async def staff_assignment_visible(
    resolver: ScopeResolver, actor_id: UUID, assignment: EntityStaffAssignment
) -> bool:
    """Own rows, plus every row of a company the actor administers."""
    if assignment.actor_id == actor_id:
        return True
    if await resolver.is_system_operator(actor_id):
        return True
    return await resolver.is_entity_admin_for_company(actor_id, assignment.company_id)


async def can_manage_company(
    resolver: ScopeResolver, actor_id: UUID, company_id: UUID
) -> bool:
    """Write rights over company-level rows (schools, staff, licenses)."""
    if await resolver.is_system_operator(actor_id):
        return True
    return await resolver.is_entity_admin_for_company(actor_id, company_id)


# --- Students and licenses ---


async def student_visible(
    resolver: ScopeResolver, actor_id: UUID, student: Student
) -> bool:
    if await can_manage_company(resolver, actor_id, student.company_id):
        return True
    if student.branch_id is not None and await resolver.can_access_branch(
        actor_id, student.branch_id
    ):
        return True
    if student.school_id is not None:
        return await resolver.can_access_school(actor_id, student.school_id)
    return False


def license_in_scope(license: License, scope: ActorScope) -> bool:
    """A license with no school list applies company-wide."""
    if license.company_id != scope.company_id:
        return False
    if scope.company_wide:
        return True
    if scope.is_empty:
        return False
    if not license.school_ids:
        return True
    return bool(scope.school_reach.intersection(license.school_ids))


async def license_visible(
    resolver: ScopeResolver, actor_id: UUID, license: License
) -> bool:
    scope = await resolver.resolve_scope(actor_id, license.company_id)
    return license_in_scope(license, scope)


async def assignment_visible(
    resolver: ScopeResolver,
    actor_id: UUID,
    assignment: LicenseAssignment,
    student: Student | None,
) -> bool:
    # Assignment rows inherit the visibility of their beneficiary.
    if student is None or student.id != assignment.student_id:
        return await resolver.is_system_operator(actor_id)
    return await student_visible(resolver, actor_id, student)
