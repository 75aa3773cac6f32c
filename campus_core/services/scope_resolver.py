"""Scope resolution: may this actor act on this organizational node?

Every per-table access predicate (access_policies.py) calls into a
ScopeResolver instead of joining against the staff table itself.  The
resolver reads the RAW actor, org and staff repositories, never a filtered
view, so evaluating a predicate on entity_staff_assignments can never
re-enter that same predicate.

Rules:
  - A system operator passes every composite check.
  - Below that, rights are additive: the first matching entity, school or
    branch scope grants access.  No level denies what another grants.
  - Every routine checks the actor's active flag and each assignment's
    active flag.
  - Dangling references (a branch with no school, a school with no
    company, a scope row pointing at a missing node) resolve to False.
    They are logged at WARNING and counted, and never raised.

One resolver is built per request; results are memoized on the instance,
so a list endpoint evaluating the same check for hundreds of rows walks
the graph once.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable
from uuid import UUID

from campus_core.core.metrics import SCOPE_CHECKS, SCOPE_RESOLUTION_FAILURES
from campus_core.models.actor import Actor
from campus_core.models.staff import ActorScope, AdminLevel, EntityStaffAssignment
from campus_core.repos.actor_repo import ActorRepo
from campus_core.repos.org_repo import OrgRepo
from campus_core.repos.staff_repo import StaffRepo

logger = logging.getLogger(__name__)


def _hashable(value: object) -> object:
    if isinstance(value, (list, tuple, set)):
        return frozenset(value)
    return value


def _memoized(func):
    """Cache a routine's answer per (routine, args) and count the outcome."""

    @functools.wraps(func)
    async def wrapper(self: ScopeResolver, *args):
        key = (func.__name__, *(_hashable(a) for a in args))
        if key in self._memo:
            return self._memo[key]
        result = await func(self, *args)
        self._memo[key] = result
        SCOPE_CHECKS.labels(
            routine=func.__name__, result="allow" if result else "deny"
        ).inc()
        return result

    return wrapper


class ScopeResolver:
    def __init__(self, actors: ActorRepo, orgs: OrgRepo, staff: StaffRepo) -> None:
        self._actors = actors
        self._orgs = orgs
        self._staff = staff
        self._memo: dict[tuple, bool] = {}
        self._actor_cache: dict[UUID, Actor | None] = {}
        self._assignment_cache: dict[UUID, list[EntityStaffAssignment]] = {}

    # -- role queries -----------------------------------------------------

    @_memoized
    async def is_system_operator(self, actor_id: UUID) -> bool:
        actor = await self._active_actor(actor_id)
        return actor is not None and actor.is_system_operator

    @_memoized
    async def is_entity_admin_for_company(
        self, actor_id: UUID, company_id: UUID
    ) -> bool:
        return any(
            a.company_id == company_id and a.is_company_wide
            for a in await self._active_assignments(actor_id)
        )

    @_memoized
    async def is_school_admin_for_school(self, actor_id: UUID, school_id: UUID) -> bool:
        company_id = await self._school_company(school_id)
        if company_id is None:
            return False
        for assignment in await self._active_assignments(actor_id):
            if assignment.admin_level is not AdminLevel.SCHOOL_ADMIN:
                continue
            if assignment.company_id != company_id:
                continue
            if school_id in await self._staff.school_scope(assignment.id):
                return True
        return False

    @_memoized
    async def is_branch_admin_for_branch(self, actor_id: UUID, branch_id: UUID) -> bool:
        company_id = await self._branch_company(branch_id)
        if company_id is None:
            return False
        for assignment in await self._active_assignments(actor_id):
            if assignment.admin_level is not AdminLevel.BRANCH_ADMIN:
                continue
            if assignment.company_id != company_id:
                continue
            if branch_id in await self._staff.branch_scope(assignment.id):
                return True
        return False

    # -- composite checks -------------------------------------------------

    @_memoized
    async def can_access_company(self, actor_id: UUID, company_id: UUID) -> bool:
        """Any active staff assignment in the company, at any level."""
        if await self.is_system_operator(actor_id):
            return True
        return any(
            a.company_id == company_id for a in await self._active_assignments(actor_id)
        )

    @_memoized
    async def can_access_school(self, actor_id: UUID, school_id: UUID) -> bool:
        if await self.is_system_operator(actor_id):
            return True
        company_id = await self._school_company(school_id)
        if company_id is None:
            return False
        if await self.is_entity_admin_for_company(actor_id, company_id):
            return True
        return await self.is_school_admin_for_school(actor_id, school_id)

    @_memoized
    async def can_access_branch(self, actor_id: UUID, branch_id: UUID) -> bool:
        if await self.is_system_operator(actor_id):
            return True
        branch = await self._orgs.get_branch(branch_id)
        if branch is None:
            return False
        if branch.school_id is None:
            self._fail(
                "branch_without_school", "branch %s has no school", branch_id
            )
            return False
        company_id = await self._school_company(branch.school_id)
        if company_id is None:
            return False
        if await self.is_entity_admin_for_company(actor_id, company_id):
            return True
        if await self.is_school_admin_for_school(actor_id, branch.school_id):
            return True
        return await self.is_branch_admin_for_branch(actor_id, branch_id)

    @_memoized
    async def can_access_academic_group_for_schools(
        self, actor_id: UUID, school_ids: Iterable[UUID]
    ) -> bool:
        """System operator, or active staff of a company owning any listed school.

        An empty list only admits system operators; company-wide groups are
        checked with can_access_company against the group's own company.
        """
        if await self.is_system_operator(actor_id):
            return True
        staff_companies = {a.company_id for a in await self._active_assignments(actor_id)}
        if not staff_companies:
            return False
        for school_id in school_ids:
            company_id = await self._school_company(school_id)
            if company_id is not None and company_id in staff_companies:
                return True
        return False

    async def resolve_scope(self, actor_id: UUID, company_id: UUID) -> ActorScope:
        """Collapse the actor's assignments in one company into an ActorScope."""
        if await self.is_system_operator(actor_id) or await self.is_entity_admin_for_company(
            actor_id, company_id
        ):
            return ActorScope(company_id=company_id, company_wide=True)

        school_ids: set[UUID] = set()
        branch_ids: set[UUID] = set()
        branch_school_ids: set[UUID] = set()
        for assignment in await self._active_assignments(actor_id):
            if assignment.company_id != company_id:
                continue
            if assignment.admin_level is AdminLevel.SCHOOL_ADMIN:
                for school_id in await self._staff.school_scope(assignment.id):
                    if await self._school_company(school_id) == company_id:
                        school_ids.add(school_id)
            elif assignment.admin_level is AdminLevel.BRANCH_ADMIN:
                for branch_id in await self._staff.branch_scope(assignment.id):
                    branch = await self._orgs.get_branch(branch_id)
                    if branch is None or branch.school_id is None:
                        self._fail(
                            "dangling_branch_scope",
                            "scope row of assignment %s names unusable branch %s",
                            assignment.id,
                            branch_id,
                        )
                        continue
                    if await self._school_company(branch.school_id) == company_id:
                        branch_ids.add(branch_id)
                        branch_school_ids.add(branch.school_id)

        return ActorScope(
            company_id=company_id,
            school_ids=frozenset(school_ids),
            branch_ids=frozenset(branch_ids),
            branch_school_ids=frozenset(branch_school_ids),
        )

    # -- graph walking ------------------------------------------------------

    async def _active_actor(self, actor_id: UUID) -> Actor | None:
        if actor_id not in self._actor_cache:
            actor = await self._actors.get_by_id(actor_id)
            self._actor_cache[actor_id] = (
                actor if actor is not None and actor.is_active else None
            )
        return self._actor_cache[actor_id]

    async def _active_assignments(self, actor_id: UUID) -> list[EntityStaffAssignment]:
        if actor_id not in self._assignment_cache:
            if await self._active_actor(actor_id) is None:
                assignments: list[EntityStaffAssignment] = []
            else:
                assignments = [
                    a for a in await self._staff.list_by_actor(actor_id) if a.is_active
                ]
            self._assignment_cache[actor_id] = assignments
        return self._assignment_cache[actor_id]

    async def _school_company(self, school_id: UUID) -> UUID | None:
        school = await self._orgs.get_school(school_id)
        if school is None:
            self._fail("missing_school", "school %s does not exist", school_id)
            return None
        if school.company_id is None:
            self._fail("school_without_company", "school %s has no company", school_id)
            return None
        if await self._orgs.get_company(school.company_id) is None:
            self._fail(
                "missing_company",
                "school %s references missing company %s",
                school_id,
                school.company_id,
            )
            return None
        return school.company_id

    async def _branch_company(self, branch_id: UUID) -> UUID | None:
        branch = await self._orgs.get_branch(branch_id)
        if branch is None:
            return None
        if branch.school_id is None:
            self._fail("branch_without_school", "branch %s has no school", branch_id)
            return None
        return await self._school_company(branch.school_id)

    @staticmethod
    def _fail(reason: str, message: str, *args: object) -> None:
        SCOPE_RESOLUTION_FAILURES.labels(reason=reason).inc()
        logger.warning("Scope resolution failed: " + message, *args)
