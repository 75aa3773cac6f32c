from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class AdminLevel(StrEnum):
    ENTITY_ADMIN = "entity_admin"
    SUB_ENTITY_ADMIN = "sub_entity_admin"
    SCHOOL_ADMIN = "school_admin"
    BRANCH_ADMIN = "branch_admin"


COMPANY_WIDE_LEVELS = frozenset({AdminLevel.ENTITY_ADMIN, AdminLevel.SUB_ENTITY_ADMIN})


@dataclass(frozen=True, slots=True)
class EntityStaffAssignment:
    id: UUID
    actor_id: UUID
    company_id: UUID
    admin_level: AdminLevel
    is_active: bool = True

    @staticmethod
    def new(
        *, actor_id: UUID, company_id: UUID, admin_level: AdminLevel
    ) -> EntityStaffAssignment:
        return EntityStaffAssignment(
            id=uuid4(),
            actor_id=actor_id,
            company_id=company_id,
            admin_level=admin_level,
        )

    @property
    def is_company_wide(self) -> bool:
        return self.admin_level in COMPANY_WIDE_LEVELS


@dataclass(frozen=True, slots=True)
class EntityStaffScopeSchool:
    assignment_id: UUID
    school_id: UUID


@dataclass(frozen=True, slots=True)
class EntityStaffScopeBranch:
    assignment_id: UUID
    branch_id: UUID


@dataclass(frozen=True, slots=True)
class ActorScope:
    """Resolved reach of one actor inside one company.

    company_wide wins over the id sets; the sets are only meaningful for
    school/branch admins.  branch_school_ids holds the parent schools of
    branch_ids, so school-scoped rows (licenses, groups) can be matched
    against a branch admin without another graph walk.
    """

    company_id: UUID
    company_wide: bool = False
    school_ids: frozenset[UUID] = frozenset()
    branch_ids: frozenset[UUID] = frozenset()
    branch_school_ids: frozenset[UUID] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.company_wide or self.school_ids or self.branch_ids)

    @property
    def school_reach(self) -> frozenset[UUID]:
        return self.school_ids | self.branch_school_ids
