from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class NodeStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AcademicGroupKind(StrEnum):
    GRADE_LEVEL = "grade_level"
    DEPARTMENT = "department"
    ACADEMIC_YEAR = "academic_year"


@dataclass(frozen=True, slots=True)
class Company:
    id: UUID
    name: str
    status: NodeStatus = NodeStatus.ACTIVE

    @staticmethod
    def new(*, name: str) -> Company:
        return Company(id=uuid4(), name=name)


@dataclass(frozen=True, slots=True)
class School:
    id: UUID
    company_id: UUID | None  # None only for legacy rows; resolvers fail closed
    name: str
    status: NodeStatus = NodeStatus.ACTIVE

    @staticmethod
    def new(*, company_id: UUID, name: str) -> School:
        return School(id=uuid4(), company_id=company_id, name=name)


@dataclass(frozen=True, slots=True)
class Branch:
    id: UUID
    school_id: UUID | None
    name: str
    status: NodeStatus = NodeStatus.ACTIVE

    @staticmethod
    def new(*, school_id: UUID, name: str) -> Branch:
        return Branch(id=uuid4(), school_id=school_id, name=name)


@dataclass(frozen=True, slots=True)
class AcademicGroup:
    """Grade level, department or academic year.

    An empty ``school_ids`` means the group applies company-wide.
    """

    id: UUID
    company_id: UUID
    kind: AcademicGroupKind
    name: str
    school_ids: tuple[UUID, ...] = ()

    @staticmethod
    def new(
        *,
        company_id: UUID,
        kind: AcademicGroupKind,
        name: str,
        school_ids: tuple[UUID, ...] = (),
    ) -> AcademicGroup:
        return AcademicGroup(
            id=uuid4(),
            company_id=company_id,
            kind=kind,
            name=name,
            school_ids=school_ids,
        )

    @property
    def is_company_wide(self) -> bool:
        return not self.school_ids
