from __future__ import annotations

from typing import Protocol
from uuid import UUID

from campus_core.models.organization import AcademicGroup, Branch, Company, School


class OrgRepo(Protocol):
    async def get_company(self, company_id: UUID) -> Company | None: ...
    async def get_school(self, school_id: UUID) -> School | None: ...
    async def get_branch(self, branch_id: UUID) -> Branch | None: ...
    async def add_company(self, company: Company) -> None: ...
    async def add_school(self, school: School) -> None: ...
    async def add_branch(self, branch: Branch) -> None: ...
    async def list_companies(self) -> list[Company]: ...
    async def list_schools(self, company_id: UUID) -> list[School]: ...
    async def list_branches(self, school_id: UUID) -> list[Branch]: ...
    async def get_academic_group(self, group_id: UUID) -> AcademicGroup | None: ...
    async def add_academic_group(self, group: AcademicGroup) -> None: ...
    async def list_academic_groups(self, company_id: UUID) -> list[AcademicGroup]: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._companies: dict[UUID, Company] = {}
        self._schools: dict[UUID, School] = {}
        self._branches: dict[UUID, Branch] = {}
        self._groups: dict[UUID, AcademicGroup] = {}

    async def get_company(self, company_id: UUID) -> Company | None:
        return self._companies.get(company_id)

    async def get_school(self, school_id: UUID) -> School | None:
        return self._schools.get(school_id)

    async def get_branch(self, branch_id: UUID) -> Branch | None:
        return self._branches.get(branch_id)

    async def add_company(self, company: Company) -> None:
        self._companies[company.id] = company

    async def add_school(self, school: School) -> None:
        self._schools[school.id] = school

    async def add_branch(self, branch: Branch) -> None:
        self._branches[branch.id] = branch

    async def list_companies(self) -> list[Company]:
        return list(self._companies.values())

    async def list_schools(self, company_id: UUID) -> list[School]:
        return [s for s in self._schools.values() if s.company_id == company_id]

    async def list_branches(self, school_id: UUID) -> list[Branch]:
        return [b for b in self._branches.values() if b.school_id == school_id]

    async def get_academic_group(self, group_id: UUID) -> AcademicGroup | None:
        return self._groups.get(group_id)

    async def add_academic_group(self, group: AcademicGroup) -> None:
        self._groups[group.id] = group

    async def list_academic_groups(self, company_id: UUID) -> list[AcademicGroup]:
        return [g for g in self._groups.values() if g.company_id == company_id]
