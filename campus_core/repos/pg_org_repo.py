"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.db.tables import (
    AcademicGroupRow,
    AcademicGroupSchoolRow,
    BranchRow,
    CompanyRow,
    SchoolRow,
)
from campus_core.models.organization import (
    AcademicGroup,
    AcademicGroupKind,
    Branch,
    Company,
    NodeStatus,
    School,
)


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_company(self, company_id: UUID) -> Company | None:
        row = await self._session.get(CompanyRow, company_id)
        if row is None:
            return None
        return Company(id=row.id, name=row.name, status=NodeStatus(row.status))

    async def get_school(self, school_id: UUID) -> School | None:
        row = await self._session.get(SchoolRow, school_id)
        return _row_to_school(row) if row is not None else None

    async def get_branch(self, branch_id: UUID) -> Branch | None:
        row = await self._session.get(BranchRow, branch_id)
        return _row_to_branch(row) if row is not None else None

    async def add_company(self, company: Company) -> None:
        self._session.add(
            CompanyRow(id=company.id, name=company.name, status=company.status.value)
        )
        await self._session.flush()

    async def add_school(self, school: School) -> None:
        self._session.add(
            SchoolRow(
                id=school.id,
                company_id=school.company_id,
                name=school.name,
                status=school.status.value,
            )
        )
        await self._session.flush()

    async def add_branch(self, branch: Branch) -> None:
        self._session.add(
            BranchRow(
                id=branch.id,
                school_id=branch.school_id,
                name=branch.name,
                status=branch.status.value,
            )
        )
        await self._session.flush()

    async def list_companies(self) -> list[Company]:
        rows = (await self._session.execute(select(CompanyRow))).scalars().all()
        return [Company(id=r.id, name=r.name, status=NodeStatus(r.status)) for r in rows]

    async def list_schools(self, company_id: UUID) -> list[School]:
        stmt = select(SchoolRow).where(SchoolRow.company_id == company_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_school(r) for r in rows]

    async def list_branches(self, school_id: UUID) -> list[Branch]:
        stmt = select(BranchRow).where(BranchRow.school_id == school_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_branch(r) for r in rows]

    async def get_academic_group(self, group_id: UUID) -> AcademicGroup | None:
        row = await self._session.get(AcademicGroupRow, group_id)
        if row is None:
            return None
        return await self._to_group(row)

    async def add_academic_group(self, group: AcademicGroup) -> None:
        self._session.add(
            AcademicGroupRow(
                id=group.id,
                company_id=group.company_id,
                kind=group.kind.value,
                name=group.name,
            )
        )
        # Parent row must exist before its association rows reference it.
        await self._session.flush()
        for school_id in group.school_ids:
            self._session.add(AcademicGroupSchoolRow(group_id=group.id, school_id=school_id))
        await self._session.flush()

    async def list_academic_groups(self, company_id: UUID) -> list[AcademicGroup]:
        stmt = select(AcademicGroupRow).where(AcademicGroupRow.company_id == company_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [await self._to_group(r) for r in rows]

    async def _to_group(self, row: AcademicGroupRow) -> AcademicGroup:
        stmt = select(AcademicGroupSchoolRow.school_id).where(
            AcademicGroupSchoolRow.group_id == row.id
        )
        school_ids = (await self._session.execute(stmt)).scalars().all()
        return AcademicGroup(
            id=row.id,
            company_id=row.company_id,
            kind=AcademicGroupKind(row.kind),
            name=row.name,
            school_ids=tuple(school_ids),
        )


def _row_to_school(row: SchoolRow) -> School:
    return School(
        id=row.id,
        company_id=row.company_id,
        name=row.name,
        status=NodeStatus(row.status),
    )


def _row_to_branch(row: BranchRow) -> Branch:
    return Branch(
        id=row.id,
        school_id=row.school_id,
        name=row.name,
        status=NodeStatus(row.status),
    )
