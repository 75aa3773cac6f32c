"""PostgreSQL implementation of StaffRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.db.tables import (
    EntityStaffAssignmentRow,
    EntityStaffScopeBranchRow,
    EntityStaffScopeSchoolRow,
)
from campus_core.models.staff import AdminLevel, EntityStaffAssignment


class PgStaffRepo:
    """Satisfies the StaffRepo Protocol using PostgreSQL via SQLAlchemy.

    Queries here run on the service's own connection, outside any
    per-request row filtering, which is what lets the scope resolver read
    the staff table without re-entering its access predicate.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, assignment_id: UUID) -> EntityStaffAssignment | None:
        row = await self._session.get(EntityStaffAssignmentRow, assignment_id)
        return _row_to_assignment(row) if row is not None else None

    async def add(
        self,
        assignment: EntityStaffAssignment,
        school_ids: frozenset[UUID] = frozenset(),
        branch_ids: frozenset[UUID] = frozenset(),
    ) -> None:
        self._session.add(
            EntityStaffAssignmentRow(
                id=assignment.id,
                actor_id=assignment.actor_id,
                company_id=assignment.company_id,
                admin_level=assignment.admin_level.value,
                is_active=assignment.is_active,
            )
        )
        await self._session.flush()
        for school_id in school_ids:
            self._session.add(
                EntityStaffScopeSchoolRow(assignment_id=assignment.id, school_id=school_id)
            )
        for branch_id in branch_ids:
            self._session.add(
                EntityStaffScopeBranchRow(assignment_id=assignment.id, branch_id=branch_id)
            )
        await self._session.flush()

    async def list_by_actor(self, actor_id: UUID) -> list[EntityStaffAssignment]:
        stmt = select(EntityStaffAssignmentRow).where(
            EntityStaffAssignmentRow.actor_id == actor_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_assignment(r) for r in rows]

    async def list_by_company(self, company_id: UUID) -> list[EntityStaffAssignment]:
        stmt = select(EntityStaffAssignmentRow).where(
            EntityStaffAssignmentRow.company_id == company_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_assignment(r) for r in rows]

    async def school_scope(self, assignment_id: UUID) -> frozenset[UUID]:
        stmt = select(EntityStaffScopeSchoolRow.school_id).where(
            EntityStaffScopeSchoolRow.assignment_id == assignment_id
        )
        return frozenset((await self._session.execute(stmt)).scalars().all())

    async def branch_scope(self, assignment_id: UUID) -> frozenset[UUID]:
        stmt = select(EntityStaffScopeBranchRow.branch_id).where(
            EntityStaffScopeBranchRow.assignment_id == assignment_id
        )
        return frozenset((await self._session.execute(stmt)).scalars().all())

    async def set_active(
        self, assignment_id: UUID, is_active: bool
    ) -> EntityStaffAssignment | None:
        stmt = (
            update(EntityStaffAssignmentRow)
            .where(EntityStaffAssignmentRow.id == assignment_id)
            .values(is_active=is_active)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(assignment_id)


def _row_to_assignment(row: EntityStaffAssignmentRow) -> EntityStaffAssignment:
    return EntityStaffAssignment(
        id=row.id,
        actor_id=row.actor_id,
        company_id=row.company_id,
        admin_level=AdminLevel(row.admin_level),
        is_active=row.is_active,
    )
