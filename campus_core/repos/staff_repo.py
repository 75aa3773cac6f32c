from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from campus_core.models.staff import EntityStaffAssignment


class StaffRepo(Protocol):
    async def get(self, assignment_id: UUID) -> EntityStaffAssignment | None: ...
    async def add(
        self,
        assignment: EntityStaffAssignment,
        school_ids: frozenset[UUID] = frozenset(),
        branch_ids: frozenset[UUID] = frozenset(),
    ) -> None: ...
    async def list_by_actor(self, actor_id: UUID) -> list[EntityStaffAssignment]: ...
    async def list_by_company(self, company_id: UUID) -> list[EntityStaffAssignment]: ...
    async def school_scope(self, assignment_id: UUID) -> frozenset[UUID]: ...
    async def branch_scope(self, assignment_id: UUID) -> frozenset[UUID]: ...
    async def set_active(
        self, assignment_id: UUID, is_active: bool
    ) -> EntityStaffAssignment | None: ...


class InMemoryStaffRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, EntityStaffAssignment] = {}
        self._schools: dict[UUID, frozenset[UUID]] = {}
        self._branches: dict[UUID, frozenset[UUID]] = {}

    async def get(self, assignment_id: UUID) -> EntityStaffAssignment | None:
        return self._store.get(assignment_id)

    async def add(
        self,
        assignment: EntityStaffAssignment,
        school_ids: frozenset[UUID] = frozenset(),
        branch_ids: frozenset[UUID] = frozenset(),
    ) -> None:
        if assignment.id in self._store:
            raise ValueError("assignment already exists")
        self._store[assignment.id] = assignment
        self._schools[assignment.id] = frozenset(school_ids)
        self._branches[assignment.id] = frozenset(branch_ids)

    async def list_by_actor(self, actor_id: UUID) -> list[EntityStaffAssignment]:
        return [a for a in self._store.values() if a.actor_id == actor_id]

    async def list_by_company(self, company_id: UUID) -> list[EntityStaffAssignment]:
        return [a for a in self._store.values() if a.company_id == company_id]

    async def school_scope(self, assignment_id: UUID) -> frozenset[UUID]:
        return self._schools.get(assignment_id, frozenset())

    async def branch_scope(self, assignment_id: UUID) -> frozenset[UUID]:
        return self._branches.get(assignment_id, frozenset())

    async def set_active(
        self, assignment_id: UUID, is_active: bool
    ) -> EntityStaffAssignment | None:
        existing = self._store.get(assignment_id)
        if existing is None:
            return None
        updated = replace(existing, is_active=is_active)
        self._store[assignment_id] = updated
        return updated
