from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from campus_core.models.actor import Actor, Student


class ActorRepo(Protocol):
    async def get_by_id(self, actor_id: UUID) -> Actor | None: ...
    async def get_by_auth_id(self, auth_id: str) -> Actor | None: ...
    async def get_by_email(self, email: str) -> Actor | None: ...
    async def add(self, actor: Actor) -> None: ...
    async def link_auth_id(self, actor_id: UUID, auth_id: str) -> Actor | None: ...
    async def set_active(self, actor_id: UUID, is_active: bool) -> Actor | None: ...


class StudentRepo(Protocol):
    async def get(self, student_id: UUID) -> Student | None: ...
    async def get_by_actor(self, actor_id: UUID) -> Student | None: ...
    async def add(self, student: Student) -> None: ...
    async def list_by_company(self, company_id: UUID) -> list[Student]: ...


class InMemoryActorRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Actor] = {}

    async def get_by_id(self, actor_id: UUID) -> Actor | None:
        return self._by_id.get(actor_id)

    async def get_by_auth_id(self, auth_id: str) -> Actor | None:
        return next((a for a in self._by_id.values() if a.auth_id == auth_id), None)

    async def get_by_email(self, email: str) -> Actor | None:
        email = email.strip().lower()
        return next((a for a in self._by_id.values() if a.email == email), None)

    async def add(self, actor: Actor) -> None:
        if any(a.email == actor.email for a in self._by_id.values()):
            raise ValueError("email already exists")
        if actor.auth_id is not None and await self.get_by_auth_id(actor.auth_id):
            raise ValueError("auth_id already linked")
        self._by_id[actor.id] = actor

    async def link_auth_id(self, actor_id: UUID, auth_id: str) -> Actor | None:
        actor = self._by_id.get(actor_id)
        if actor is None:
            return None
        updated = replace(actor, auth_id=auth_id)
        self._by_id[actor_id] = updated
        return updated

    async def set_active(self, actor_id: UUID, is_active: bool) -> Actor | None:
        actor = self._by_id.get(actor_id)
        if actor is None:
            return None
        updated = replace(actor, is_active=is_active)
        self._by_id[actor_id] = updated
        return updated


class InMemoryStudentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Student] = {}

    async def get(self, student_id: UUID) -> Student | None:
        return self._by_id.get(student_id)

    async def get_by_actor(self, actor_id: UUID) -> Student | None:
        return next((s for s in self._by_id.values() if s.actor_id == actor_id), None)

    async def add(self, student: Student) -> None:
        if await self.get_by_actor(student.actor_id) is not None:
            raise ValueError("student profile already exists for actor")
        self._by_id[student.id] = student

    async def list_by_company(self, company_id: UUID) -> list[Student]:
        return [s for s in self._by_id.values() if s.company_id == company_id]
