"""PostgreSQL implementations of ActorRepo and StudentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.db.tables import ActorRow, StudentRow
from campus_core.models.actor import Actor, ActorType, Student


class PgActorRepo:
    """Satisfies the ActorRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, actor_id: UUID) -> Actor | None:
        row = await self._session.get(ActorRow, actor_id)
        return _row_to_actor(row) if row is not None else None

    async def get_by_auth_id(self, auth_id: str) -> Actor | None:
        stmt = select(ActorRow).where(ActorRow.auth_id == auth_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_actor(row) if row is not None else None

    async def get_by_email(self, email: str) -> Actor | None:
        stmt = select(ActorRow).where(ActorRow.email == email.strip().lower())
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_actor(row) if row is not None else None

    async def add(self, actor: Actor) -> None:
        self._session.add(
            ActorRow(
                id=actor.id,
                auth_id=actor.auth_id,
                email=actor.email,
                name=actor.name,
                actor_type=actor.actor_type.value,
                is_active=actor.is_active,
            )
        )
        await self._session.flush()

    async def link_auth_id(self, actor_id: UUID, auth_id: str) -> Actor | None:
        stmt = update(ActorRow).where(ActorRow.id == actor_id).values(auth_id=auth_id)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_id(actor_id)

    async def set_active(self, actor_id: UUID, is_active: bool) -> Actor | None:
        stmt = update(ActorRow).where(ActorRow.id == actor_id).values(is_active=is_active)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_id(actor_id)


class PgStudentRepo:
    """Satisfies the StudentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, student_id: UUID) -> Student | None:
        row = await self._session.get(StudentRow, student_id)
        return _row_to_student(row) if row is not None else None

    async def get_by_actor(self, actor_id: UUID) -> Student | None:
        stmt = select(StudentRow).where(StudentRow.actor_id == actor_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_student(row) if row is not None else None

    async def add(self, student: Student) -> None:
        self._session.add(
            StudentRow(
                id=student.id,
                actor_id=student.actor_id,
                company_id=student.company_id,
                school_id=student.school_id,
                branch_id=student.branch_id,
                is_active=student.is_active,
            )
        )
        await self._session.flush()

    async def list_by_company(self, company_id: UUID) -> list[Student]:
        stmt = select(StudentRow).where(StudentRow.company_id == company_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_student(r) for r in rows]


def _row_to_actor(row: ActorRow) -> Actor:
    return Actor(
        id=row.id,
        email=row.email,
        actor_type=ActorType(row.actor_type),
        auth_id=row.auth_id,
        name=row.name or "",
        is_active=row.is_active,
    )


def _row_to_student(row: StudentRow) -> Student:
    return Student(
        id=row.id,
        actor_id=row.actor_id,
        company_id=row.company_id,
        school_id=row.school_id,
        branch_id=row.branch_id,
        is_active=row.is_active,
    )
