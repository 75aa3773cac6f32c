from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class ActorType(StrEnum):
    STUDENT = "student"
    TEACHER = "teacher"
    ENTITY_STAFF = "entity_staff"
    SYSTEM_OPERATOR = "system_operator"


@dataclass(frozen=True, slots=True)
class Actor:
    """Internal identity record for an authenticated principal.

    ``id`` is the canonical key every scope check uses.  ``auth_id`` is the
    external provider's subject; it stays None until the first sign-in
    links the record by email.
    """

    id: UUID
    email: str
    actor_type: ActorType
    auth_id: str | None = None
    name: str = ""
    is_active: bool = True

    @staticmethod
    def new(
        *,
        email: str,
        actor_type: ActorType,
        auth_id: str | None = None,
        name: str = "",
    ) -> Actor:
        return Actor(
            id=uuid4(),
            email=email.strip().lower(),
            actor_type=actor_type,
            auth_id=auth_id,
            name=name,
            is_active=True,
        )

    @property
    def is_system_operator(self) -> bool:
        return self.actor_type is ActorType.SYSTEM_OPERATOR


@dataclass(frozen=True, slots=True)
class Student:
    """Beneficiary profile placed somewhere in the organizational graph."""

    id: UUID
    actor_id: UUID
    company_id: UUID
    school_id: UUID | None = None
    branch_id: UUID | None = None
    is_active: bool = True

    @staticmethod
    def new(
        *,
        actor_id: UUID,
        company_id: UUID,
        school_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> Student:
        return Student(
            id=uuid4(),
            actor_id=actor_id,
            company_id=company_id,
            school_id=school_id,
            branch_id=branch_id,
        )
