from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from campus_core.models.actor import ActorType


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity resolved for one request.

    Carried through the request via FastAPI's dependency system.

    actor_id / actor_type:
        the EFFECTIVE actor every scope check evaluates.
    real_actor_id:
        the actor who actually authenticated.  Equal to actor_id unless a
        system operator is evaluating the request as someone else; audit
        fields (assigned_by, performed_by) always use this one.
    auth_id:
        external subject from the bearer token.
    """

    actor_id: UUID
    actor_type: ActorType
    real_actor_id: UUID
    auth_id: str

    @property
    def is_impersonating(self) -> bool:
        return self.actor_id != self.real_actor_id

    def is_system_operator(self) -> bool:
        return self.actor_type is ActorType.SYSTEM_OPERATOR
