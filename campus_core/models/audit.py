from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class ImpersonationAudit:
    """One request evaluated as another actor through the test channel."""

    id: UUID
    real_actor_id: UUID
    effective_actor_id: UUID
    method: str
    path: str
    occurred_at: int

    @staticmethod
    def new(
        *,
        real_actor_id: UUID,
        effective_actor_id: UUID,
        method: str,
        path: str,
        occurred_at: int,
    ) -> ImpersonationAudit:
        return ImpersonationAudit(
            id=uuid4(),
            real_actor_id=real_actor_id,
            effective_actor_id=effective_actor_id,
            method=method,
            path=path,
            occurred_at=occurred_at,
        )
