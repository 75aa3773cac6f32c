from __future__ import annotations

from typing import Protocol
from uuid import UUID

from campus_core.models.audit import ImpersonationAudit


class AuditRepo(Protocol):
    async def append(self, entry: ImpersonationAudit) -> None: ...
    async def list_by_real_actor(self, actor_id: UUID) -> list[ImpersonationAudit]: ...


class InMemoryAuditRepo:
    """Append-only store; entries are never updated or removed."""

    def __init__(self) -> None:
        self._entries: list[ImpersonationAudit] = []

    async def append(self, entry: ImpersonationAudit) -> None:
        self._entries.append(entry)

    async def list_by_real_actor(self, actor_id: UUID) -> list[ImpersonationAudit]:
        return [e for e in self._entries if e.real_actor_id == actor_id]
