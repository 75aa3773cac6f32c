"""PostgreSQL implementation of AuditRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.db.tables import ImpersonationAuditRow
from campus_core.models.audit import ImpersonationAudit


class PgAuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: ImpersonationAudit) -> None:
        self._session.add(
            ImpersonationAuditRow(
                id=entry.id,
                real_actor_id=entry.real_actor_id,
                effective_actor_id=entry.effective_actor_id,
                method=entry.method,
                path=entry.path,
                occurred_at=entry.occurred_at,
            )
        )
        await self._session.flush()

    async def list_by_real_actor(self, actor_id: UUID) -> list[ImpersonationAudit]:
        stmt = (
            select(ImpersonationAuditRow)
            .where(ImpersonationAuditRow.real_actor_id == actor_id)
            .order_by(ImpersonationAuditRow.occurred_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            ImpersonationAudit(
                id=r.id,
                real_actor_id=r.real_actor_id,
                effective_actor_id=r.effective_actor_id,
                method=r.method,
                path=r.path,
                occurred_at=r.occurred_at,
            )
            for r in rows
        ]
