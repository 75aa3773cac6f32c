from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class OrgStats:
    """Snapshot of one company's organization counts.

    Inactive schools and branches, and everything under them, are left
    out of every count.
    """

    company_id: UUID
    company_active: bool
    schools: int
    branches: int
    students: int
    staff: int
    licenses: int
    license_seats_total: int
    license_seats_used: int
    generated_at: int
