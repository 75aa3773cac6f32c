"""License ledger storage.

The ledger's one hard rule: an assignment row and the license's
used_quantity change together or not at all.  Every write to an
assignment goes through ``_write_assignment``, which runs the counter
hook (``_sync_used_quantity``) before releasing the ledger lock, so no
caller can observe or race a half-applied change.

The PostgreSQL implementation (pg_license_repo.py) gets the same
guarantee from a row lock on the license plus a single transaction.
"""

from __future__ import annotations

import datetime
import threading
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from campus_core.core.errors import AllocationError, IntegrityViolation, NotFoundError
from campus_core.models.license import (
    AcademicOffering,
    License,
    LicenseAction,
    LicenseAssignment,
    LicenseStatus,
    apply_license_action,
)


@dataclass(frozen=True, slots=True)
class SeatChange:
    """Result of an atomic claim/release on a license."""

    license: License | None
    assignment: LicenseAssignment | None
    error: AllocationError | None = None
    reactivated: bool = False

    def applied(self) -> tuple[License, LicenseAssignment]:
        """License and assignment after a successful claim or release."""
        if self.error is not None or self.license is None or self.assignment is None:
            raise RuntimeError(f"seat change was not applied (error={self.error})")
        return self.license, self.assignment


def clamp_used(active_count: int, total_quantity: int) -> int:
    """Bound a recomputed counter to ``[0, total_quantity]``."""
    return max(0, min(active_count, total_quantity))


class LicenseRepo(Protocol):
    async def get(self, license_id: UUID) -> License | None: ...
    async def add(self, license: License) -> None: ...
    async def list_by_company(self, company_id: UUID) -> list[License]: ...
    async def set_status(
        self, license_id: UUID, status: LicenseStatus
    ) -> License | None: ...
    async def get_offering(self, offering_id: UUID) -> AcademicOffering | None: ...
    async def add_offering(self, offering: AcademicOffering) -> None: ...
    async def get_assignment(
        self, license_id: UUID, student_id: UUID
    ) -> LicenseAssignment | None: ...
    async def list_assignments(self, license_id: UUID) -> list[LicenseAssignment]: ...
    async def claim_seat(
        self, license_id: UUID, student_id: UUID, *, assigned_by: UUID | None, now: int
    ) -> SeatChange: ...
    async def release_seat(
        self, license_id: UUID, student_id: UUID, *, now: int
    ) -> SeatChange: ...
    async def append_action(
        self, action: LicenseAction, *, today: datetime.date
    ) -> License: ...
    async def list_actions(self, license_id: UUID) -> list[LicenseAction]: ...


class InMemoryLicenseRepo:
    def __init__(self) -> None:
        self._licenses: dict[UUID, License] = {}
        self._offerings: dict[UUID, AcademicOffering] = {}
        # keyed by (license_id, student_id): one row per pair, reused on reassignment
        self._assignments: dict[tuple[UUID, UUID], LicenseAssignment] = {}
        self._actions: list[LicenseAction] = []
        # A threading lock rather than asyncio.Lock: nothing awaits while it is
        # held, and TestClient may drive requests from different event loops.
        self._lock = threading.Lock()

    async def get(self, license_id: UUID) -> License | None:
        return self._licenses.get(license_id)

    async def add(self, license: License) -> None:
        if license.used_quantity != 0:
            raise IntegrityViolation("used_quantity is managed by the ledger")
        with self._lock:
            if license.is_active and any(
                lic.is_active
                and lic.company_id == license.company_id
                and lic.offering_id == license.offering_id
                for lic in self._licenses.values()
            ):
                raise IntegrityViolation(
                    "company already holds an active license for this offering"
                )
            self._licenses[license.id] = license

    async def list_by_company(self, company_id: UUID) -> list[License]:
        return [lic for lic in self._licenses.values() if lic.company_id == company_id]

    async def set_status(
        self, license_id: UUID, status: LicenseStatus
    ) -> License | None:
        with self._lock:
            existing = self._licenses.get(license_id)
            if existing is None:
                return None
            updated = replace(existing, status=status)
            self._licenses[license_id] = updated
            return updated

    async def get_offering(self, offering_id: UUID) -> AcademicOffering | None:
        return self._offerings.get(offering_id)

    async def add_offering(self, offering: AcademicOffering) -> None:
        self._offerings[offering.id] = offering

    async def get_assignment(
        self, license_id: UUID, student_id: UUID
    ) -> LicenseAssignment | None:
        return self._assignments.get((license_id, student_id))

    async def list_assignments(self, license_id: UUID) -> list[LicenseAssignment]:
        return [a for a in self._assignments.values() if a.license_id == license_id]

    async def claim_seat(
        self, license_id: UUID, student_id: UUID, *, assigned_by: UUID | None, now: int
    ) -> SeatChange:
        with self._lock:
            license = self._licenses.get(license_id)
            if license is None or not license.is_active:
                return SeatChange(license, None, AllocationError.NOT_FOUND)

            existing = self._assignments.get((license_id, student_id))
            if existing is not None and existing.is_active:
                return SeatChange(license, existing, AllocationError.ALREADY_ASSIGNED)

            if license.used_quantity >= license.total_quantity:
                return SeatChange(license, existing, AllocationError.CAPACITY_EXCEEDED)

            if existing is None:
                assignment = LicenseAssignment.new(
                    license_id=license_id,
                    student_id=student_id,
                    assigned_at=now,
                    assigned_by=assigned_by,
                    expires_at=license.end_date,
                )
            else:
                assignment = replace(
                    existing,
                    is_active=True,
                    assigned_at=now,
                    assigned_by=assigned_by,
                    expires_at=license.end_date,
                    revoked_at=None,
                )
            license = self._write_assignment(assignment)
            return SeatChange(license, assignment, reactivated=existing is not None)

    async def release_seat(
        self, license_id: UUID, student_id: UUID, *, now: int
    ) -> SeatChange:
        with self._lock:
            license = self._licenses.get(license_id)
            existing = self._assignments.get((license_id, student_id))
            if license is None or existing is None or not existing.is_active:
                return SeatChange(license, existing, AllocationError.NOT_FOUND)

            assignment = replace(existing, is_active=False, revoked_at=now)
            license = self._write_assignment(assignment)
            return SeatChange(license, assignment)

    async def append_action(
        self, action: LicenseAction, *, today: datetime.date
    ) -> License:
        with self._lock:
            license = self._licenses.get(action.license_id)
            if license is None:
                raise NotFoundError(f"license {action.license_id} not found")
            updated = apply_license_action(license, action, today)
            self._actions.append(action)
            self._licenses[updated.id] = updated
            return updated

    async def list_actions(self, license_id: UUID) -> list[LicenseAction]:
        actions = [a for a in self._actions if a.license_id == license_id]
        return sorted(actions, key=lambda a: a.created_at, reverse=True)

    # -- caller must hold self._lock ------------------------------------

    def _write_assignment(self, assignment: LicenseAssignment) -> License:
        self._assignments[(assignment.license_id, assignment.student_id)] = assignment
        return self._sync_used_quantity(assignment.license_id)

    def _sync_used_quantity(self, license_id: UUID) -> License:
        license = self._licenses[license_id]
        active = sum(
            1
            for a in self._assignments.values()
            if a.license_id == license_id and a.is_active
        )
        updated = replace(
            license, used_quantity=clamp_used(active, license.total_quantity)
        )
        self._licenses[license_id] = updated
        return updated
