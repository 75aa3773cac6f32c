"""PostgreSQL implementation of LicenseRepo.

claim_seat / release_seat lock the license row (SELECT ... FOR UPDATE),
write the assignment row, then recompute used_quantity from the active
assignments, all on the request's session.  get_async_session commits or
rolls back the whole unit, so the row and the counter can never diverge.
"""

from __future__ import annotations

import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.core.errors import AllocationError, IntegrityViolation, NotFoundError
from campus_core.db.tables import (
    AcademicOfferingRow,
    LicenseActionRow,
    LicenseAssignmentRow,
    LicenseRow,
)
from campus_core.models.license import (
    AcademicOffering,
    License,
    LicenseAction,
    LicenseActionType,
    LicenseAssignment,
    LicenseStatus,
    apply_license_action,
)
from campus_core.repos.license_repo import SeatChange

ACTIVE_OFFERING_INDEX = "uq_licenses_active_offering"


class PgLicenseRepo:
    """Satisfies the LicenseRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, license_id: UUID) -> License | None:
        row = await self._session.get(LicenseRow, license_id)
        return _row_to_license(row) if row is not None else None

    async def add(self, license: License) -> None:
        if license.used_quantity != 0:
            raise IntegrityViolation("used_quantity is managed by the ledger")
        self._session.add(
            LicenseRow(
                id=license.id,
                company_id=license.company_id,
                offering_id=license.offering_id,
                total_quantity=license.total_quantity,
                used_quantity=0,
                start_date=license.start_date,
                end_date=license.end_date,
                status=license.status.value,
                school_ids=list(license.school_ids),
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as e:
            if ACTIVE_OFFERING_INDEX not in str(e.orig):
                raise
            # A concurrent create for the same offering won the race.
            raise IntegrityViolation(
                "company already holds an active license for this offering"
            ) from e

    async def list_by_company(self, company_id: UUID) -> list[License]:
        stmt = select(LicenseRow).where(LicenseRow.company_id == company_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_license(r) for r in rows]

    async def set_status(
        self, license_id: UUID, status: LicenseStatus
    ) -> License | None:
        stmt = (
            update(LicenseRow)
            .where(LicenseRow.id == license_id)
            .values(status=status.value)
            .returning(LicenseRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_license(row) if row is not None else None

    async def get_offering(self, offering_id: UUID) -> AcademicOffering | None:
        row = await self._session.get(AcademicOfferingRow, offering_id)
        if row is None:
            return None
        return AcademicOffering(
            id=row.id,
            provider_name=row.provider_name,
            program_name=row.program_name,
            subject_name=row.subject_name,
        )

    async def add_offering(self, offering: AcademicOffering) -> None:
        self._session.add(
            AcademicOfferingRow(
                id=offering.id,
                provider_name=offering.provider_name,
                program_name=offering.program_name,
                subject_name=offering.subject_name,
            )
        )
        await self._session.flush()

    async def get_assignment(
        self, license_id: UUID, student_id: UUID
    ) -> LicenseAssignment | None:
        row = await self._get_assignment_row(license_id, student_id)
        return _row_to_assignment(row) if row is not None else None

    async def list_assignments(self, license_id: UUID) -> list[LicenseAssignment]:
        stmt = select(LicenseAssignmentRow).where(
            LicenseAssignmentRow.license_id == license_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_assignment(r) for r in rows]

    async def claim_seat(
        self, license_id: UUID, student_id: UUID, *, assigned_by: UUID | None, now: int
    ) -> SeatChange:
        license_row = await self._lock_license(license_id)
        if license_row is None or license_row.status != LicenseStatus.ACTIVE.value:
            license = _row_to_license(license_row) if license_row is not None else None
            return SeatChange(license, None, AllocationError.NOT_FOUND)

        row = await self._get_assignment_row(license_id, student_id)
        if row is not None and row.is_active:
            return SeatChange(
                _row_to_license(license_row),
                _row_to_assignment(row),
                AllocationError.ALREADY_ASSIGNED,
            )

        if license_row.used_quantity >= license_row.total_quantity:
            return SeatChange(
                _row_to_license(license_row),
                _row_to_assignment(row) if row is not None else None,
                AllocationError.CAPACITY_EXCEEDED,
            )

        reactivated = row is not None
        if row is None:
            assignment = LicenseAssignment.new(
                license_id=license_id,
                student_id=student_id,
                assigned_at=now,
                assigned_by=assigned_by,
                expires_at=license_row.end_date,
            )
            row = LicenseAssignmentRow(
                id=assignment.id,
                license_id=license_id,
                student_id=student_id,
                is_active=True,
                assigned_at=now,
                assigned_by=assigned_by,
                expires_at=license_row.end_date,
                revoked_at=None,
            )
            self._session.add(row)
        else:
            row.is_active = True
            row.assigned_at = now
            row.assigned_by = assigned_by
            row.expires_at = license_row.end_date
            row.revoked_at = None

        license = await self._sync_used_quantity(license_id)
        return SeatChange(license, _row_to_assignment(row), reactivated=reactivated)

    async def release_seat(
        self, license_id: UUID, student_id: UUID, *, now: int
    ) -> SeatChange:
        license_row = await self._lock_license(license_id)
        row = await self._get_assignment_row(license_id, student_id)
        if license_row is None or row is None or not row.is_active:
            return SeatChange(
                _row_to_license(license_row) if license_row is not None else None,
                _row_to_assignment(row) if row is not None else None,
                AllocationError.NOT_FOUND,
            )

        row.is_active = False
        row.revoked_at = now
        license = await self._sync_used_quantity(license_id)
        return SeatChange(license, _row_to_assignment(row))

    async def append_action(
        self, action: LicenseAction, *, today: datetime.date
    ) -> License:
        license_row = await self._lock_license(action.license_id)
        if license_row is None:
            raise NotFoundError(f"license {action.license_id} not found")

        updated = apply_license_action(_row_to_license(license_row), action, today)
        license_row.total_quantity = updated.total_quantity
        license_row.start_date = updated.start_date
        license_row.end_date = updated.end_date

        self._session.add(
            LicenseActionRow(
                id=action.id,
                license_id=action.license_id,
                action_type=action.action_type.value,
                change_quantity=action.change_quantity,
                new_end_date=action.new_end_date,
                notes=action.notes,
                performed_by=action.performed_by,
                created_at=action.created_at,
            )
        )
        await self._session.flush()
        return updated

    async def list_actions(self, license_id: UUID) -> list[LicenseAction]:
        stmt = (
            select(LicenseActionRow)
            .where(LicenseActionRow.license_id == license_id)
            .order_by(LicenseActionRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_action(r) for r in rows]

    # -- helpers ----------------------------------------------------------

    async def _lock_license(self, license_id: UUID) -> LicenseRow | None:
        stmt = select(LicenseRow).where(LicenseRow.id == license_id).with_for_update()
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _get_assignment_row(
        self, license_id: UUID, student_id: UUID
    ) -> LicenseAssignmentRow | None:
        stmt = select(LicenseAssignmentRow).where(
            LicenseAssignmentRow.license_id == license_id,
            LicenseAssignmentRow.student_id == student_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _sync_used_quantity(self, license_id: UUID) -> License:
        await self._session.flush()
        active_count = (
            select(func.count())
            .select_from(LicenseAssignmentRow)
            .where(
                LicenseAssignmentRow.license_id == license_id,
                LicenseAssignmentRow.is_active.is_(True),
            )
            .scalar_subquery()
        )
        stmt = (
            update(LicenseRow)
            .where(LicenseRow.id == license_id)
            .values(
                used_quantity=func.greatest(
                    0, func.least(active_count, LicenseRow.total_quantity)
                )
            )
            .returning(LicenseRow)
            .execution_options(synchronize_session="fetch")
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_license(row)


def _row_to_license(row: LicenseRow) -> License:
    return License(
        id=row.id,
        company_id=row.company_id,
        offering_id=row.offering_id,
        total_quantity=row.total_quantity,
        start_date=row.start_date,
        end_date=row.end_date,
        used_quantity=row.used_quantity,
        status=LicenseStatus(row.status),
        school_ids=tuple(row.school_ids or ()),
    )


def _row_to_assignment(row: LicenseAssignmentRow) -> LicenseAssignment:
    return LicenseAssignment(
        id=row.id,
        license_id=row.license_id,
        student_id=row.student_id,
        assigned_at=row.assigned_at,
        assigned_by=row.assigned_by,
        expires_at=row.expires_at,
        is_active=row.is_active,
        revoked_at=row.revoked_at,
    )


def _row_to_action(row: LicenseActionRow) -> LicenseAction:
    return LicenseAction(
        id=row.id,
        license_id=row.license_id,
        action_type=LicenseActionType(row.action_type),
        performed_by=row.performed_by,
        created_at=row.created_at,
        change_quantity=row.change_quantity,
        new_end_date=row.new_end_date,
        notes=row.notes,
    )
