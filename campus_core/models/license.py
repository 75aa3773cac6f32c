from __future__ import annotations

import datetime
from dataclasses import dataclass, replace
from enum import StrEnum
from uuid import UUID, uuid4


class LicenseStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class LicenseActionType(StrEnum):
    EXPAND = "EXPAND"  # add capacity
    EXTEND = "EXTEND"  # push the end date out
    RENEW = "RENEW"  # new validity period, optionally more capacity


@dataclass(frozen=True, slots=True)
class AcademicOffering:
    """Catalog dimension a license is sold for."""

    id: UUID
    provider_name: str
    program_name: str
    subject_name: str

    @staticmethod
    def new(
        *, provider_name: str, program_name: str, subject_name: str
    ) -> AcademicOffering:
        return AcademicOffering(
            id=uuid4(),
            provider_name=provider_name,
            program_name=program_name,
            subject_name=subject_name,
        )


@dataclass(frozen=True, slots=True)
class License:
    """Purchased capacity block for a (company, offering) pair.

    used_quantity is owned by the ledger repository: it is recomputed from
    active assignments every time an assignment row is written and is never
    accepted from callers.
    """

    id: UUID
    company_id: UUID
    offering_id: UUID
    total_quantity: int
    start_date: datetime.date
    end_date: datetime.date
    used_quantity: int = 0
    status: LicenseStatus = LicenseStatus.ACTIVE
    school_ids: tuple[UUID, ...] = ()  # empty: company-wide

    @staticmethod
    def new(
        *,
        company_id: UUID,
        offering_id: UUID,
        total_quantity: int,
        start_date: datetime.date,
        end_date: datetime.date,
        school_ids: tuple[UUID, ...] = (),
    ) -> License:
        return License(
            id=uuid4(),
            company_id=company_id,
            offering_id=offering_id,
            total_quantity=total_quantity,
            start_date=start_date,
            end_date=end_date,
            school_ids=school_ids,
        )

    @property
    def available(self) -> int:
        return self.total_quantity - self.used_quantity

    @property
    def is_active(self) -> bool:
        return self.status is LicenseStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class LicenseAssignment:
    id: UUID
    license_id: UUID
    student_id: UUID
    assigned_at: int
    assigned_by: UUID | None
    expires_at: datetime.date
    is_active: bool = True
    revoked_at: int | None = None

    @staticmethod
    def new(
        *,
        license_id: UUID,
        student_id: UUID,
        assigned_at: int,
        assigned_by: UUID | None,
        expires_at: datetime.date,
    ) -> LicenseAssignment:
        return LicenseAssignment(
            id=uuid4(),
            license_id=license_id,
            student_id=student_id,
            assigned_at=assigned_at,
            assigned_by=assigned_by,
            expires_at=expires_at,
        )


@dataclass(frozen=True, slots=True)
class LicenseAction:
    """Append-only audit row for an administrative capacity change."""

    id: UUID
    license_id: UUID
    action_type: LicenseActionType
    performed_by: UUID | None
    created_at: int
    change_quantity: int | None = None
    new_end_date: datetime.date | None = None
    notes: str = ""

    @staticmethod
    def new(
        *,
        license_id: UUID,
        action_type: LicenseActionType,
        performed_by: UUID | None,
        created_at: int,
        change_quantity: int | None = None,
        new_end_date: datetime.date | None = None,
        notes: str = "",
    ) -> LicenseAction:
        return LicenseAction(
            id=uuid4(),
            license_id=license_id,
            action_type=action_type,
            performed_by=performed_by,
            created_at=created_at,
            change_quantity=change_quantity,
            new_end_date=new_end_date,
            notes=notes,
        )


@dataclass(frozen=True, slots=True)
class LicenseSummary:
    """Read-only projection row returned by get_available_licenses."""

    license: License
    offering: AcademicOffering | None
    available: int
    is_expired: bool
    days_until_expiry: int


def apply_license_action(
    license: License, action: LicenseAction, today: datetime.date
) -> License:
    """Return the license as it looks after ``action``.

    used_quantity is carried over untouched: actions change capacity and
    validity only.
    """
    if action.action_type is LicenseActionType.EXPAND:
        return replace(
            license, total_quantity=license.total_quantity + (action.change_quantity or 0)
        )
    if action.action_type is LicenseActionType.EXTEND:
        return replace(license, end_date=action.new_end_date)
    # RENEW opens a new validity period starting no earlier than today.
    return replace(
        license,
        total_quantity=license.total_quantity + (action.change_quantity or 0),
        start_date=max(license.start_date, today),
        end_date=action.new_end_date,
    )


@dataclass(frozen=True, slots=True)
class LicenseUsageStats:
    """Aggregate usage over the licenses visible to one caller."""

    total_licenses: int
    active_licenses: int
    total_quantity: int
    used_quantity: int
    available_quantity: int
    expired: int
    expiring_soon: int
