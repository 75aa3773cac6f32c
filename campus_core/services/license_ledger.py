"""License capacity ledger operations.

Allocation outcomes (assign / revoke) come back as AllocationResult so a
batch caller can keep going after one student fails; they are logged at
INFO whatever the outcome.  Administrative actions (EXPAND, EXTEND, RENEW)
and license creation raise on bad input instead: an audit row that
silently fails to land is worse than a rejected request.

used_quantity is never written here.  The repository recomputes it from
the active assignments inside the same atomic unit as every assignment
write (see repos/license_repo.py).
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from uuid import UUID

from campus_core.core.config import SETTINGS
from campus_core.core.errors import AllocationError, IntegrityViolation, NotFoundError
from campus_core.core.metrics import LICENSE_ACTIONS, LICENSE_ALLOCATIONS
from campus_core.models.actor import Student
from campus_core.models.license import (
    AcademicOffering,
    License,
    LicenseAction,
    LicenseActionType,
    LicenseSummary,
    LicenseUsageStats,
)
from campus_core.models.organization import NodeStatus
from campus_core.models.results import AllocationResult
from campus_core.models.staff import ActorScope
from campus_core.repos.actor_repo import StudentRepo
from campus_core.repos.license_repo import LicenseRepo
from campus_core.repos.org_repo import OrgRepo
from campus_core.services.access_policies import license_in_scope

logger = logging.getLogger(__name__)

_FAILURE_MESSAGES = {
    AllocationError.NOT_FOUND: "License not found or inactive",
    AllocationError.ALREADY_ASSIGNED: "Student already holds this license",
    AllocationError.CAPACITY_EXCEEDED: "No remaining capacity on this license",
}


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def _today() -> datetime.date:
    return datetime.datetime.now(datetime.UTC).date()


def _rejected(
    operation: str,
    error: AllocationError,
    message: str,
    license_id: UUID,
    student_id: UUID,
) -> AllocationResult:
    LICENSE_ALLOCATIONS.labels(operation=operation, outcome=error.value).inc()
    logger.info(
        "License %s rejected  license=%s student=%s error=%s",
        operation,
        license_id,
        student_id,
        error.value,
    )
    return AllocationResult.fail(
        error, message, license_id=str(license_id), student_id=str(student_id)
    )


def _student_fits_license(student: Student, license: License) -> bool:
    if student.company_id != license.company_id:
        return False
    if not license.school_ids:
        return True
    return student.school_id is not None and student.school_id in license.school_ids


# ---------------------------------------------------------------------------
# Catalog and license creation (system operators)
# ---------------------------------------------------------------------------


async def create_offering(
    licenses: LicenseRepo,
    *,
    provider_name: str,
    program_name: str,
    subject_name: str,
) -> AcademicOffering:
    names = (provider_name.strip(), program_name.strip(), subject_name.strip())
    if not all(names):
        raise IntegrityViolation("offering names must be non-empty")
    offering = AcademicOffering.new(
        provider_name=names[0], program_name=names[1], subject_name=names[2]
    )
    await licenses.add_offering(offering)
    logger.info("Created offering id=%s", offering.id)
    return offering


async def create_license(
    licenses: LicenseRepo,
    *,
    company_id: UUID,
    offering_id: UUID,
    total_quantity: int,
    start_date: datetime.date,
    end_date: datetime.date,
    school_ids: Iterable[UUID] = (),
) -> License:
    if total_quantity <= 0:
        raise IntegrityViolation("total_quantity must be positive")
    if end_date <= start_date:
        raise IntegrityViolation("end_date must be after start_date")
    if await licenses.get_offering(offering_id) is None:
        raise NotFoundError(f"offering {offering_id} not found")
    for existing in await licenses.list_by_company(company_id):
        if existing.offering_id == offering_id and existing.is_active:
            raise IntegrityViolation(
                f"company already holds active license {existing.id} for this "
                "offering; use EXPAND, EXTEND or RENEW"
            )

    license = License.new(
        company_id=company_id,
        offering_id=offering_id,
        total_quantity=total_quantity,
        start_date=start_date,
        end_date=end_date,
        school_ids=tuple(dict.fromkeys(school_ids)),
    )
    await licenses.add(license)
    logger.info(
        "Created license id=%s company=%s total=%d",
        license.id,
        company_id,
        total_quantity,
    )
    return license


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


async def assign_license(
    licenses: LicenseRepo,
    students: StudentRepo,
    license_id: UUID,
    student_id: UUID,
    assigned_by: UUID | None,
) -> AllocationResult:
    """Give ``student_id`` a seat on ``license_id``.

    Reuses the student's previous (revoked) assignment row when there is
    one; a pair never gets a second row.
    """
    student = await students.get(student_id)
    if student is None or not student.is_active:
        return _rejected(
            "assign",
            AllocationError.NOT_FOUND,
            "Student not found or inactive",
            license_id,
            student_id,
        )

    license = await licenses.get(license_id)
    if license is not None and not _student_fits_license(student, license):
        return _rejected(
            "assign",
            AllocationError.NOT_FOUND,
            "License does not cover this student",
            license_id,
            student_id,
        )

    change = await licenses.claim_seat(
        license_id, student_id, assigned_by=assigned_by, now=_now()
    )
    if change.error is not None:
        return _rejected(
            "assign",
            change.error,
            _FAILURE_MESSAGES[change.error],
            license_id,
            student_id,
        )

    updated, assignment = change.applied()
    LICENSE_ALLOCATIONS.labels(operation="assign", outcome="ok").inc()
    logger.info(
        "License assigned  license=%s student=%s by=%s used=%d/%d reactivated=%s",
        license_id,
        student_id,
        assigned_by,
        updated.used_quantity,
        updated.total_quantity,
        change.reactivated,
    )
    return AllocationResult.ok(
        "License reassigned" if change.reactivated else "License assigned",
        license_id=str(license_id),
        student_id=str(student_id),
        assignment_id=str(assignment.id),
        used_quantity=updated.used_quantity,
        total_quantity=updated.total_quantity,
        expires_at=assignment.expires_at.isoformat(),
        reactivated=change.reactivated,
    )


async def revoke_license(
    licenses: LicenseRepo, license_id: UUID, student_id: UUID
) -> AllocationResult:
    change = await licenses.release_seat(license_id, student_id, now=_now())
    if change.error is not None:
        return _rejected(
            "revoke",
            change.error,
            "No active assignment for this student on this license",
            license_id,
            student_id,
        )

    updated, assignment = change.applied()
    LICENSE_ALLOCATIONS.labels(operation="revoke", outcome="ok").inc()
    logger.info(
        "License revoked  license=%s student=%s used=%d/%d",
        license_id,
        student_id,
        updated.used_quantity,
        updated.total_quantity,
    )
    return AllocationResult.ok(
        "License revoked",
        license_id=str(license_id),
        student_id=str(student_id),
        assignment_id=str(assignment.id),
        used_quantity=updated.used_quantity,
        total_quantity=updated.total_quantity,
    )


async def assign_licenses_batch(
    licenses: LicenseRepo,
    students: StudentRepo,
    license_id: UUID,
    student_ids: Iterable[UUID],
    assigned_by: UUID | None,
) -> list[AllocationResult]:
    """One result per student, in input order; failures do not stop the batch."""
    results = []
    for student_id in student_ids:
        results.append(
            await assign_license(licenses, students, license_id, student_id, assigned_by)
        )
    succeeded = sum(1 for r in results if r.success)
    logger.info(
        "Batch assignment finished  license=%s ok=%d failed=%d",
        license_id,
        succeeded,
        len(results) - succeeded,
    )
    return results


# ---------------------------------------------------------------------------
# Administrative actions
# ---------------------------------------------------------------------------


def _validate_action(
    license: License,
    action_type: LicenseActionType,
    change_quantity: int | None,
    new_end_date: datetime.date | None,
    today: datetime.date,
) -> None:
    if change_quantity is not None and change_quantity <= 0:
        raise IntegrityViolation("change_quantity must be positive")

    if action_type is LicenseActionType.EXPAND:
        if change_quantity is None:
            raise IntegrityViolation("EXPAND requires change_quantity")
        if new_end_date is not None:
            raise IntegrityViolation("EXPAND does not change the end date")
        return

    if new_end_date is None:
        raise IntegrityViolation(f"{action_type.value} requires new_end_date")

    if action_type is LicenseActionType.EXTEND:
        if change_quantity is not None:
            raise IntegrityViolation("EXTEND does not change capacity")
        if new_end_date <= license.start_date:
            raise IntegrityViolation("new_end_date must be after the start date")
        return

    # RENEW starts the new period today when the old start is in the past.
    if new_end_date <= max(license.start_date, today):
        raise IntegrityViolation("new_end_date must be after the renewed start date")


async def record_license_action(
    licenses: LicenseRepo,
    license_id: UUID,
    action_type: LicenseActionType,
    *,
    performed_by: UUID | None,
    change_quantity: int | None = None,
    new_end_date: datetime.date | None = None,
    notes: str = "",
    today: datetime.date | None = None,
) -> tuple[LicenseAction, License]:
    """Append an action to the log and apply it to the license.

    Returns the stored action and the license as it looks afterwards.
    """
    today = today or _today()
    license = await licenses.get(license_id)
    if license is None:
        raise NotFoundError(f"license {license_id} not found")

    _validate_action(license, action_type, change_quantity, new_end_date, today)

    action = LicenseAction.new(
        license_id=license_id,
        action_type=action_type,
        performed_by=performed_by,
        created_at=_now(),
        change_quantity=change_quantity,
        new_end_date=new_end_date,
        notes=notes.strip(),
    )
    updated = await licenses.append_action(action, today=today)
    LICENSE_ACTIONS.labels(action_type=action_type.value).inc()
    logger.info(
        "License action %s  license=%s by=%s total=%d end_date=%s",
        action_type.value,
        license_id,
        performed_by,
        updated.total_quantity,
        updated.end_date.isoformat(),
    )
    return action, updated


async def list_license_actions(
    licenses: LicenseRepo, license_id: UUID
) -> list[LicenseAction]:
    if await licenses.get(license_id) is None:
        raise NotFoundError(f"license {license_id} not found")
    return await licenses.list_actions(license_id)


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------


async def live_licenses(
    licenses: LicenseRepo, orgs: OrgRepo, company_id: UUID
) -> list[License]:
    """Active licenses that still hang off the active part of the graph.

    An inactive company contributes nothing.  A school-scoped license whose
    schools are all inactive drops out; company-wide licenses stay.
    """
    company = await orgs.get_company(company_id)
    if company is None or company.status is not NodeStatus.ACTIVE:
        return []
    active_schools = {
        s.id for s in await orgs.list_schools(company_id) if s.status is NodeStatus.ACTIVE
    }
    return [
        lic
        for lic in await licenses.list_by_company(company_id)
        if lic.is_active
        and (not lic.school_ids or any(s in active_schools for s in lic.school_ids))
    ]


async def get_available_licenses(
    licenses: LicenseRepo,
    company_id: UUID,
    scope: ActorScope,
    *,
    today: datetime.date | None = None,
) -> list[LicenseSummary]:
    """Active licenses of the company the scope reaches, soonest expiry first."""
    today = today or _today()
    summaries = []
    for license in await licenses.list_by_company(company_id):
        if not license.is_active or not license_in_scope(license, scope):
            continue
        summaries.append(
            LicenseSummary(
                license=license,
                offering=await licenses.get_offering(license.offering_id),
                available=license.available,
                is_expired=license.end_date < today,
                days_until_expiry=(license.end_date - today).days,
            )
        )
    summaries.sort(key=lambda s: (s.license.end_date, str(s.license.id)))
    return summaries


async def get_license_usage_stats(
    licenses: LicenseRepo,
    orgs: OrgRepo,
    company_id: UUID,
    scope: ActorScope,
    *,
    today: datetime.date | None = None,
    expiring_soon_days: int | None = None,
) -> LicenseUsageStats:
    today = today or _today()
    window = (
        expiring_soon_days
        if expiring_soon_days is not None
        else SETTINGS.expiring_soon_days
    )

    visible = [
        lic
        for lic in await licenses.list_by_company(company_id)
        if license_in_scope(lic, scope)
    ]
    live = {lic.id for lic in await live_licenses(licenses, orgs, company_id)}
    active = [lic for lic in visible if lic.id in live]
    expired = [lic for lic in active if lic.end_date < today]
    expiring = [
        lic for lic in active if 0 <= (lic.end_date - today).days <= window
    ]
    total = sum(lic.total_quantity for lic in active)
    used = sum(lic.used_quantity for lic in active)
    return LicenseUsageStats(
        total_licenses=len(visible),
        active_licenses=len(active),
        total_quantity=total,
        used_quantity=used,
        available_quantity=total - used,
        expired=len(expired),
        expiring_soon=len(expiring),
    )
