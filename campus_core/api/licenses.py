"""License allocation endpoints.

Allocation calls answer with the envelope

    {"success": bool, "message": str | null, "error": str | null, "data": {...}}

and HTTP 200 even when success is false: CAPACITY_EXCEEDED,
ALREADY_ASSIGNED and NOT_FOUND are normal outcomes an admin UI or a batch
import handles row by row.  A license or student the caller cannot see
is reported as NOT_FOUND, the same as one that does not exist.

Administrative actions (EXPAND, EXTEND, RENEW) are different: invalid
input is a 422, because an action that cannot be recorded must not look
like a soft failure.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from campus_core.api.deps import (
    OperatorDep,
    PrincipalDep,
    ResolverDep,
    Stores,
    StoresDep,
    http_error,
)
from campus_core.core.errors import AllocationError, CampusCoreError
from campus_core.models.license import (
    License,
    LicenseAction,
    LicenseAssignment,
    LicenseActionType,
    LicenseSummary,
)
from campus_core.models.principal import Principal
from campus_core.models.results import AllocationResult
from campus_core.services import license_ledger, org_stats
from campus_core.services.access_policies import (
    assignment_visible,
    can_manage_company,
    license_visible,
    student_visible,
)
from campus_core.services.scope_resolver import ScopeResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["licenses"])


# --- Pydantic schemas ---


class Envelope(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    data: dict[str, Any] = {}


class OfferingIn(BaseModel):
    provider_name: str
    program_name: str
    subject_name: str


class OfferingOut(BaseModel):
    id: str
    provider_name: str
    program_name: str
    subject_name: str


class LicenseIn(BaseModel):
    offering_id: UUID
    total_quantity: int
    start_date: datetime.date
    end_date: datetime.date
    school_ids: list[UUID] = []


class StudentRef(BaseModel):
    student_id: UUID


class BatchIn(BaseModel):
    student_ids: list[UUID]


class ActionIn(BaseModel):
    action_type: LicenseActionType
    change_quantity: int | None = None
    new_end_date: datetime.date | None = None
    notes: str = ""


def _envelope(result: AllocationResult) -> Envelope:
    return Envelope(
        success=result.success,
        message=result.message,
        error=result.error.value if result.error is not None else None,
        data=result.data,
    )


def _license_data(license: License) -> dict[str, Any]:
    return {
        "id": str(license.id),
        "company_id": str(license.company_id),
        "offering_id": str(license.offering_id),
        "total_quantity": license.total_quantity,
        "used_quantity": license.used_quantity,
        "available": license.available,
        "start_date": license.start_date.isoformat(),
        "end_date": license.end_date.isoformat(),
        "status": license.status.value,
        "school_ids": [str(s) for s in license.school_ids],
    }


def _summary_data(summary: LicenseSummary) -> dict[str, Any]:
    data = _license_data(summary.license)
    data.update(
        available=summary.available,
        is_expired=summary.is_expired,
        days_until_expiry=summary.days_until_expiry,
    )
    if summary.offering is not None:
        data.update(
            provider_name=summary.offering.provider_name,
            program_name=summary.offering.program_name,
            subject_name=summary.offering.subject_name,
        )
    return data


def _assignment_data(assignment: LicenseAssignment) -> dict[str, Any]:
    return {
        "id": str(assignment.id),
        "student_id": str(assignment.student_id),
        "is_active": assignment.is_active,
        "assigned_at": assignment.assigned_at,
        "assigned_by": str(assignment.assigned_by) if assignment.assigned_by else None,
        "expires_at": assignment.expires_at.isoformat(),
        "revoked_at": assignment.revoked_at,
    }


def _action_data(action: LicenseAction) -> dict[str, Any]:
    return {
        "id": str(action.id),
        "license_id": str(action.license_id),
        "action_type": action.action_type.value,
        "change_quantity": action.change_quantity,
        "new_end_date": action.new_end_date.isoformat() if action.new_end_date else None,
        "notes": action.notes,
        "performed_by": str(action.performed_by) if action.performed_by else None,
        "created_at": action.created_at,
    }


def _hidden(error_message: str, **data: Any) -> Envelope:
    return _envelope(
        AllocationResult.fail(AllocationError.NOT_FOUND, error_message, **data)
    )


async def _visible_license(
    stores: Stores, resolver: ScopeResolver, principal: Principal, license_id: UUID
) -> License | None:
    license = await stores.licenses.get(license_id)
    if license is None or not await license_visible(
        resolver, principal.actor_id, license
    ):
        return None
    return license


async def _student_visible(
    stores: Stores, resolver: ScopeResolver, principal: Principal, student_id: UUID
) -> bool:
    student = await stores.students.get(student_id)
    return student is not None and await student_visible(
        resolver, principal.actor_id, student
    )


# --- Catalog and license creation (operators) ---


@router.post("/offerings", response_model=OfferingOut, status_code=status.HTTP_201_CREATED)
async def create_offering(
    body: OfferingIn, _operator: OperatorDep, stores: StoresDep
) -> OfferingOut:
    try:
        offering = await license_ledger.create_offering(
            stores.licenses,
            provider_name=body.provider_name,
            program_name=body.program_name,
            subject_name=body.subject_name,
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return OfferingOut(
        id=str(offering.id),
        provider_name=offering.provider_name,
        program_name=offering.program_name,
        subject_name=offering.subject_name,
    )


@router.post(
    "/companies/{company_id}/licenses",
    response_model=Envelope,
    status_code=status.HTTP_201_CREATED,
)
async def create_license(
    company_id: UUID, body: LicenseIn, _operator: OperatorDep, stores: StoresDep
) -> Envelope:
    if await stores.orgs.get_company(company_id) is None:
        raise HTTPException(status_code=404, detail="company not found")
    try:
        school_ids = tuple(dict.fromkeys(body.school_ids))
        for school_id in school_ids:
            school = await stores.orgs.get_school(school_id)
            if school is None or school.company_id != company_id:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"school {school_id} does not belong to company",
                )
        license = await license_ledger.create_license(
            stores.licenses,
            company_id=company_id,
            offering_id=body.offering_id,
            total_quantity=body.total_quantity,
            start_date=body.start_date,
            end_date=body.end_date,
            school_ids=school_ids,
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return Envelope(success=True, message="License created", data=_license_data(license))


# --- Scoped read views ---


@router.get("/companies/{company_id}/licenses", response_model=Envelope)
async def get_available_licenses(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> Envelope:
    scope = await resolver.resolve_scope(principal.actor_id, company_id)
    summaries = await license_ledger.get_available_licenses(
        stores.licenses, company_id, scope
    )
    return Envelope(
        success=True,
        data={
            "company_wide": scope.company_wide,
            "licenses": [_summary_data(s) for s in summaries],
        },
    )


@router.get("/companies/{company_id}/licenses/stats", response_model=Envelope)
async def get_license_usage_stats(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> Envelope:
    scope = await resolver.resolve_scope(principal.actor_id, company_id)
    stats = await license_ledger.get_license_usage_stats(
        stores.licenses, stores.orgs, company_id, scope
    )
    return Envelope(
        success=True,
        data={
            "total_licenses": stats.total_licenses,
            "active_licenses": stats.active_licenses,
            "total_quantity": stats.total_quantity,
            "used_quantity": stats.used_quantity,
            "available_quantity": stats.available_quantity,
            "expired": stats.expired,
            "expiring_soon": stats.expiring_soon,
        },
    )


# --- Allocation ---


@router.post("/licenses/{license_id}/assign", response_model=Envelope)
async def assign_license(
    license_id: UUID,
    body: StudentRef,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> Envelope:
    ids = {"license_id": str(license_id), "student_id": str(body.student_id)}
    license = await _visible_license(stores, resolver, principal, license_id)
    if license is None:
        return _hidden("License not found or inactive", **ids)
    if not await _student_visible(stores, resolver, principal, body.student_id):
        return _hidden("Student not found or inactive", **ids)

    result = await license_ledger.assign_license(
        stores.licenses,
        stores.students,
        license_id,
        body.student_id,
        assigned_by=principal.real_actor_id,
    )
    if result.success:
        await org_stats.request_refresh(license.company_id)
    return _envelope(result)


@router.post("/licenses/{license_id}/revoke", response_model=Envelope)
async def revoke_license(
    license_id: UUID,
    body: StudentRef,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> Envelope:
    ids = {"license_id": str(license_id), "student_id": str(body.student_id)}
    license = await _visible_license(stores, resolver, principal, license_id)
    if license is None:
        return _hidden("License not found", **ids)
    if not await _student_visible(stores, resolver, principal, body.student_id):
        return _hidden("No active assignment for this student on this license", **ids)

    result = await license_ledger.revoke_license(
        stores.licenses, license_id, body.student_id
    )
    if result.success:
        await org_stats.request_refresh(license.company_id)
    return _envelope(result)


@router.post("/licenses/{license_id}/assign-batch", response_model=Envelope)
async def assign_license_batch(
    license_id: UUID,
    body: BatchIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> Envelope:
    """Assign many students; one result per student, in request order."""
    license = await _visible_license(stores, resolver, principal, license_id)
    if license is None:
        return _hidden("License not found or inactive", license_id=str(license_id))

    visible_ids = []
    hidden: dict[UUID, AllocationResult] = {}
    for student_id in body.student_ids:
        if await _student_visible(stores, resolver, principal, student_id):
            visible_ids.append(student_id)
        else:
            hidden[student_id] = AllocationResult.fail(
                AllocationError.NOT_FOUND,
                "Student not found or inactive",
                license_id=str(license_id),
                student_id=str(student_id),
            )

    assigned = iter(
        await license_ledger.assign_licenses_batch(
            stores.licenses,
            stores.students,
            license_id,
            visible_ids,
            assigned_by=principal.real_actor_id,
        )
    )
    results = [
        hidden[sid] if sid in hidden else next(assigned) for sid in body.student_ids
    ]

    succeeded = sum(1 for r in results if r.success)
    if succeeded:
        await org_stats.request_refresh(license.company_id)
    return Envelope(
        success=True,
        message=f"{succeeded} of {len(results)} students assigned",
        data={
            "assigned": succeeded,
            "failed": len(results) - succeeded,
            "results": [_envelope(r).model_dump() for r in results],
        },
    )


@router.get("/licenses/{license_id}/assignments", response_model=Envelope)
async def list_license_assignments(
    license_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> Envelope:
    """Assignment rows (active and revoked) of students the caller can see."""
    if await _visible_license(stores, resolver, principal, license_id) is None:
        return _hidden("License not found", license_id=str(license_id))
    rows = []
    for assignment in await stores.licenses.list_assignments(license_id):
        student = await stores.students.get(assignment.student_id)
        if await assignment_visible(resolver, principal.actor_id, assignment, student):
            rows.append(_assignment_data(assignment))
    return Envelope(success=True, data={"assignments": rows})


# --- Administrative actions ---


@router.post("/licenses/{license_id}/actions", response_model=Envelope)
async def record_license_action(
    license_id: UUID,
    body: ActionIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> Envelope:
    license = await _visible_license(stores, resolver, principal, license_id)
    if license is None:
        raise HTTPException(status_code=404, detail="license not found")
    if not await can_manage_company(resolver, principal.actor_id, license.company_id):
        logger.warning(
            "Access denied: actor=%s cannot change license=%s",
            principal.actor_id,
            license_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )

    try:
        action, updated = await license_ledger.record_license_action(
            stores.licenses,
            license_id,
            body.action_type,
            performed_by=principal.real_actor_id,
            change_quantity=body.change_quantity,
            new_end_date=body.new_end_date,
            notes=body.notes,
        )
    except CampusCoreError as e:
        raise http_error(e) from None

    await org_stats.request_refresh(updated.company_id)
    return Envelope(
        success=True,
        message=f"{action.action_type.value} recorded",
        data={"action": _action_data(action), "license": _license_data(updated)},
    )


@router.get("/licenses/{license_id}/actions", response_model=Envelope)
async def list_license_actions(
    license_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> Envelope:
    if await _visible_license(stores, resolver, principal, license_id) is None:
        raise HTTPException(status_code=404, detail="license not found")
    try:
        actions = await license_ledger.list_license_actions(stores.licenses, license_id)
    except CampusCoreError as e:
        raise http_error(e) from None
    return Envelope(success=True, data={"actions": [_action_data(a) for a in actions]})
