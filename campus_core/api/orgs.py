"""Organizational graph endpoints: companies, schools, branches, academic
groups and students.

Reads pass every candidate row through its access predicate, so a row the
caller cannot see is simply absent.  Direct lookups of an invisible node
return 404 rather than 403, so a denial does not reveal that the node
exists.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from campus_core.api.deps import (
    OperatorDep,
    PrincipalDep,
    ResolverDep,
    StoresDep,
    http_error,
)
from campus_core.core.errors import CampusCoreError
from campus_core.models.actor import Student
from campus_core.models.organization import (
    AcademicGroup,
    AcademicGroupKind,
    Branch,
    Company,
    School,
)
from campus_core.services import org_service
from campus_core.services.access_policies import (
    academic_group_visible,
    branch_visible,
    can_manage_company,
    company_visible,
    filter_visible,
    school_visible,
    student_visible,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["organization"])


# --- Pydantic schemas ---


class NameIn(BaseModel):
    name: str


class CompanyOut(BaseModel):
    id: str
    name: str
    status: str


class SchoolOut(BaseModel):
    id: str
    company_id: str | None
    name: str
    status: str


class BranchOut(BaseModel):
    id: str
    school_id: str | None
    name: str
    status: str


class AcademicGroupIn(BaseModel):
    kind: AcademicGroupKind
    name: str
    school_ids: list[UUID] = []


class AcademicGroupOut(BaseModel):
    id: str
    company_id: str
    kind: str
    name: str
    school_ids: list[str]


class StudentIn(BaseModel):
    actor_id: UUID
    school_id: UUID | None = None
    branch_id: UUID | None = None


class StudentOut(BaseModel):
    id: str
    actor_id: str
    company_id: str
    school_id: str | None
    branch_id: str | None
    is_active: bool


def _company_out(c: Company) -> CompanyOut:
    return CompanyOut(id=str(c.id), name=c.name, status=c.status.value)


def _school_out(s: School) -> SchoolOut:
    return SchoolOut(
        id=str(s.id),
        company_id=str(s.company_id) if s.company_id else None,
        name=s.name,
        status=s.status.value,
    )


def _branch_out(b: Branch) -> BranchOut:
    return BranchOut(
        id=str(b.id),
        school_id=str(b.school_id) if b.school_id else None,
        name=b.name,
        status=b.status.value,
    )


def _group_out(g: AcademicGroup) -> AcademicGroupOut:
    return AcademicGroupOut(
        id=str(g.id),
        company_id=str(g.company_id),
        kind=g.kind.value,
        name=g.name,
        school_ids=[str(s) for s in g.school_ids],
    )


def _student_out(s: Student) -> StudentOut:
    return StudentOut(
        id=str(s.id),
        actor_id=str(s.actor_id),
        company_id=str(s.company_id),
        school_id=str(s.school_id) if s.school_id else None,
        branch_id=str(s.branch_id) if s.branch_id else None,
        is_active=s.is_active,
    )


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found")


def _forbidden(principal_id: UUID, action: str, target: UUID) -> HTTPException:
    logger.warning("Access denied: actor=%s %s target=%s", principal_id, action, target)
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
    )


# --- Companies ---


@router.post("/companies", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(body: NameIn, _operator: OperatorDep, stores: StoresDep) -> CompanyOut:
    try:
        company = await org_service.create_company(stores.orgs, name=body.name)
    except CampusCoreError as e:
        raise http_error(e) from None
    return _company_out(company)


@router.get("/companies", response_model=list[CompanyOut])
async def list_companies(
    principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[CompanyOut]:
    companies = await filter_visible(
        resolver, principal.actor_id, await stores.orgs.list_companies(), company_visible
    )
    return [_company_out(c) for c in companies]


@router.get("/companies/{company_id}", response_model=CompanyOut)
async def get_company(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> CompanyOut:
    company = await stores.orgs.get_company(company_id)
    if company is None or not await company_visible(resolver, principal.actor_id, company):
        raise _not_found("company")
    return _company_out(company)


# --- Schools ---


@router.post(
    "/companies/{company_id}/schools",
    response_model=SchoolOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_school(
    company_id: UUID,
    body: NameIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> SchoolOut:
    if not await can_manage_company(resolver, principal.actor_id, company_id):
        raise _forbidden(principal.actor_id, "create school in company", company_id)
    try:
        school = await org_service.create_school(
            stores.orgs, company_id=company_id, name=body.name
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _school_out(school)


@router.get("/companies/{company_id}/schools", response_model=list[SchoolOut])
async def list_schools(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[SchoolOut]:
    schools = await filter_visible(
        resolver,
        principal.actor_id,
        await stores.orgs.list_schools(company_id),
        school_visible,
    )
    return [_school_out(s) for s in schools]


# --- Branches ---


@router.post(
    "/schools/{school_id}/branches",
    response_model=BranchOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_branch(
    school_id: UUID,
    body: NameIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> BranchOut:
    if not await resolver.can_access_school(principal.actor_id, school_id):
        raise _forbidden(principal.actor_id, "create branch in school", school_id)
    try:
        branch = await org_service.create_branch(
            stores.orgs, school_id=school_id, name=body.name
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _branch_out(branch)


@router.get("/schools/{school_id}/branches", response_model=list[BranchOut])
async def list_branches(
    school_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[BranchOut]:
    branches = await filter_visible(
        resolver,
        principal.actor_id,
        await stores.orgs.list_branches(school_id),
        branch_visible,
    )
    return [_branch_out(b) for b in branches]


# --- Academic groups ---


@router.post(
    "/companies/{company_id}/academic-groups",
    response_model=AcademicGroupOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_academic_group(
    company_id: UUID,
    body: AcademicGroupIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> AcademicGroupOut:
    if not await can_manage_company(resolver, principal.actor_id, company_id):
        raise _forbidden(principal.actor_id, "create academic group in company", company_id)
    try:
        group = await org_service.create_academic_group(
            stores.orgs,
            company_id=company_id,
            kind=body.kind,
            name=body.name,
            school_ids=body.school_ids,
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _group_out(group)


@router.get(
    "/companies/{company_id}/academic-groups", response_model=list[AcademicGroupOut]
)
async def list_academic_groups(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[AcademicGroupOut]:
    groups = await filter_visible(
        resolver,
        principal.actor_id,
        await stores.orgs.list_academic_groups(company_id),
        academic_group_visible,
    )
    return [_group_out(g) for g in groups]


# --- Students ---


@router.post(
    "/companies/{company_id}/students",
    response_model=StudentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_student(
    company_id: UUID,
    body: StudentIn,
    principal: PrincipalDep,
    stores: StoresDep,
    resolver: ResolverDep,
) -> StudentOut:
    if body.branch_id is not None:
        allowed = await resolver.can_access_branch(principal.actor_id, body.branch_id)
    elif body.school_id is not None:
        allowed = await resolver.can_access_school(principal.actor_id, body.school_id)
    else:
        allowed = await can_manage_company(resolver, principal.actor_id, company_id)
    if not allowed:
        raise _forbidden(principal.actor_id, "create student in company", company_id)

    try:
        student = await org_service.create_student(
            stores.orgs,
            stores.actors,
            stores.students,
            actor_id=body.actor_id,
            company_id=company_id,
            school_id=body.school_id,
            branch_id=body.branch_id,
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _student_out(student)


@router.get("/companies/{company_id}/students", response_model=list[StudentOut])
async def list_students(
    company_id: UUID, principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep
) -> list[StudentOut]:
    students = await filter_visible(
        resolver,
        principal.actor_id,
        await stores.students.list_by_company(company_id),
        student_visible,
    )
    return [_student_out(s) for s in students]
