"""Organizational graph writes.

Parents are checked on every insert so the tree stays strict:
School -> exactly one Company, Branch -> exactly one School.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from campus_core.core.errors import IntegrityViolation, NotFoundError
from campus_core.models.actor import Student
from campus_core.models.organization import (
    AcademicGroup,
    AcademicGroupKind,
    Branch,
    Company,
    School,
)
from campus_core.repos.actor_repo import ActorRepo, StudentRepo
from campus_core.repos.org_repo import OrgRepo

logger = logging.getLogger(__name__)


def _require_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise IntegrityViolation("name must be non-empty")
    return name


async def create_company(orgs: OrgRepo, *, name: str) -> Company:
    company = Company.new(name=_require_name(name))
    await orgs.add_company(company)
    logger.info("Created company id=%s", company.id)
    return company


async def create_school(orgs: OrgRepo, *, company_id: UUID, name: str) -> School:
    if await orgs.get_company(company_id) is None:
        raise NotFoundError(f"company {company_id} not found")
    school = School.new(company_id=company_id, name=_require_name(name))
    await orgs.add_school(school)
    logger.info("Created school id=%s company=%s", school.id, company_id)
    return school


async def create_branch(orgs: OrgRepo, *, school_id: UUID, name: str) -> Branch:
    if await orgs.get_school(school_id) is None:
        raise NotFoundError(f"school {school_id} not found")
    branch = Branch.new(school_id=school_id, name=_require_name(name))
    await orgs.add_branch(branch)
    logger.info("Created branch id=%s school=%s", branch.id, school_id)
    return branch


async def schools_in_company(
    orgs: OrgRepo, company_id: UUID, school_ids: Iterable[UUID]
) -> tuple[UUID, ...]:
    """Validate that every school belongs to ``company_id``; keeps input order."""
    unique = tuple(dict.fromkeys(school_ids))
    for school_id in unique:
        school = await orgs.get_school(school_id)
        if school is None or school.company_id != company_id:
            raise IntegrityViolation(
                f"school {school_id} does not belong to company {company_id}"
            )
    return unique


async def create_academic_group(
    orgs: OrgRepo,
    *,
    company_id: UUID,
    kind: AcademicGroupKind,
    name: str,
    school_ids: Iterable[UUID] = (),
) -> AcademicGroup:
    if await orgs.get_company(company_id) is None:
        raise NotFoundError(f"company {company_id} not found")
    group = AcademicGroup.new(
        company_id=company_id,
        kind=kind,
        name=_require_name(name),
        school_ids=await schools_in_company(orgs, company_id, school_ids),
    )
    await orgs.add_academic_group(group)
    logger.info("Created academic group id=%s kind=%s", group.id, kind.value)
    return group


async def create_student(
    orgs: OrgRepo,
    actors: ActorRepo,
    students: StudentRepo,
    *,
    actor_id: UUID,
    company_id: UUID,
    school_id: UUID | None = None,
    branch_id: UUID | None = None,
) -> Student:
    """Place an actor in the graph as a student.

    A branch implies its school; passing both requires them to agree.
    """
    actor = await actors.get_by_id(actor_id)
    if actor is None:
        raise NotFoundError(f"actor {actor_id} not found")
    if await orgs.get_company(company_id) is None:
        raise NotFoundError(f"company {company_id} not found")

    if branch_id is not None:
        branch = await orgs.get_branch(branch_id)
        if branch is None:
            raise NotFoundError(f"branch {branch_id} not found")
        if school_id is not None and branch.school_id != school_id:
            raise IntegrityViolation("branch does not belong to the given school")
        school_id = branch.school_id

    if school_id is not None:
        await schools_in_company(orgs, company_id, (school_id,))

    student = Student.new(
        actor_id=actor_id,
        company_id=company_id,
        school_id=school_id,
        branch_id=branch_id,
    )
    try:
        await students.add(student)
    except ValueError as e:
        raise IntegrityViolation(str(e)) from None
    logger.info("Created student id=%s actor=%s company=%s", student.id, actor_id, company_id)
    return student
