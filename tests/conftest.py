from __future__ import annotations

import asyncio
import datetime
import sys
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from campus_core.api.deps import MEMORY_STORES
from campus_core.main import app
from campus_core.models.actor import Actor, ActorType, Student
from campus_core.models.license import AcademicOffering, License
from campus_core.models.organization import Branch, Company, School
from campus_core.models.staff import AdminLevel, EntityStaffAssignment
from campus_core.services import token_service
from campus_core.services.cache import cache_service
from campus_core.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import tests.conftest` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

stores = MEMORY_STORES


@pytest.fixture(autouse=True)
def reset_directory_state() -> None:
    """Clear actor, student and audit repos between tests."""
    stores.actors._by_id.clear()  # type: ignore[attr-defined]
    stores.students._by_id.clear()  # type: ignore[attr-defined]
    stores.audit._entries.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_org_state() -> None:
    """Clear the organizational graph and staff assignments between tests."""
    stores.orgs._companies.clear()  # type: ignore[attr-defined]
    stores.orgs._schools.clear()  # type: ignore[attr-defined]
    stores.orgs._branches.clear()  # type: ignore[attr-defined]
    stores.orgs._groups.clear()  # type: ignore[attr-defined]
    stores.staff._store.clear()  # type: ignore[attr-defined]
    stores.staff._schools.clear()  # type: ignore[attr-defined]
    stores.staff._branches.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_license_state() -> None:
    """Clear licenses, offerings, assignments and the action log."""
    stores.licenses._licenses.clear()  # type: ignore[attr-defined]
    stores.licenses._offerings.clear()  # type: ignore[attr-defined]
    stores.licenses._assignments.clear()  # type: ignore[attr-defined]
    stores.licenses._actions.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]
        task_queue._pending.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(sub: str = "test-user", email: str = "") -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=sub, email=email)


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Seed helpers (write straight into the in-memory repos)
# ---------------------------------------------------------------------------


def seed_actor(
    actor_type: ActorType = ActorType.ENTITY_STAFF,
    *,
    email: str | None = None,
    linked: bool = True,
) -> Actor:
    email = email or f"{actor_type.value}-{uuid4().hex[:8]}@example.com"
    actor = Actor.new(
        email=email,
        actor_type=actor_type,
        auth_id=f"idp|{uuid4().hex}" if linked else None,
    )
    asyncio.run(stores.actors.add(actor))
    return actor


def token_for(actor: Actor) -> str:
    assert actor.auth_id is not None
    return mint_token(sub=actor.auth_id, email=actor.email)


def seed_company(name: str = "Acme Learning") -> Company:
    company = Company.new(name=name)
    asyncio.run(stores.orgs.add_company(company))
    return company


def seed_school(company_id: UUID | None, name: str = "North School") -> School:
    school = School(id=uuid4(), company_id=company_id, name=name)
    asyncio.run(stores.orgs.add_school(school))
    return school


def seed_branch(school_id: UUID | None, name: str = "Annex") -> Branch:
    branch = Branch(id=uuid4(), school_id=school_id, name=name)
    asyncio.run(stores.orgs.add_branch(branch))
    return branch


def seed_staff(
    actor: Actor,
    company_id: UUID,
    admin_level: AdminLevel,
    *,
    school_ids: tuple[UUID, ...] = (),
    branch_ids: tuple[UUID, ...] = (),
) -> EntityStaffAssignment:
    assignment = EntityStaffAssignment.new(
        actor_id=actor.id, company_id=company_id, admin_level=admin_level
    )
    asyncio.run(
        stores.staff.add(assignment, school_ids=school_ids, branch_ids=branch_ids)
    )
    return assignment


def seed_student(
    company_id: UUID,
    *,
    school_id: UUID | None = None,
    branch_id: UUID | None = None,
) -> Student:
    actor = seed_actor(ActorType.STUDENT)
    student = Student.new(
        actor_id=actor.id,
        company_id=company_id,
        school_id=school_id,
        branch_id=branch_id,
    )
    asyncio.run(stores.students.add(student))
    return student


def seed_license(
    company_id: UUID,
    *,
    total_quantity: int = 5,
    school_ids: tuple[UUID, ...] = (),
    start_date: datetime.date | None = None,
    end_date: datetime.date | None = None,
) -> License:
    offering = AcademicOffering.new(
        provider_name="Open Provider", program_name="STEM", subject_name="Algebra"
    )
    asyncio.run(stores.licenses.add_offering(offering))
    today = datetime.datetime.now(datetime.UTC).date()
    license = License.new(
        company_id=company_id,
        offering_id=offering.id,
        total_quantity=total_quantity,
        start_date=start_date or today - datetime.timedelta(days=30),
        end_date=end_date or today + datetime.timedelta(days=335),
        school_ids=school_ids,
    )
    asyncio.run(stores.licenses.add(license))
    return license
