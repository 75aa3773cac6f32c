"""X-Impersonate-Actor: an operator evaluating requests as another actor."""

from __future__ import annotations

import asyncio
import dataclasses

import pytest
from fastapi.testclient import TestClient

from campus_core.api import deps
from campus_core.models.actor import ActorType
from campus_core.models.staff import AdminLevel
from tests.conftest import (
    auth,
    seed_actor,
    seed_company,
    seed_license,
    seed_school,
    seed_staff,
    seed_student,
    stores,
    token_for,
)


def _as(token: str, target) -> dict[str, str]:
    return {**auth(token), "X-Impersonate-Actor": str(target)}


@pytest.fixture
def impersonation_disabled(monkeypatch) -> None:
    monkeypatch.setattr(
        deps, "SETTINGS", dataclasses.replace(deps.SETTINGS, impersonation_enabled=False)
    )


def test_operator_is_evaluated_as_target(client: TestClient) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    teacher = seed_actor(ActorType.TEACHER)

    resp = client.get("/v1/identity/me", headers=_as(token_for(operator), teacher.id))

    assert resp.status_code == 200
    data = resp.json()
    assert data["actor"]["id"] == str(teacher.id)
    assert data["real_actor_id"] == str(operator.id)
    assert data["impersonating"] is True


def test_target_scope_applies_not_operator_scope(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    admin = seed_actor()
    seed_staff(admin, company.id, AdminLevel.SCHOOL_ADMIN, school_ids=(north.id,))
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)

    resp = client.get(
        f"/v1/companies/{company.id}/schools", headers=_as(token_for(operator), admin.id)
    )

    assert resp.status_code == 200
    assert [s["id"] for s in resp.json()] == [str(north.id)]
    assert str(south.id) not in resp.text


def test_each_request_is_audited(client: TestClient) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    teacher = seed_actor(ActorType.TEACHER)

    client.get("/v1/identity/me", headers=_as(token_for(operator), teacher.id))

    entries = asyncio.run(stores.audit.list_by_real_actor(operator.id))
    assert len(entries) == 1
    assert entries[0].effective_actor_id == teacher.id
    assert entries[0].method == "GET"
    assert entries[0].path == "/v1/identity/me"

    listed = client.get(
        f"/v1/actors/{operator.id}/impersonation-audit", headers=auth(token_for(operator))
    ).json()
    assert [e["effective_actor_id"] for e in listed] == [str(teacher.id)]


def test_writes_record_the_real_actor(client: TestClient) -> None:
    company = seed_company()
    admin = seed_actor()
    seed_staff(admin, company.id, AdminLevel.ENTITY_ADMIN)
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    license = seed_license(company.id)
    student = seed_student(company.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/assign",
        json={"student_id": str(student.id)},
        headers=_as(token_for(operator), admin.id),
    )

    assert resp.json()["success"] is True
    row = asyncio.run(stores.licenses.get_assignment(license.id, student.id))
    assert row.assigned_by == operator.id


def test_disabled_impersonation_is_refused(
    client: TestClient, impersonation_disabled
) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    teacher = seed_actor(ActorType.TEACHER)

    resp = client.get("/v1/identity/me", headers=_as(token_for(operator), teacher.id))

    assert resp.status_code == 403
    assert asyncio.run(stores.audit.list_by_real_actor(operator.id)) == []


def test_non_operator_cannot_impersonate(client: TestClient) -> None:
    admin = seed_actor()
    teacher = seed_actor(ActorType.TEACHER)

    resp = client.get("/v1/identity/me", headers=_as(token_for(admin), teacher.id))

    assert resp.status_code == 403


def test_operator_cannot_be_impersonated(client: TestClient) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    other = seed_actor(ActorType.SYSTEM_OPERATOR)

    resp = client.get("/v1/identity/me", headers=_as(token_for(operator), other.id))

    assert resp.status_code == 403


def test_malformed_target_is_422(client: TestClient) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)

    resp = client.get("/v1/identity/me", headers=_as(token_for(operator), "nobody"))

    assert resp.status_code == 422


def test_inactive_target_is_404(client: TestClient) -> None:
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    teacher = seed_actor(ActorType.TEACHER)
    asyncio.run(stores.actors.set_active(teacher.id, False))

    resp = client.get("/v1/identity/me", headers=_as(token_for(operator), teacher.id))

    assert resp.status_code == 404
