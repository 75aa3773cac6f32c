"""License allocation endpoints: the {success, message|error, data} envelope.

Expected allocation failures come back as HTTP 200 with success=false so
batch importers and admin UIs can handle them row by row.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

from fastapi.testclient import TestClient

from campus_core.models.actor import ActorType
from campus_core.models.staff import AdminLevel
from campus_core.services import org_stats
from campus_core.services.task_queue import task_queue
from tests.conftest import (
    auth,
    seed_actor,
    seed_branch,
    seed_company,
    seed_license,
    seed_school,
    seed_staff,
    seed_student,
    stores,
    token_for,
)


def _school_admin(company_id, school_id) -> str:
    admin = seed_actor()
    seed_staff(admin, company_id, AdminLevel.SCHOOL_ADMIN, school_ids=(school_id,))
    return token_for(admin)


def _entity_admin(company_id) -> str:
    admin = seed_actor()
    seed_staff(admin, company_id, AdminLevel.ENTITY_ADMIN)
    return token_for(admin)


def _assign(client: TestClient, token: str, license_id, student_id):
    return client.post(
        f"/v1/licenses/{license_id}/assign",
        json={"student_id": str(student_id)},
        headers=auth(token),
    )


# ---- assign / revoke ----


def test_assign_returns_success_envelope(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id, total_quantity=2)
    student = seed_student(company.id)
    token = _entity_admin(company.id)

    resp = _assign(client, token, license.id, student.id)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "License assigned"
    assert body["error"] is None
    assert body["data"]["used_quantity"] == 1
    assert body["data"]["total_quantity"] == 2


def test_capacity_exceeded_is_200_with_error_code(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id, total_quantity=1)
    first, second = seed_student(company.id), seed_student(company.id)
    token = _entity_admin(company.id)
    _assign(client, token, license.id, first.id)

    resp = _assign(client, token, license.id, second.id)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "CAPACITY_EXCEEDED"
    assert body["data"]["student_id"] == str(second.id)


def test_assign_records_real_actor_as_assigner(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id)
    student = seed_student(company.id)
    admin = seed_actor()
    seed_staff(admin, company.id, AdminLevel.ENTITY_ADMIN)

    _assign(client, token_for(admin), license.id, student.id)

    row = asyncio.run(stores.licenses.get_assignment(license.id, student.id))
    assert row.assigned_by == admin.id


def test_assign_enqueues_stats_refresh(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id)
    student = seed_student(company.id)

    _assign(client, _entity_admin(company.id), license.id, student.id)

    task = asyncio.run(task_queue.dequeue(org_stats.ORG_STATS_QUEUE))
    assert task.payload == {"company_id": str(company.id)}


def test_revoke_and_reassign(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id)
    student = seed_student(company.id)
    token = _entity_admin(company.id)
    _assign(client, token, license.id, student.id)

    revoked = client.post(
        f"/v1/licenses/{license.id}/revoke",
        json={"student_id": str(student.id)},
        headers=auth(token),
    ).json()
    again = _assign(client, token, license.id, student.id).json()

    assert revoked["success"] is True
    assert revoked["data"]["used_quantity"] == 0
    assert again["message"] == "License reassigned"
    assert again["data"]["reactivated"] is True


def test_revoke_without_assignment_is_not_found_envelope(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id)
    student = seed_student(company.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/revoke",
        json={"student_id": str(student.id)},
        headers=auth(_entity_admin(company.id)),
    )

    assert resp.status_code == 200
    assert resp.json()["error"] == "NOT_FOUND"


# ---- scope on allocation ----


def test_license_outside_scope_reads_as_not_found(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    license = seed_license(company.id, school_ids=(south.id,))
    student = seed_student(company.id, school_id=south.id)

    resp = _assign(client, _school_admin(company.id, north.id), license.id, student.id)

    assert resp.status_code == 200
    assert resp.json()["error"] == "NOT_FOUND"
    assert asyncio.run(stores.licenses.get(license.id)).used_quantity == 0


def test_student_outside_scope_reads_as_not_found(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    license = seed_license(company.id)
    south_student = seed_student(company.id, school_id=south.id)

    resp = _assign(client, _school_admin(company.id, north.id), license.id, south_student.id)

    assert resp.json()["error"] == "NOT_FOUND"


def test_foreign_company_admin_cannot_assign(client: TestClient) -> None:
    company = seed_company()
    other = seed_company("Other")
    license = seed_license(company.id)
    student = seed_student(company.id)

    resp = _assign(client, _entity_admin(other.id), license.id, student.id)

    assert resp.json()["error"] == "NOT_FOUND"


# ---- batch ----


def test_batch_reports_each_student_in_order(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    license = seed_license(company.id, total_quantity=1)
    a = seed_student(company.id, school_id=north.id)
    b = seed_student(company.id, school_id=north.id)
    hidden = seed_student(company.id, school_id=south.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/assign-batch",
        json={"student_ids": [str(a.id), str(hidden.id), str(b.id)]},
        headers=auth(_school_admin(company.id, north.id)),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["assigned"] == 1
    assert body["data"]["failed"] == 2
    assert [r["error"] for r in body["data"]["results"]] == [
        None,
        "NOT_FOUND",
        "CAPACITY_EXCEEDED",
    ]


# ---- read views ----


def test_list_licenses_is_scoped(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    wide = seed_license(company.id)
    north_license = seed_license(company.id, school_ids=(north.id,))
    seed_license(company.id, school_ids=(south.id,))

    resp = client.get(
        f"/v1/companies/{company.id}/licenses",
        headers=auth(_school_admin(company.id, north.id)),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["company_wide"] is False
    assert {lic["id"] for lic in body["data"]["licenses"]} == {
        str(wide.id),
        str(north_license.id),
    }
    assert body["data"]["licenses"][0]["provider_name"] == "Open Provider"


def test_branch_admin_sees_parent_school_licenses(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    annex = seed_branch(north.id)
    north_license = seed_license(company.id, school_ids=(north.id,))
    admin = seed_actor()
    seed_staff(admin, company.id, AdminLevel.BRANCH_ADMIN, branch_ids=(annex.id,))

    body = client.get(
        f"/v1/companies/{company.id}/licenses", headers=auth(token_for(admin))
    ).json()

    assert [lic["id"] for lic in body["data"]["licenses"]] == [str(north_license.id)]


def test_outsider_sees_no_licenses(client: TestClient) -> None:
    company = seed_company()
    seed_license(company.id)
    teacher = seed_actor(ActorType.TEACHER)

    body = client.get(
        f"/v1/companies/{company.id}/licenses", headers=auth(token_for(teacher))
    ).json()

    assert body["data"]["licenses"] == []


def test_usage_stats(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id, total_quantity=4)
    seed_license(company.id, total_quantity=6)
    token = _entity_admin(company.id)
    _assign(client, token, license.id, seed_student(company.id).id)

    body = client.get(
        f"/v1/companies/{company.id}/licenses/stats", headers=auth(token)
    ).json()

    assert body["data"]["total_licenses"] == 2
    assert body["data"]["total_quantity"] == 10
    assert body["data"]["used_quantity"] == 1
    assert body["data"]["available_quantity"] == 9


def test_assignment_listing_hides_invisible_students(client: TestClient) -> None:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    license = seed_license(company.id)
    mine = seed_student(company.id, school_id=north.id)
    theirs = seed_student(company.id, school_id=south.id)
    operator = seed_actor(ActorType.SYSTEM_OPERATOR)
    for student in (mine, theirs):
        _assign(client, token_for(operator), license.id, student.id)

    body = client.get(
        f"/v1/licenses/{license.id}/assignments",
        headers=auth(_school_admin(company.id, north.id)),
    ).json()

    assert [a["student_id"] for a in body["data"]["assignments"]] == [str(mine.id)]


# ---- creation and administrative actions ----


def test_operator_creates_offering_and_license(client: TestClient) -> None:
    company = seed_company()
    school = seed_school(company.id)
    token = token_for(seed_actor(ActorType.SYSTEM_OPERATOR))

    offering = client.post(
        "/v1/offerings",
        json={"provider_name": "P", "program_name": "Q", "subject_name": "R"},
        headers=auth(token),
    )
    assert offering.status_code == 201

    resp = client.post(
        f"/v1/companies/{company.id}/licenses",
        json={
            "offering_id": offering.json()["id"],
            "total_quantity": 25,
            "start_date": "2026-09-01",
            "end_date": "2027-08-31",
            "school_ids": [str(school.id)],
        },
        headers=auth(token),
    )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["used_quantity"] == 0
    assert data["school_ids"] == [str(school.id)]


def test_license_creation_validates_input(client: TestClient) -> None:
    company = seed_company()
    other_school = seed_school(seed_company("Other").id)
    token = token_for(seed_actor(ActorType.SYSTEM_OPERATOR))
    offering_id = client.post(
        "/v1/offerings",
        json={"provider_name": "P", "program_name": "Q", "subject_name": "R"},
        headers=auth(token),
    ).json()["id"]
    base = {"offering_id": offering_id, "start_date": "2026-09-01", "end_date": "2027-08-31"}

    zero = client.post(
        f"/v1/companies/{company.id}/licenses",
        json={**base, "total_quantity": 0},
        headers=auth(token),
    )
    foreign = client.post(
        f"/v1/companies/{company.id}/licenses",
        json={**base, "total_quantity": 5, "school_ids": [str(other_school.id)]},
        headers=auth(token),
    )

    assert zero.status_code == 422
    assert foreign.status_code == 422


def test_second_active_license_for_offering_is_422(client: TestClient) -> None:
    company = seed_company()
    token = token_for(seed_actor(ActorType.SYSTEM_OPERATOR))
    offering_id = client.post(
        "/v1/offerings",
        json={"provider_name": "P", "program_name": "Q", "subject_name": "R"},
        headers=auth(token),
    ).json()["id"]
    body = {
        "offering_id": offering_id,
        "total_quantity": 10,
        "start_date": "2026-09-01",
        "end_date": "2027-08-31",
    }

    first = client.post(f"/v1/companies/{company.id}/licenses", json=body, headers=auth(token))
    second = client.post(f"/v1/companies/{company.id}/licenses", json=body, headers=auth(token))

    assert first.status_code == 201
    assert second.status_code == 422
    assert "EXPAND" in second.json()["detail"]


def test_expand_action_updates_capacity(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id, total_quantity=2)
    admin = seed_actor()
    seed_staff(admin, company.id, AdminLevel.ENTITY_ADMIN)

    resp = client.post(
        f"/v1/licenses/{license.id}/actions",
        json={"action_type": "EXPAND", "change_quantity": 3, "notes": "spring intake"},
        headers=auth(token_for(admin)),
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["license"]["total_quantity"] == 5
    assert data["action"]["performed_by"] == str(admin.id)

    history = client.get(
        f"/v1/licenses/{license.id}/actions", headers=auth(token_for(admin))
    ).json()
    assert [a["action_type"] for a in history["data"]["actions"]] == ["EXPAND"]


def test_invalid_action_is_422(client: TestClient) -> None:
    company = seed_company()
    license = seed_license(company.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/actions",
        json={"action_type": "EXTEND"},
        headers=auth(_entity_admin(company.id)),
    )

    assert resp.status_code == 422


def test_school_admin_cannot_change_license(client: TestClient) -> None:
    company = seed_company()
    school = seed_school(company.id)
    license = seed_license(company.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/actions",
        json={"action_type": "EXPAND", "change_quantity": 1},
        headers=auth(_school_admin(company.id, school.id)),
    )

    assert resp.status_code == 403


def test_action_on_invisible_license_is_404(client: TestClient) -> None:
    company = seed_company()
    other = seed_company("Other")
    license = seed_license(company.id)

    resp = client.post(
        f"/v1/licenses/{license.id}/actions",
        json={"action_type": "EXPAND", "change_quantity": 1},
        headers=auth(_entity_admin(other.id)),
    )
    missing = client.get(
        f"/v1/licenses/{uuid4()}/actions", headers=auth(_entity_admin(other.id))
    )

    assert resp.status_code == 404
    assert missing.status_code == 404
