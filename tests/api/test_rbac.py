"""Table-driven access tests.

Each row describes: role, endpoint, method, expected HTTP status.  The
graph is rebuilt for every row:

    company
      north (school)  <- school_admin
        annex (branch) <- branch_admin
      south (school)

A denied read of a single node is a 404, a denied write is a 403, and
anonymous callers are always 401.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from campus_core.models.actor import ActorType
from campus_core.models.staff import AdminLevel
from tests.conftest import (
    auth,
    seed_actor,
    seed_branch,
    seed_company,
    seed_school,
    seed_staff,
    token_for,
)

ROLES = ("sysop", "entity_admin", "school_admin", "branch_admin", "teacher", "anon")


def _build() -> tuple[dict, dict[str, str | None]]:
    company = seed_company()
    north = seed_school(company.id, "North")
    south = seed_school(company.id, "South")
    annex = seed_branch(north.id, "Annex")
    nodes = {"company": company.id, "north": north.id, "south": south.id, "annex": annex.id}

    entity_admin = seed_actor()
    seed_staff(entity_admin, company.id, AdminLevel.ENTITY_ADMIN)
    school_admin = seed_actor()
    seed_staff(school_admin, company.id, AdminLevel.SCHOOL_ADMIN, school_ids=(north.id,))
    branch_admin = seed_actor()
    seed_staff(branch_admin, company.id, AdminLevel.BRANCH_ADMIN, branch_ids=(annex.id,))

    tokens: dict[str, str | None] = {
        "sysop": token_for(seed_actor(ActorType.SYSTEM_OPERATOR)),
        "entity_admin": token_for(entity_admin),
        "school_admin": token_for(school_admin),
        "branch_admin": token_for(branch_admin),
        "teacher": token_for(seed_actor(ActorType.TEACHER)),
        "anon": None,
    }
    return nodes, tokens


def _expect(allowed: set[str], ok: int, denied: int) -> list[tuple[str, int]]:
    return [
        (role, 401 if role == "anon" else ok if role in allowed else denied)
        for role in ROLES
    ]


# (method, path template, json body, {role: status})
CASES = [
    ("GET", "/v1/companies/{company}", None,
     _expect({"sysop", "entity_admin", "school_admin", "branch_admin"}, 200, 404)),
    ("GET", "/v1/companies/{company}/stats", None,
     _expect({"sysop", "entity_admin", "school_admin", "branch_admin"}, 200, 404)),
    ("POST", "/v1/companies/{company}/stats/refresh", None,
     _expect({"sysop", "entity_admin"}, 200, 403)),
    ("POST", "/v1/companies", {"name": "New Co"},
     _expect({"sysop"}, 201, 403)),
    ("POST", "/v1/companies/{company}/schools", {"name": "East"},
     _expect({"sysop", "entity_admin"}, 201, 403)),
    ("POST", "/v1/schools/{north}/branches", {"name": "Wing"},
     _expect({"sysop", "entity_admin", "school_admin"}, 201, 403)),
    ("POST", "/v1/schools/{south}/branches", {"name": "Wing"},
     _expect({"sysop", "entity_admin"}, 201, 403)),
    ("POST", "/v1/offerings",
     {"provider_name": "P", "program_name": "Q", "subject_name": "R"},
     _expect({"sysop"}, 201, 403)),
    ("GET", "/v1/identity/me", None,
     _expect(set(ROLES), 200, 200)),
]


@pytest.mark.parametrize(
    ("method", "path", "body", "role", "expected"),
    [
        pytest.param(method, path, body, role, expected, id=f"{method} {path} as {role}")
        for method, path, body, table in CASES
        for role, expected in table
    ],
)
def test_access_matrix(
    client: TestClient,
    method: str,
    path: str,
    body: dict | None,
    role: str,
    expected: int,
) -> None:
    nodes, tokens = _build()

    resp = client.request(method, path.format(**nodes), json=body, headers=auth(tokens[role]))

    assert resp.status_code == expected, resp.text


@pytest.mark.parametrize(
    ("role", "visible"),
    [
        ("sysop", {"North", "South"}),
        ("entity_admin", {"North", "South"}),
        ("school_admin", {"North"}),
        ("branch_admin", set()),
        ("teacher", set()),
    ],
)
def test_school_listing_by_role(client: TestClient, role: str, visible: set[str]) -> None:
    nodes, tokens = _build()

    resp = client.get(f"/v1/companies/{nodes['company']}/schools", headers=auth(tokens[role]))

    assert resp.status_code == 200
    assert {s["name"] for s in resp.json()} == visible
