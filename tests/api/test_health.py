from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Tests run without PostgreSQL or Redis configured
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_without_database_is_ok(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_needs_no_token(client: TestClient) -> None:
    resp = client.get("/health", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 200
