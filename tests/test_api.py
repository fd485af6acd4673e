"""
Tests de la API HTTP con TestClient sobre el store en memoria.
"""
import pytest
from fastapi.testclient import TestClient

from casetrack.api.deps import get_recorder
from casetrack.core.database import get_db
from casetrack.main import app


@pytest.fixture
def client(session_factory, recorder, seeded):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_recorder] = lambda: recorder

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _as(actor):
    return {"X-Actor-ID": actor.id}


# =========================================================
# SERVICIO
# =========================================================

def test_root_and_health(client):
    assert client.get("/").json()["name"]

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


def test_missing_actor_header_is_unauthorized(client):
    response = client.get("/cases")

    assert response.status_code == 401
    assert response.json()["detail"]["kind"] == "session_invalid"


def test_unknown_actor_is_unauthorized(client):
    response = client.get("/cases", headers={"X-Actor-ID": "ghost"})

    assert response.status_code == 401


# =========================================================
# CASOS
# =========================================================

def test_case_lifecycle_and_visibility(client, seeded, case_payload):
    created = client.post("/cases", json=case_payload("C-100"), headers=_as(seeded.alice))
    assert created.status_code == 201
    case_id = created.json()["id"]
    assert created.json()["user_id"] == seeded.alice.id

    alice_list = client.get("/cases", headers=_as(seeded.alice)).json()
    assert [item["case_number"] for item in alice_list["items"]] == ["C-100"]

    assert client.get("/cases", headers=_as(seeded.bob)).json()["total_count"] == 0
    assert client.get(f"/cases/{case_id}", headers=_as(seeded.bob)).status_code == 403
    assert client.get(f"/cases/{case_id}", headers=_as(seeded.admin)).status_code == 200

    patched = client.patch(f"/cases/{case_id}", json={"description": "nueva"}, headers=_as(seeded.alice))
    assert patched.status_code == 200
    assert patched.json()["description"] == "nueva"

    assert client.delete(f"/cases/{case_id}", headers=_as(seeded.alice)).status_code == 204
    assert client.get(f"/cases/{case_id}", headers=_as(seeded.alice)).status_code == 404


def test_duplicate_case_number_conflict(client, seeded, case_payload):
    client.post("/cases", json=case_payload("C-1"), headers=_as(seeded.alice))

    response = client.post("/cases", json=case_payload("C-1"), headers=_as(seeded.bob))

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["kind"] == "duplicate_key"
    assert detail["field"] == "case_number"


def test_invalid_reference_is_unprocessable(client, seeded, case_payload):
    payload = case_payload("C-1", origin_id="00000000-0000-0000-0000-000000000000")

    response = client.post("/cases", json=payload, headers=_as(seeded.alice))

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "origin_id"


# =========================================================
# REFERENCIAS Y AUDITORÍA
# =========================================================

def test_reference_write_requires_permission(client, seeded):
    listed = client.get("/applications", headers=_as(seeded.alice))
    assert listed.status_code == 200

    denied = client.post("/applications", json={"name": "CRM"}, headers=_as(seeded.alice))
    assert denied.status_code == 403

    created = client.post("/applications", json={"name": "CRM"}, headers=_as(seeded.admin))
    assert created.status_code == 201


def test_audit_endpoints_require_permission(client, seeded, case_payload):
    """Test: alice no puede leer auditoría; admin sí, y exporta CSV."""
    client.post("/cases", json=case_payload("C-1"), headers=_as(seeded.alice))

    assert client.get("/audit", headers=_as(seeded.alice)).status_code == 403

    page = client.get("/audit", params={"table_name": "cases"}, headers=_as(seeded.admin))
    assert page.status_code == 200
    body = page.json()
    assert body["total_count"] == 1
    assert body["degraded"] is False
    assert body["rows"][0]["operation"] == "INSERT"

    export = client.get("/audit/export", headers=_as(seeded.admin))
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "audit_logs_" in export.headers["content-disposition"]


def test_audit_stats(client, seeded, case_payload):
    client.post("/cases", json=case_payload("C-1"), headers=_as(seeded.alice))

    response = client.get("/audit/stats", headers=_as(seeded.admin))

    assert response.status_code == 200
    assert response.json()["total_actions"] == 1
