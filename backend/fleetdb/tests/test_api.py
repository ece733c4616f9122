from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetdb.database import Base, get_db, get_read_db
from fleetdb.main import app
from fleetdb.security import create_access_token


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def _override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_read_db] = _override_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


def _onboard_carrier(client) -> dict:
    master = _auth("master-1")
    assert client.post(
        "/parties/persons", json={"first_name": "Mara", "last_name": "Master"}, headers=master
    ).status_code == 201
    provisioned = client.post("/organizations/master", json={}, headers=master)
    assert provisioned.status_code == 200
    assert [r["role_type"] for r in provisioned.json()["roles"]] == ["MASTER"]

    carrier = client.post("/organizations", json={"name": "Acme Freight"}, headers=master)
    assert carrier.status_code == 201
    assert carrier.json()["master_organization_id"] == provisioned.json()["organization"]["id"]

    staff = client.post(
        f"/organizations/{carrier.json()['id']}/staff",
        json={
            "user_id": "approver-1",
            "first_name": "Ann",
            "last_name": "Approver",
            "position": "Safety Manager",
            "can_sign_cafs": True,
            "can_approve_cafs": True,
        },
        headers=master,
    )
    assert staff.status_code == 201
    return {"organization_id": carrier.json()["id"], "staff_id": staff.json()["id"]}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_identity_are_rejected(client):
    response = client.get("/corrective-action-forms")

    assert response.status_code == 401
    assert response.json() == {"error": "Could not validate credentials"}


def test_master_provisioning_is_idempotent(client):
    _onboard_carrier(client)

    again = client.post("/organizations/master", json={"name": "Ignored"}, headers=_auth("master-1"))

    assert again.status_code == 200
    assert again.json()["organization"]["name"] == "Mara Master Master Organization"


def test_inspection_to_caf_flow(client):
    carrier = _onboard_carrier(client)
    approver = _auth("approver-1")

    incident = client.post(
        "/incidents",
        json={
            "incident_type": "ROADSIDE_INSPECTION",
            "organization_id": carrier["organization_id"],
            "incident_date": "2025-03-01",
            "inspection_level": 1,
            "violations": [
                {
                    "violation_code": "393.75(a)",
                    "description": "Flat tire",
                    "severity": "OUT_OF_SERVICE",
                    "out_of_service": True,
                },
                {"violation_code": "390.11", "description": "Observance of regulations"},
            ],
        },
        headers=approver,
    )
    assert incident.status_code == 201
    incident_id = incident.json()["id"]

    generated = client.post(f"/incidents/{incident_id}/generate-cafs", headers=approver)
    assert generated.status_code == 200
    body = generated.json()
    assert body["cafs_created"] == 2
    assert body["message"] == "Generated 2 CAFs for roadside inspection"

    caf_id = body["caf_ids"][0]
    caf = client.get(f"/corrective-action-forms/{caf_id}", headers=approver).json()
    assert caf["priority"] == "CRITICAL"
    assert caf["assigned_staff"]["display_name"] == "Ann Approver"

    skipped = client.put(
        f"/corrective-action-forms/{caf_id}", json={"status": "COMPLETED"}, headers=approver
    )
    assert skipped.status_code == 400
    assert skipped.json()["error"] == "Invalid status transition from ASSIGNED to COMPLETED"
    assert skipped.json()["code"] == "invalid_transition"

    for target in ("IN_PROGRESS", "COMPLETED"):
        moved = client.put(f"/corrective-action-forms/{caf_id}", json={"status": target}, headers=approver)
        assert moved.status_code == 200
        assert moved.json()["status"] == target

    signed = client.post(
        f"/corrective-action-forms/{caf_id}/sign",
        json={"signature_type": "COMPLETION", "staff_id": carrier["staff_id"], "digital_signature": "Ann"},
        headers={**approver, "X-Forwarded-For": "203.0.113.9"},
    )
    assert signed.status_code == 201
    assert signed.json()["signature"]["ip_address"] == "203.0.113.9"
    assert signed.json()["message"] == "Completion signed; awaiting approval"

    bad_export = client.get(f"/corrective-action-forms/{caf_id}/export?format=pdf", headers=approver)
    assert bad_export.status_code == 400

    completion = client.get(f"/incidents/{incident_id}/completion", headers=approver).json()
    assert completion["status"] == "PENDING"
    assert completion["total_cafs"] == 2
    assert completion["completed_cafs"] == 0

    permissions = client.get("/user/caf-permissions", headers=approver).json()
    assert permissions["user_type"] == "organization"

    events = client.get("/audit-events", params={"entity_id": caf_id}, headers=approver).json()
    assert {"generate", "transition", "sign"} <= {e["action"] for e in events}


def test_outsider_cannot_see_incident(client):
    carrier = _onboard_carrier(client)
    incident = client.post(
        "/incidents",
        json={
            "incident_type": "ACCIDENT",
            "organization_id": carrier["organization_id"],
            "incident_date": "2025-03-01",
        },
        headers=_auth("approver-1"),
    )
    assert incident.status_code == 201

    client.post("/parties/persons", json={"first_name": "Out", "last_name": "Sider"}, headers=_auth("outsider"))
    response = client.get(f"/incidents/{incident.json()['id']}", headers=_auth("outsider"))

    assert response.status_code == 403


def test_invalid_payloads_use_error_envelope(client):
    carrier = _onboard_carrier(client)
    master = _auth("master-1")

    missing = client.post(
        "/corrective-action-forms",
        json={"organization_id": carrier["organization_id"]},
        headers=master,
    )
    assert missing.status_code == 400
    assert missing.json()["error"] == "Validation error"
    assert {tuple(e["loc"]) for e in missing.json()["detail"]} >= {
        ("body", "responsibility_type"),
        ("body", "violation_codes"),
    }

    bogus = client.post(
        "/corrective-action-forms/unknown/sign",
        json={"signature_type": "BOGUS", "staff_id": carrier["staff_id"], "digital_signature": "Ann"},
        headers=master,
    )
    assert bogus.status_code == 400
    assert bogus.json()["error"] == "Validation error"
    assert bogus.json()["detail"][0]["loc"][:2] == ["body", "signature_type"]

    incident = client.post(
        "/incidents",
        json={"incident_type": "ACCIDENT", "organization_id": carrier["organization_id"]},
        headers=master,
    )
    assert incident.status_code == 400
    assert "error" in incident.json()
