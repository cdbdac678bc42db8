"""
Integration tests for the agency, client and admin authorization endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.core.auth_dependency import get_db
from app.core.security import create_access_token
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.services.notification_dispatcher import get_notification_dispatcher
from app.services.verification_service import get_registry_client
from tests.conftest import TestSessionLocal


def override_get_db():
    """Override get_db dependency for testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api(db, registry, dispatcher):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry_client] = lambda: registry
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user):
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def request_body(client_company, **fields):
    body = {"client_company_id": client_company.id, "verification_method": "manual_review"}
    body.update(fields)
    return body


def test_requires_authentication(api, client_company):
    response = api.post("/agency/clients", json=request_body(client_company))
    assert response.status_code == 401


def test_request_review_and_post(api, agency_user, admin_user, client_company):
    response = api.post(
        "/agency/clients",
        json=request_body(client_company, job_categories=["engineering"], max_active_jobs=2),
        headers=auth_headers(agency_user),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending_admin_review"
    authorization_id = data["id"]

    duplicate = api.post("/agency/clients", json=request_body(client_company), headers=auth_headers(agency_user))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["error"] == "duplicate_authorization"

    forbidden = api.post(f"/admin/agency-authorizations/{authorization_id}/approve", headers=auth_headers(agency_user))
    assert forbidden.status_code == 403

    approved = api.post(f"/admin/agency-authorizations/{authorization_id}/approve", headers=auth_headers(admin_user))
    assert approved.status_code == 200
    assert approved.json()["status"] == "active"

    active = api.get("/agency/clients/active", headers=auth_headers(agency_user))
    assert [item["id"] for item in active.json()["authorizations"]] == [authorization_id]

    job = api.post(
        "/agency/jobs",
        json={"client_company_id": client_company.id, "title": "Data Engineer", "category": "Engineering"},
        headers=auth_headers(agency_user),
    )
    assert job.status_code == 201
    assert job.json()["posted_by_agency_id"] == agency_user.company_id
    assert job.json()["is_agency_posted"] is True

    wrong_category = api.post(
        "/agency/jobs",
        json={"client_company_id": client_company.id, "title": "Account Executive", "category": "sales"},
        headers=auth_headers(agency_user),
    )
    assert wrong_category.status_code == 403
    assert wrong_category.json()["detail"]["error"] == "category_not_authorized"

    permissions = api.get(f"/agency/jobs/{job.json()['id']}/permissions", headers=auth_headers(agency_user))
    assert permissions.status_code == 200
    assert permissions.json()["permissions"] == {"edit": True, "delete": False, "view_applications": True}


def test_client_confirms_with_token(api, db, registry, agency_user, client_company):
    registry.register()
    response = api.post(
        "/agency/clients",
        json=request_body(client_company, verification_method="automated_gst"),
        headers=auth_headers(agency_user),
    )
    assert response.json()["status"] == "pending_client_confirm"
    authorization_id = response.json()["id"]
    token = db.query(AgencyClientAuthorization).filter(
        AgencyClientAuthorization.id == authorization_id
    ).first().client_verification_token

    summary = api.get(f"/client/authorizations/{authorization_id}")
    assert summary.status_code == 200
    assert summary.json()["agency_name"] == "TalentBridge Staffing"

    stranger = api.post(
        f"/client/authorizations/{authorization_id}/confirm",
        json={"email": "stranger@example.com", "token": token},
    )
    assert stranger.status_code == 403

    confirmed = api.post(
        f"/client/authorizations/{authorization_id}/confirm",
        json={"email": "hr@acme.example", "token": token},
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "active"

    again = api.post(
        f"/client/authorizations/{authorization_id}/decline",
        json={"email": "hr@acme.example", "token": token},
    )
    assert again.status_code == 409


def test_reject_requires_reason(api, agency_user, admin_user, client_company):
    authorization_id = api.post(
        "/agency/clients", json=request_body(client_company), headers=auth_headers(agency_user)
    ).json()["id"]

    missing = api.post(
        f"/admin/agency-authorizations/{authorization_id}/reject", json={}, headers=auth_headers(admin_user)
    )
    assert missing.status_code == 400

    rejected = api.post(
        f"/admin/agency-authorizations/{authorization_id}/reject",
        json={"reason": "no signed letter"},
        headers=auth_headers(admin_user),
    )
    assert rejected.status_code == 200
    assert rejected.json()["rejection_reason"] == "no signed letter"


def test_agency_cannot_see_other_agencies_records(api, agency_user, other_agency_user, client_company):
    authorization_id = api.post(
        "/agency/clients", json=request_body(client_company), headers=auth_headers(agency_user)
    ).json()["id"]
    response = api.get(f"/agency/clients/{authorization_id}", headers=auth_headers(other_agency_user))
    assert response.status_code == 404


def test_admin_listing_and_stats(api, agency_user, admin_user, client_company):
    api.post("/agency/clients", json=request_body(client_company), headers=auth_headers(agency_user))

    listing = api.get("/admin/agency-authorizations?status=pending", headers=auth_headers(admin_user))
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    stats = api.get("/admin/agency-authorizations/stats", headers=auth_headers(admin_user))
    assert stats.json()["by_status"]["pending_admin_review"] == 1

    sweep = api.post("/admin/agency-authorizations/sweep", headers=auth_headers(admin_user))
    assert sweep.status_code == 200

    missing = api.post("/admin/agency-authorizations/999/approve", headers=auth_headers(admin_user))
    assert missing.status_code == 404


def test_revoke_then_edit_is_forbidden(api, agency_user, admin_user, client_company):
    authorization_id = api.post(
        "/agency/clients", json=request_body(client_company), headers=auth_headers(agency_user)
    ).json()["id"]
    api.post(f"/admin/agency-authorizations/{authorization_id}/approve", headers=auth_headers(admin_user))
    job_id = api.post(
        "/agency/jobs",
        json={"client_company_id": client_company.id, "title": "SRE"},
        headers=auth_headers(agency_user),
    ).json()["id"]

    revoked = api.post(
        f"/agency/clients/{authorization_id}/revoke",
        json={"reason": "contract ended"},
        headers=auth_headers(agency_user),
    )
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "revoked"

    edit = api.put(f"/agency/jobs/{job_id}", json={"title": "Senior SRE"}, headers=auth_headers(agency_user))
    assert edit.status_code == 403
    assert edit.json()["detail"]["error"] == "no_active_authorization"


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] in ("healthy", "degraded")
