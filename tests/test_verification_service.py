"""
Tests for verification methods and the HTTP GST registry client.
"""
import httpx
import pytest

from app.core.errors import ErrorCode
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.company import Company
from app.services.verification_service import (
    HttpGstRegistryClient,
    REASON_MANUAL_REVIEW_REQUIRED,
    REASON_NEEDS_MANUAL_REVIEW,
    REASON_REGISTRY_MATCH,
    RegistryUnavailableError,
    VerificationService,
    names_match,
    RegistryRecord,
)
from tests.conftest import CLIENT_GSTIN, StubRegistry


def make_record(method):
    return AgencyClientAuthorization(id=1, agency_company_id=1, client_company_id=2, verification_method=method)


def make_client(gst_number=CLIENT_GSTIN, name="Acme Industries Pvt Ltd"):
    return Company(id=2, name=name, account_type="direct", gst_number=gst_number)


@pytest.fixture
def stub():
    registry = StubRegistry()
    registry.register()
    return registry


def test_manual_review_never_auto_approves(stub):
    outcome = VerificationService(stub).evaluate(make_record("manual_review"), make_client())
    assert outcome.auto_approve is False
    assert outcome.reason == REASON_MANUAL_REVIEW_REQUIRED
    assert stub.lookups == []


def test_automated_gst_match_auto_approves(stub):
    outcome = VerificationService(stub).evaluate(make_record("automated_gst"), make_client())
    assert outcome.auto_approve is True
    assert outcome.reason == REASON_REGISTRY_MATCH
    assert outcome.requires_client_confirmation is True
    assert stub.lookups == [CLIENT_GSTIN]


def test_automated_gst_requires_name_match(stub):
    outcome = VerificationService(stub).evaluate(make_record("automated_gst"), make_client(name="Globex Corporation"))
    assert outcome.auto_approve is False
    assert outcome.reason == REASON_NEEDS_MANUAL_REVIEW


def test_hybrid_accepts_active_registration_without_name_match(stub):
    outcome = VerificationService(stub).evaluate(make_record("hybrid"), make_client(name="Globex Corporation"))
    assert outcome.auto_approve is True
    assert outcome.requires_client_confirmation is True


def test_inactive_registration_goes_to_manual_review():
    registry = StubRegistry()
    registry.register(status="Cancelled")
    outcome = VerificationService(registry).evaluate(make_record("automated_gst"), make_client())
    assert outcome.auto_approve is False
    assert outcome.reason == REASON_NEEDS_MANUAL_REVIEW


def test_unknown_gstin_goes_to_manual_review():
    outcome = VerificationService(StubRegistry()).evaluate(make_record("hybrid"), make_client())
    assert outcome.auto_approve is False
    assert outcome.error_code is None


def test_missing_or_malformed_gstin_skips_lookup(stub):
    service = VerificationService(stub)
    assert service.evaluate(make_record("automated_gst"), make_client(gst_number=None)).auto_approve is False
    assert service.evaluate(make_record("automated_gst"), make_client(gst_number="NOT-A-GSTIN")).auto_approve is False
    assert stub.lookups == []


def test_registry_outage_fails_closed(stub):
    stub.error = RegistryUnavailableError("timeout")
    outcome = VerificationService(stub).evaluate(make_record("automated_gst"), make_client())
    assert outcome.auto_approve is False
    assert outcome.reason == REASON_NEEDS_MANUAL_REVIEW
    assert outcome.error_code == ErrorCode.VERIFICATION_INCONCLUSIVE


def test_unexpected_registry_data_is_inconclusive(stub):
    stub.records[CLIENT_GSTIN] = RegistryRecord(gstin=123, legal_name="Acme Industries", status="Active")
    outcome = VerificationService(stub).evaluate(make_record("automated_gst"), make_client())
    assert outcome.auto_approve is False
    assert outcome.reason == REASON_NEEDS_MANUAL_REVIEW
    assert outcome.error_code == ErrorCode.VERIFICATION_INCONCLUSIVE


def test_unconfigured_registry_is_inconclusive():
    outcome = VerificationService().evaluate(make_record("hybrid"), make_client())
    assert outcome.auto_approve is False
    assert outcome.error_code == ErrorCode.VERIFICATION_INCONCLUSIVE


def test_unknown_method_falls_back_to_manual(stub):
    outcome = VerificationService(stub).evaluate(make_record("carrier_pigeon"), make_client())
    assert outcome.auto_approve is False
    assert stub.lookups == []


def test_names_match_ignores_legal_form_and_case():
    registration = RegistryRecord(gstin=CLIENT_GSTIN, legal_name="ACME INDUSTRIES PRIVATE LIMITED", status="Active")
    assert names_match("Acme Industries Pvt. Ltd.", registration)
    assert not names_match("Acme Holdings", registration)
    assert not names_match("", registration)


# HTTP client

def registry_client(handler):
    return HttpGstRegistryClient(
        "https://gst.example/api/",
        api_key="secret-key",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_http_client_parses_registration():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"gstin": CLIENT_GSTIN, "legal_name": "Acme Industries", "status": "Active"})

    record = registry_client(handler).lookup(CLIENT_GSTIN)
    assert record.legal_name == "Acme Industries"
    assert record.is_active
    assert seen["url"] == f"https://gst.example/api/gstin/{CLIENT_GSTIN}"
    assert seen["auth"] == "Bearer secret-key"


def test_http_client_not_found_returns_none():
    assert registry_client(lambda request: httpx.Response(404)).lookup(CLIENT_GSTIN) is None


@pytest.mark.parametrize("handler", [
    lambda request: httpx.Response(503),
    lambda request: httpx.Response(200, json={"gstin": CLIENT_GSTIN}),
    lambda request: httpx.Response(200, json={"gstin": 123, "legal_name": "Acme Industries", "status": "Active"}),
    lambda request: httpx.Response(200, json=["not", "an", "object"]),
    lambda request: httpx.Response(200, content=b"<html>maintenance</html>"),
])
def test_http_client_faults_raise_unavailable(handler):
    with pytest.raises(RegistryUnavailableError):
        registry_client(handler).lookup(CLIENT_GSTIN)


def test_http_client_timeout_raises_unavailable():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(RegistryUnavailableError):
        registry_client(handler).lookup(CLIENT_GSTIN)
