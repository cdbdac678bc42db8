"""
Shared fixtures: in-memory database, companies and users, and a lifecycle
manager wired with a recording dispatcher and a stub GST registry.
"""
import pytest
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models.company import Company, CompanyContact
from app.db.models.user import User
import app.db.models  # noqa: F401
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.authorization_service import AuthorizationService
from app.services.job_attribution import JobAttributionResolver
from app.services.notification_dispatcher import RecordingNotificationDispatcher
from app.services.verification_service import RegistryClient, RegistryRecord, VerificationService

CLIENT_GSTIN = "29ABCDE1234F1Z5"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class StubRegistry(RegistryClient):
    """Registry answering from a dict; set .error to simulate an outage."""

    def __init__(self):
        self.records = {}
        self.error = None
        self.lookups = []

    def lookup(self, gstin):
        self.lookups.append(gstin)
        if self.error is not None:
            raise self.error
        return self.records.get(gstin)

    def register(self, gstin=CLIENT_GSTIN, legal_name="Acme Industries Private Limited", status="Active", trade_name=None):
        self.records[gstin] = RegistryRecord(gstin=gstin, legal_name=legal_name, status=status, trade_name=trade_name)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def registry():
    return StubRegistry()


@pytest.fixture
def dispatcher():
    return RecordingNotificationDispatcher()


@pytest.fixture
def manager(dispatcher, registry):
    return AuthorizationLifecycleManager(
        dispatcher=dispatcher,
        verification=VerificationService(registry),
        confirmation_window_days=7,
    )


@pytest.fixture
def service(manager):
    return AuthorizationService(manager)


@pytest.fixture
def resolver(manager):
    return JobAttributionResolver(manager)


@pytest.fixture
def agency(db):
    company = Company(name="TalentBridge Staffing", account_type="recruiting_agency", email="ops@talentbridge.example")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def other_agency(db):
    company = Company(name="Northwind Consulting", account_type="consulting_firm", email="hello@northwind.example")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def client_company(db):
    company = Company(
        name="Acme Industries Pvt Ltd",
        account_type="direct",
        email="admin@acme.example",
        gst_number=CLIENT_GSTIN,
    )
    db.add(company)
    db.commit()
    db.add(CompanyContact(company_id=company.id, email="hr@acme.example", name="Priya Rao"))
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture
def agency_user(db, agency):
    user = User(full_name="Agency Recruiter", email="recruiter@talentbridge.example", company_id=agency.id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_agency_user(db, other_agency):
    user = User(full_name="Other Recruiter", email="recruiter@northwind.example", company_id=other_agency.id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db):
    user = User(full_name="Platform Admin", email="admin@platform.example", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_active(db, service, agency, client_company, admin_user):
    """Factory: request under manual review and approve as admin."""
    def _make(**fields):
        fields.setdefault("verification_method", "manual_review")
        requested = service.request(db, agency.id, client_company.id, now=NOW, **fields)
        assert requested.ok, requested.error
        approved = service.admin_decide(db, requested.value.id, True, admin_user, now=NOW)
        assert approved.ok, approved.error
        return approved.value
    return _make
