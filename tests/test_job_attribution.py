"""
Tests for agency job attribution, quota enforcement and existing-job checks.
"""
import threading
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.core.authorization_states import JobAction
from app.core.errors import ErrorCode
from app.db.base import Base
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.company import Company
from app.db.models.job import Job
from app.db.models.user import User
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.job_attribution import JobAttributionResolver, direct_attribution
from app.services.notification_dispatcher import RecordingNotificationDispatcher
from tests.conftest import NOW


def draft(title="Backend Engineer", category="engineering", location="Bengaluru"):
    return {"title": title, "category": category, "location": location}


def test_end_to_end_scenario(db, service, resolver, registry, agency, agency_user, client_company):
    registry.register()
    record = service.request(
        db, agency.id, client_company.id, now=NOW,
        verification_method="hybrid",
        can_edit_jobs=True,
        job_categories=["Engineering"],
        max_active_jobs=5,
    ).value
    assert record.status == "pending_client_confirm"
    confirmed = service.confirm_by_client(
        db, record.id, "hr@acme.example", token=record.client_verification_token, now=NOW
    )
    assert confirmed.value.status == "active"

    posted = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW)
    assert posted.ok
    job = posted.value
    assert job.company_id == client_company.id
    assert job.hiring_company_id == client_company.id
    assert job.posted_by_agency_id == agency.id
    assert job.is_agency_posted is True
    assert job.authorization_id == record.id

    record = service.get(db, record.id, NOW)
    assert record.jobs_posted == 1
    assert record.active_jobs_count == 1
    assert record.last_job_posted_at is not None

    denied = resolver.post_job(db, agency_user, client_company.id, draft(category="sales"), now=NOW)
    assert denied.code == ErrorCode.CATEGORY_NOT_AUTHORIZED

    # Revocation keeps the job but removes the agency's control over it
    service.revoke(db, record.id, agency_user, "engagement ended", now=NOW)
    edit = resolver.edit_job(db, agency_user, job, {"title": "Staff Engineer"}, now=NOW)
    assert edit.code == ErrorCode.NO_ACTIVE_AUTHORIZATION
    assert db.query(Job).filter(Job.id == job.id).first() is not None


def test_no_authorization_no_posting(db, resolver, agency_user, client_company):
    result = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW)
    assert result.code == ErrorCode.NO_ACTIVE_AUTHORIZATION
    assert db.query(Job).count() == 0


def test_expired_authorization_blocks_posting(db, resolver, agency_user, client_company, make_active):
    make_active(contract_end_date=NOW.date() - timedelta(days=1))
    result = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW)
    assert result.code == ErrorCode.NO_ACTIVE_AUTHORIZATION


def test_quota_is_enforced_and_deletion_frees_a_slot(db, service, resolver, agency_user, client_company, make_active):
    record = make_active(max_active_jobs=1, can_delete_jobs=True)

    first = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW)
    assert first.ok
    second = resolver.post_job(db, agency_user, client_company.id, draft(title="QA Engineer"), now=NOW)
    assert second.code == ErrorCode.QUOTA_EXCEEDED

    deleted = resolver.delete_job(db, agency_user, first.value, now=NOW)
    assert deleted.ok

    third = resolver.post_job(db, agency_user, client_company.id, draft(title="QA Engineer"), now=NOW)
    assert third.ok

    record = service.get(db, record.id, NOW)
    assert record.active_jobs_count == 1
    assert record.jobs_posted == 2


def test_closing_a_job_frees_its_slot(db, service, resolver, agency_user, client_company, make_active):
    record = make_active(max_active_jobs=1)
    job = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW).value

    closed = resolver.edit_job(db, agency_user, job, {"status": "closed"}, now=NOW)
    assert closed.value.status == "closed"
    assert service.get(db, record.id, NOW).active_jobs_count == 0

    reopened = resolver.edit_job(db, agency_user, closed.value, {"status": "active"}, now=NOW)
    assert reopened.code == ErrorCode.MALFORMED_REQUEST


def test_delete_requires_permission(db, resolver, agency_user, client_company, make_active):
    make_active(can_delete_jobs=False)
    job = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW).value
    assert resolver.delete_job(db, agency_user, job, now=NOW).code == ErrorCode.PERMISSION_DENIED


def test_lost_race_between_resolve_and_persist(db, service, resolver, agency_user, client_company, make_active):
    record = make_active(max_active_jobs=1)
    first = resolver.resolve(db, agency_user, client_company.id, draft(), now=NOW)
    second = resolver.resolve(db, agency_user, client_company.id, draft(title="QA"), now=NOW)
    assert first.ok and second.ok

    assert resolver.persist(db, first.value, now=NOW).ok
    assert resolver.persist(db, second.value, now=NOW).code == ErrorCode.QUOTA_EXCEEDED
    assert service.get(db, record.id, NOW).active_jobs_count == 1
    assert db.query(Job).count() == 1


def test_other_agency_cannot_manage_job(db, resolver, agency_user, other_agency_user, client_company, make_active):
    make_active()
    job = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW).value
    result = resolver.authorize_existing(db, other_agency_user, job, JobAction.EDIT, now=NOW)
    assert result.code == ErrorCode.PERMISSION_DENIED


def test_record_application(db, service, resolver, agency_user, client_company, make_active):
    record = make_active()
    job = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW).value
    assert resolver.record_application(db, job) is True
    assert resolver.record_application(db, job) is True
    assert service.get(db, record.id, NOW).total_applications == 2


def test_direct_attribution_has_no_agency(db, resolver, client_company):
    attributed = direct_attribution(client_company.id, draft())
    assert attributed.is_agency_posted is False
    job = resolver.persist(db, attributed, now=NOW).value
    assert job.hiring_company_id == client_company.id
    assert job.posted_by_agency_id is None
    assert job.authorization_id is None
    assert resolver.record_application(db, job) is False


def test_storage_rejects_agency_job_without_authorization(db, agency, client_company):
    db.add(Job(
        company_id=client_company.id,
        title="Ghost job",
        hiring_company_id=client_company.id,
        posted_by_agency_id=agency.id,
        is_agency_posted=True,
    ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_postings_never_exceed_quota(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    setup = Session()
    agency = Company(name="Race Agency", account_type="recruiting_agency")
    client = Company(name="Race Client", account_type="direct")
    setup.add_all([agency, client])
    setup.commit()
    setup.add(User(full_name="Racer", email="racer@agency.example", company_id=agency.id))
    setup.add(AgencyClientAuthorization(
        agency_company_id=agency.id,
        client_company_id=client.id,
        status="active",
        can_post_jobs=True,
        max_active_jobs=2,
    ))
    setup.commit()
    agency_id, client_id = agency.id, client.id
    setup.close()

    resolver = JobAttributionResolver(AuthorizationLifecycleManager(dispatcher=RecordingNotificationDispatcher()))
    barrier = threading.Barrier(3)
    outcomes = []
    errors = []

    def post(n):
        session = Session()
        try:
            actor = session.query(User).filter(User.company_id == agency_id).first()
            barrier.wait()
            result = resolver.post_job(session, actor, client_id, draft(title=f"Job {n}"), now=NOW)
            outcomes.append(result.code)
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=post, args=(n,)) for n in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert outcomes.count(None) == 2
    assert outcomes.count(ErrorCode.QUOTA_EXCEEDED) == 1

    check = Session()
    record = check.query(AgencyClientAuthorization).first()
    assert record.active_jobs_count == 2
    assert record.jobs_posted == 2
    assert check.query(Job).count() == 2
    check.close()
    engine.dispose()


def test_edit_cannot_move_job_outside_allow_lists(db, resolver, agency_user, client_company, make_active):
    make_active(job_categories=["engineering"], allowed_locations=["Bengaluru"])
    job = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW).value

    moved = resolver.edit_job(db, agency_user, job, {"category": "sales", "location": "Dubai"}, now=NOW)
    assert moved.code == ErrorCode.CATEGORY_NOT_AUTHORIZED
    relocated = resolver.edit_job(db, agency_user, job, {"location": "Dubai"}, now=NOW)
    assert relocated.code == ErrorCode.LOCATION_NOT_AUTHORIZED

    stored = db.query(Job).filter(Job.id == job.id).first()
    assert (stored.category, stored.location) == ("engineering", "Bengaluru")

    renamed = resolver.edit_job(db, agency_user, stored, {"title": "Platform Engineer", "location": "bengaluru"}, now=NOW)
    assert renamed.ok
    assert renamed.value.title == "Platform Engineer"


def test_manual_review_post_revoke_scenario(db, service, resolver, agency, agency_user, admin_user, client_company):
    requested = service.request(
        db, agency.id, client_company.id, now=NOW,
        verification_method="manual_review",
        job_categories=["engineering"],
        max_active_jobs=3,
    )
    assert requested.value.status == "pending_admin_review"
    approved = service.admin_decide(db, requested.value.id, True, admin_user, now=NOW)
    assert approved.value.status == "active"
    authorization_id = approved.value.id

    first = resolver.post_job(db, agency_user, client_company.id, draft(), now=NOW)
    assert first.ok
    first_job_id = first.value.id

    revoked = service.revoke(db, authorization_id, admin_user, "client terminated the engagement", now=NOW)
    assert revoked.value.status == "revoked"

    second = resolver.post_job(db, agency_user, client_company.id, draft(title="SRE"), now=NOW)
    assert second.code == ErrorCode.NO_ACTIVE_AUTHORIZATION

    kept = db.query(Job).filter(Job.id == first_job_id).first()
    assert kept.authorization_id == authorization_id
    assert service.get(db, kept.authorization_id, NOW).status == "revoked"
