"""
Persistence for agency-client authorizations.

Pure storage access: no lifecycle rules live here. The lifecycle manager
decides what a record should look like and this module stores it. The two
counter primitives are conditional UPDATE statements so concurrent requests
cannot overshoot a quota with read-then-write.
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.authorization_states import AuthorizationStatus, OPEN_STATUSES
from app.core.errors import ErrorCode, ServiceResult
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.authorization_audit_log import AuthorizationAuditLog

logger = logging.getLogger(__name__)

Auth = AgencyClientAuthorization
_OPEN_VALUES = [status.value for status in OPEN_STATUSES]


def create(db: Session, **fields) -> ServiceResult[AgencyClientAuthorization]:
    """
    Insert a new authorization in `pending`.

    Returns:
        ServiceResult with the stored record, or DUPLICATE_AUTHORIZATION when an
        open record already exists for the (agency, client) pair
    """
    agency_id = fields["agency_company_id"]
    client_id = fields["client_company_id"]

    if find_open(db, agency_id, client_id):
        return ServiceResult.failure(
            ErrorCode.DUPLICATE_AUTHORIZATION,
            "Authorization already exists for this client",
            agency_company_id=agency_id,
            client_company_id=client_id,
        )

    record = Auth(status=AuthorizationStatus.PENDING.value, **fields)
    db.add(record)
    try:
        db.commit()
    except IntegrityError as e:
        # Concurrent request won the partial unique index
        db.rollback()
        logger.warning(
            f"Duplicate authorization rejected by storage: agency_id={agency_id}, "
            f"client_id={client_id}, error={e.orig}"
        )
        return ServiceResult.failure(
            ErrorCode.DUPLICATE_AUTHORIZATION,
            "Authorization already exists for this client",
            agency_company_id=agency_id,
            client_company_id=client_id,
        )
    db.refresh(record)
    return ServiceResult.success(record)


def save(db: Session, record: AgencyClientAuthorization, audit: Optional[AuthorizationAuditLog] = None) -> AgencyClientAuthorization:
    """Persist a record (and its audit row) handed over by the lifecycle manager."""
    db.add(record)
    if audit is not None:
        db.add(audit)
    db.commit()
    db.refresh(record)
    return record


def get(db: Session, authorization_id: int) -> Optional[AgencyClientAuthorization]:
    return db.query(Auth).filter(Auth.id == authorization_id).first()


def find_open(db: Session, agency_company_id: int, client_company_id: int) -> Optional[AgencyClientAuthorization]:
    """The single non-terminal authorization for a pair, if any."""
    return db.query(Auth).filter(
        Auth.agency_company_id == agency_company_id,
        Auth.client_company_id == client_company_id,
        Auth.status.in_(_OPEN_VALUES),
    ).first()


def find_active(db: Session, agency_company_id: int, client_company_id: int) -> Optional[AgencyClientAuthorization]:
    """Stored `active` record for a pair. Callers apply lazy time checks."""
    return db.query(Auth).filter(
        Auth.agency_company_id == agency_company_id,
        Auth.client_company_id == client_company_id,
        Auth.status == AuthorizationStatus.ACTIVE.value,
    ).first()


def list_by_agency(db: Session, agency_company_id: int, status: Optional[str] = None) -> List[AgencyClientAuthorization]:
    query = db.query(Auth).filter(Auth.agency_company_id == agency_company_id)
    if status:
        query = query.filter(Auth.status == status)
    return query.order_by(Auth.created_at.desc(), Auth.id.desc()).all()


def list_by_client(db: Session, client_company_id: int, status: Optional[str] = None) -> List[AgencyClientAuthorization]:
    query = db.query(Auth).filter(Auth.client_company_id == client_company_id)
    if status:
        query = query.filter(Auth.status == status)
    return query.order_by(Auth.created_at.desc(), Auth.id.desc()).all()


def list_by_status(
    db: Session,
    statuses: Optional[List[str]] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[AgencyClientAuthorization]:
    query = db.query(Auth)
    if statuses:
        query = query.filter(Auth.status.in_(statuses))
    return query.order_by(Auth.created_at.desc(), Auth.id.desc()).offset(offset).limit(limit).all()


def count_by_status(db: Session) -> Dict[str, int]:
    rows = db.query(Auth.status, func.count(Auth.id)).group_by(Auth.status).all()
    counts = {status.value: 0 for status in AuthorizationStatus}
    counts.update({status: int(total) for status, total in rows})
    return counts


def list_due_for_expiry(db: Session, today: date) -> List[AgencyClientAuthorization]:
    """Active records whose contract ended before today."""
    return db.query(Auth).filter(
        Auth.status == AuthorizationStatus.ACTIVE.value,
        Auth.contract_end_date.isnot(None),
        Auth.contract_end_date < today,
    ).all()


def list_confirmation_overdue(db: Session, now: datetime) -> List[AgencyClientAuthorization]:
    """Records still waiting on the client after the confirmation window closed."""
    return db.query(Auth).filter(
        Auth.status == AuthorizationStatus.PENDING_CLIENT_CONFIRM.value,
        Auth.client_verification_token_expiry.isnot(None),
        Auth.client_verification_token_expiry < now,
    ).all()


def list_expiring_between(
    db: Session,
    start: date,
    end: date,
    reminded_before: datetime,
) -> List[AgencyClientAuthorization]:
    """Active records ending within [start, end] not reminded since reminded_before."""
    return db.query(Auth).filter(
        Auth.status == AuthorizationStatus.ACTIVE.value,
        Auth.contract_end_date.isnot(None),
        Auth.contract_end_date >= start,
        Auth.contract_end_date <= end,
        or_(
            Auth.last_reminder_sent_at.is_(None),
            Auth.last_reminder_sent_at < reminded_before,
        ),
    ).all()


def consume_job_slot(db: Session, authorization_id: int, now: datetime, today: date) -> bool:
    """
    Atomically take one active-job slot and bump the posting counters.

    The row only matches while it is active, its contract has not lapsed
    (unless it auto-renews) and the quota has room. Does not commit: the
    caller commits together with the job insert.

    Returns:
        True if the slot was taken
    """
    updated = db.query(Auth).filter(
        Auth.id == authorization_id,
        Auth.status == AuthorizationStatus.ACTIVE.value,
        or_(
            Auth.contract_end_date.is_(None),
            Auth.contract_end_date >= today,
            Auth.auto_renew.is_(True),
        ),
        or_(
            Auth.max_active_jobs.is_(None),
            Auth.active_jobs_count < Auth.max_active_jobs,
        ),
    ).update(
        {
            Auth.jobs_posted: Auth.jobs_posted + 1,
            Auth.active_jobs_count: Auth.active_jobs_count + 1,
            Auth.last_job_posted_at: now,
        },
        synchronize_session=False,
    )
    return updated == 1


def release_job_slot(db: Session, authorization_id: int) -> bool:
    """Give back an active-job slot (job deleted or closed). Does not commit."""
    updated = db.query(Auth).filter(
        Auth.id == authorization_id,
        Auth.active_jobs_count > 0,
    ).update(
        {Auth.active_jobs_count: Auth.active_jobs_count - 1},
        synchronize_session=False,
    )
    return updated == 1


def increment_applications(db: Session, authorization_id: int) -> bool:
    """Count one application against the authorization. Does not commit."""
    updated = db.query(Auth).filter(Auth.id == authorization_id).update(
        {Auth.total_applications: Auth.total_applications + 1},
        synchronize_session=False,
    )
    return updated == 1
