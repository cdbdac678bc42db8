"""
Authorization lifecycle manager.

Owns every status change of an agency-client authorization: checks the
transition table, enforces guards, stamps audit fields, writes the audit log
and dispatches a notification once the change is committed.

Time-based transitions (client confirmation timeout, contract expiry and
auto-renewal) are applied lazily by refresh() on every read path and by the
periodic sweep, both through contract_lapsed() and confirmation_overdue().
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Set, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core import config
from app.core.authorization_states import AuthorizationStatus, LifecycleEvent, next_status
from app.core.errors import ErrorCode, ServiceResult
from app.core.security import generate_confirmation_token
from app.core.timeutil import ensure_utc, utc_date, utcnow
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.authorization_audit_log import AuthorizationAuditLog
from app.db.models.company import Company, CompanyContact
from app.db.models.user import User
from app.services import authorization_repository as repository
from app.services.notification_dispatcher import (
    AuthorizationEvent,
    AuthorizationEventType,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from app.services.verification_service import VerificationService

logger = logging.getLogger(__name__)

CLIENT_DECLINE_REASON = "Rejected by client company"


def contract_lapsed(record: AgencyClientAuthorization, today: date) -> bool:
    """True once today is past the contract end date (end date is inclusive)."""
    return record.contract_end_date is not None and today > record.contract_end_date


def confirmation_overdue(record: AgencyClientAuthorization, now: datetime) -> bool:
    expiry = ensure_utc(record.client_verification_token_expiry)
    return expiry is not None and now > expiry


def renewed_window(start: Optional[date], end: date, today: date) -> Tuple[date, date]:
    """
    Shift a contract window forward by its own length until it covers today.

    A window without a start date is treated as a single-day window ending
    on its end date.
    """
    period = (end - start) + timedelta(days=1) if start else timedelta(days=1)
    new_start, new_end = start or end, end
    while new_end < today:
        new_start = new_end + timedelta(days=1)
        new_end = new_start + period - timedelta(days=1)
    return new_start, new_end


class AuthorizationLifecycleManager:
    """Applies lifecycle events to authorization records."""

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        verification: Optional[VerificationService] = None,
        confirmation_window_days: Optional[int] = None,
    ):
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.verification = verification or VerificationService()
        self.confirmation_window = timedelta(
            days=confirmation_window_days if confirmation_window_days is not None
            else config.CLIENT_CONFIRMATION_WINDOW_DAYS
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _invalid(self, record: AgencyClientAuthorization, event: LifecycleEvent) -> ServiceResult:
        logger.warning(
            f"Invalid transition: authorization_id={record.id}, status={record.status}, event={event.value}"
        )
        return ServiceResult.failure(
            ErrorCode.INVALID_TRANSITION,
            f"Cannot apply '{event.value}' to an authorization in status '{record.status}'",
            authorization_id=record.id,
            status=record.status,
            event=event.value,
        )

    def _commit(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        event: LifecycleEvent,
        from_status: str,
        notification: Optional[AuthorizationEventType],
        actor_user_id: Optional[int] = None,
        actor_email: Optional[str] = None,
        reason: Optional[str] = None,
        recipient_email: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        audit = AuthorizationAuditLog(
            authorization_id=record.id,
            event=event.value,
            from_status=from_status,
            to_status=record.status,
            actor_user_id=actor_user_id,
            actor_email=actor_email,
            reason=reason,
        )
        try:
            repository.save(db, record, audit)
        except StaleDataError:
            db.rollback()
            db.refresh(record)
            logger.warning(
                f"Concurrent lifecycle write lost: authorization_id={record.id}, event={event.value}, "
                f"current_status={record.status}"
            )
            return ServiceResult.failure(
                ErrorCode.INVALID_TRANSITION,
                "Authorization was changed by another request",
                authorization_id=record.id,
                status=record.status,
                event=event.value,
            )

        logger.info(
            f"Authorization transition: authorization_id={record.id}, event={event.value}, "
            f"{from_status} -> {record.status}"
        )
        if notification is not None:
            self.dispatch(record, notification, recipient_email=recipient_email, payload=payload)
        return ServiceResult.success(record)

    def dispatch(
        self,
        record: AgencyClientAuthorization,
        event_type: AuthorizationEventType,
        recipient_email: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Send a notification; delivery failures never undo committed state."""
        event = AuthorizationEvent(
            event_type=event_type,
            authorization_id=record.id,
            agency_company_id=record.agency_company_id,
            client_company_id=record.client_company_id,
            status=record.status,
            recipient_email=recipient_email,
            payload=payload or {},
        )
        try:
            self.dispatcher.notify(event)
        except Exception as e:
            logger.error(
                f"Notification dispatch failed: type={event_type.value}, authorization_id={record.id}, error={e}",
                exc_info=True,
            )

    def _confirmation_emails(self, db: Session, record: AgencyClientAuthorization) -> Set[str]:
        """Emails allowed to confirm: registered client contacts plus the request allow-list."""
        emails = [record.client_contact_email, *(record.confirmation_allowed_emails or [])]
        client = db.query(Company).filter(Company.id == record.client_company_id).first()
        if client and client.email:
            emails.append(client.email)
        contacts = db.query(CompanyContact.email).filter(CompanyContact.company_id == record.client_company_id).all()
        emails.extend(email for (email,) in contacts)
        return {email.strip().lower() for email in emails if email and email.strip()}

    def _check_client_actor(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        email: Optional[str],
        token: Optional[str],
    ) -> Optional[ServiceResult]:
        if not email or not email.strip():
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Confirming email is required")
        if token is not None and token != record.client_verification_token:
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Invalid or expired verification token",
                authorization_id=record.id,
            )
        if email.strip().lower() not in self._confirmation_emails(db, record):
            logger.warning(f"Client confirmation from unregistered email: authorization_id={record.id}")
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Email is not a registered contact of the client company",
                authorization_id=record.id,
            )
        return None

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def submit(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        client_company: Optional[Company] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        """Run verification on a pending record and route it to client confirmation or admin review."""
        now = now or utcnow()
        if next_status(record.status, LifecycleEvent.SUBMIT_VERIFIED) is None:
            return self._invalid(record, LifecycleEvent.SUBMIT_VERIFIED)

        if client_company is None:
            client_company = db.query(Company).filter(Company.id == record.client_company_id).first()
        outcome = self.verification.evaluate(record, client_company)
        record.verification_notes = f"{outcome.reason}: {outcome.detail}" if outcome.detail else outcome.reason
        from_status = record.status

        if outcome.auto_approve:
            event = LifecycleEvent.SUBMIT_VERIFIED
            record.status = next_status(from_status, event).value
            record.verified_at = now
            record.verified_by = None
            record.client_verification_token = generate_confirmation_token()
            record.client_verification_token_expiry = now + self.confirmation_window
            payload = {
                "confirmation_url": (
                    f"{config.FRONTEND_URL}/client/verify-authorization"
                    f"?authorization_id={record.id}&token={record.client_verification_token}"
                ),
                "expires_at": record.client_verification_token_expiry.isoformat(),
            }
            return self._commit(
                db, record, event, from_status,
                AuthorizationEventType.CLIENT_CONFIRMATION_REQUESTED,
                reason=outcome.reason,
                recipient_email=record.client_contact_email,
                payload=payload,
            )

        event = LifecycleEvent.SUBMIT_UNVERIFIED
        record.status = next_status(from_status, event).value
        payload = {
            "reason": outcome.reason,
            "detail": outcome.detail,
            "inconclusive": outcome.error_code == ErrorCode.VERIFICATION_INCONCLUSIVE,
        }
        return self._commit(
            db, record, event, from_status,
            AuthorizationEventType.ADMIN_REVIEW_REQUESTED,
            reason=outcome.reason,
            payload=payload,
        )

    def confirm_by_client(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        email: str,
        token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        now = now or utcnow()
        self.refresh(db, record, now)
        event = LifecycleEvent.CLIENT_CONFIRM
        target = next_status(record.status, event)
        if target is None:
            return self._invalid(record, event)

        denied = self._check_client_actor(db, record, email, token)
        if denied is not None:
            return denied

        from_status = record.status
        confirming_email = email.strip().lower()
        record.status = target.value
        record.client_confirmed_at = now
        record.client_confirmed_by = confirming_email
        record.client_verification_action = "approved"
        record.client_verification_token = None
        record.can_post_jobs = True
        return self._commit(
            db, record, event, from_status,
            AuthorizationEventType.ACTIVATED,
            actor_email=confirming_email,
        )

    def decline_by_client(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        email: str,
        token: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        now = now or utcnow()
        self.refresh(db, record, now)
        event = LifecycleEvent.CLIENT_DECLINE
        target = next_status(record.status, event)
        if target is None:
            return self._invalid(record, event)

        denied = self._check_client_actor(db, record, email, token)
        if denied is not None:
            return denied

        from_status = record.status
        confirming_email = email.strip().lower()
        record.status = target.value
        record.client_confirmed_at = now
        record.client_confirmed_by = confirming_email
        record.client_verification_action = "rejected"
        record.client_verification_token = None
        record.rejected_at = now
        record.rejection_reason = (reason or "").strip() or CLIENT_DECLINE_REASON
        return self._commit(
            db, record, event, from_status,
            AuthorizationEventType.REJECTED,
            actor_email=confirming_email,
            reason=record.rejection_reason,
        )

    def admin_decide(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        approve: bool,
        admin: Optional[User],
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        now = now or utcnow()
        if admin is None or not admin.is_admin:
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Only platform admins can decide authorization requests",
                authorization_id=record.id,
            )

        self.refresh(db, record, now)
        event = LifecycleEvent.ADMIN_APPROVE if approve else LifecycleEvent.ADMIN_REJECT
        target = next_status(record.status, event)
        if target is None:
            return self._invalid(record, event)

        reason = (reason or "").strip() or None
        if not approve and reason is None:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Rejection reason is required")

        from_status = record.status
        record.status = target.value
        if approve:
            record.admin_approved_at = now
            record.admin_approved_by = admin.id
            record.can_post_jobs = True
            record.verified_at = now
            record.verified_by = admin.id
            if reason:
                record.internal_notes = reason
            notification = AuthorizationEventType.ACTIVATED
        else:
            record.rejected_at = now
            record.rejected_by = admin.id
            record.rejection_reason = reason
            notification = AuthorizationEventType.REJECTED

        return self._commit(
            db, record, event, from_status, notification,
            actor_user_id=admin.id,
            actor_email=admin.email,
            reason=reason,
        )

    def revoke(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        actor: Optional[User],
        reason: Optional[str],
        now: Optional[datetime] = None,
    ) -> ServiceResult[AgencyClientAuthorization]:
        """Revoke an active authorization. Jobs already posted stay but can no longer be managed."""
        now = now or utcnow()
        if actor is None or not (actor.is_admin or actor.company_id == record.agency_company_id):
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Only a platform admin or the agency can revoke this authorization",
                authorization_id=record.id,
            )

        self.refresh(db, record, now)
        event = LifecycleEvent.REVOKE
        target = next_status(record.status, event)
        if target is None:
            return self._invalid(record, event)

        reason = (reason or "").strip()
        if not reason:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Revocation reason is required")

        from_status = record.status
        record.status = target.value
        record.revoked_at = now
        record.revoked_by = actor.id
        record.revocation_reason = reason
        return self._commit(
            db, record, event, from_status,
            AuthorizationEventType.REVOKED,
            actor_user_id=actor.id,
            actor_email=actor.email,
            reason=reason,
        )

    def refresh(
        self,
        db: Session,
        record: AgencyClientAuthorization,
        now: Optional[datetime] = None,
    ) -> AgencyClientAuthorization:
        """
        Apply time-based transitions that are due.

        Called on every read that feeds a decision, and by the sweep, so both
        paths converge on the same guards.
        """
        now = ensure_utc(now or utcnow())
        today = utc_date(now)
        result = None

        if record.status == AuthorizationStatus.PENDING_CLIENT_CONFIRM.value and confirmation_overdue(record, now):
            from_status = record.status
            record.status = next_status(from_status, LifecycleEvent.CONFIRMATION_TIMEOUT).value
            result = self._commit(
                db, record, LifecycleEvent.CONFIRMATION_TIMEOUT, from_status,
                AuthorizationEventType.ADMIN_REVIEW_REQUESTED,
                reason="client_confirmation_timeout",
                payload={"reason": "client_confirmation_timeout"},
            )

        elif record.status == AuthorizationStatus.ACTIVE.value and contract_lapsed(record, today):
            from_status = record.status
            if record.auto_renew:
                previous_end = record.contract_end_date
                record.contract_start_date, record.contract_end_date = renewed_window(
                    record.contract_start_date, record.contract_end_date, today
                )
                record.renewal_count = (record.renewal_count or 0) + 1
                record.renewed_at = now
                record.status = next_status(from_status, LifecycleEvent.CONTRACT_RENEW).value
                result = self._commit(
                    db, record, LifecycleEvent.CONTRACT_RENEW, from_status,
                    AuthorizationEventType.RENEWED,
                    reason=f"renewed after {previous_end.isoformat()}",
                    payload={
                        "contract_start_date": record.contract_start_date.isoformat(),
                        "contract_end_date": record.contract_end_date.isoformat(),
                    },
                )
            else:
                record.status = next_status(from_status, LifecycleEvent.CONTRACT_EXPIRE).value
                record.expired_at = now
                result = self._commit(
                    db, record, LifecycleEvent.CONTRACT_EXPIRE, from_status,
                    AuthorizationEventType.EXPIRED,
                    reason=f"contract ended {record.contract_end_date.isoformat()}",
                    payload={"jobs_posted": record.jobs_posted},
                )

        if result is not None and not result.ok:
            logger.warning(
                f"Time-based transition not applied: authorization_id={record.id}, "
                f"status={record.status}, error={result.code.value}"
            )
        return record

    # ------------------------------------------------------------------
    # Reads with lazy checks
    # ------------------------------------------------------------------

    def get(self, db: Session, authorization_id: int, now: Optional[datetime] = None) -> Optional[AgencyClientAuthorization]:
        record = repository.get(db, authorization_id)
        if record is not None:
            self.refresh(db, record, now)
        return record

    def find_active(
        self,
        db: Session,
        agency_company_id: int,
        client_company_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[AgencyClientAuthorization]:
        """The usable authorization for a pair; lapsed contracts are expired before answering."""
        record = repository.find_active(db, agency_company_id, client_company_id)
        if record is None:
            return None
        now = ensure_utc(now or utcnow())
        self.refresh(db, record, now)
        if record.status != AuthorizationStatus.ACTIVE.value:
            return None
        # A lapsed contract whose expiry lost a concurrent write is still unusable
        if contract_lapsed(record, utc_date(now)) and not record.auto_renew:
            return None
        return record
