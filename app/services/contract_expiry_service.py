"""
Periodic contract sweep.

Forces the time-based transitions the lazy checks would apply on the next
read (overdue client confirmations, lapsed contracts) and sends expiry
reminders. Run from scripts/run_expiry_sweep.py or the admin endpoint.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core import config
from app.core.authorization_states import AuthorizationStatus
from app.core.timeutil import ensure_utc, utc_date, utcnow
from app.services import authorization_repository as repository
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.notification_dispatcher import AuthorizationEventType

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: List[int] = field(default_factory=list)
    renewed: List[int] = field(default_factory=list)
    escalated: List[int] = field(default_factory=list)
    reminded: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[int]]:
        return {
            "expired": self.expired,
            "renewed": self.renewed,
            "escalated": self.escalated,
            "reminded": self.reminded,
        }


def run_expiry_sweep(
    db: Session,
    manager: Optional[AuthorizationLifecycleManager] = None,
    now: Optional[datetime] = None,
    reminder_days: Optional[int] = None,
    resend_days: Optional[int] = None,
) -> SweepReport:
    """
    Apply due transitions and send reminders.

    Args:
        db: Database session
        manager: Lifecycle manager (its dispatcher sends the notifications)
        now: Sweep time, defaults to the current UTC time
        reminder_days: Remind when the contract ends within this many days
        resend_days: Minimum days between two reminders for one record

    Returns:
        SweepReport with the ids touched per category
    """
    manager = manager or AuthorizationLifecycleManager()
    now = ensure_utc(now or utcnow())
    today = utc_date(now)
    reminder_days = config.EXPIRY_REMINDER_DAYS if reminder_days is None else reminder_days
    resend_days = config.REMINDER_RESEND_DAYS if resend_days is None else resend_days
    report = SweepReport()

    for record in repository.list_confirmation_overdue(db, now):
        manager.refresh(db, record, now)
        if record.status == AuthorizationStatus.PENDING_ADMIN_REVIEW.value:
            report.escalated.append(record.id)

    for record in repository.list_due_for_expiry(db, today):
        renewals_before = record.renewal_count or 0
        manager.refresh(db, record, now)
        if record.status == AuthorizationStatus.EXPIRED.value:
            report.expired.append(record.id)
        elif (record.renewal_count or 0) > renewals_before:
            report.renewed.append(record.id)

    window_end = today + timedelta(days=reminder_days)
    reminded_before = now - timedelta(days=resend_days)
    for record in repository.list_expiring_between(db, today, window_end, reminded_before):
        days_remaining = (record.contract_end_date - today).days
        record.last_reminder_sent_at = now
        try:
            repository.save(db, record)
        except StaleDataError:
            db.rollback()
            logger.warning(f"Reminder skipped after concurrent write: authorization_id={record.id}")
            continue
        manager.dispatch(
            record,
            AuthorizationEventType.CONTRACT_EXPIRING,
            payload={
                "contract_end_date": record.contract_end_date.isoformat(),
                "days_remaining": days_remaining,
                "auto_renew": record.auto_renew,
            },
        )
        report.reminded.append(record.id)

    logger.info(
        f"Expiry sweep finished: expired={len(report.expired)}, renewed={len(report.renewed)}, "
        f"escalated={len(report.escalated)}, reminded={len(report.reminded)}"
    )
    return report
