"""
Job attribution for agency-posted jobs.

Every job records the hiring company and, when posted by an agency, the
posting agency plus the authorization that allowed it. Agency jobs are
created only through post_job(), which evaluates the active authorization
and takes a quota slot in the same transaction as the job insert.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.authorization_states import JobAction
from app.core.errors import ErrorCode, ServiceResult
from app.core.timeutil import utc_date, utcnow
from app.db.models.job import Job
from app.db.models.user import User
from app.services import authorization_repository as repository
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.permission_evaluator import can_perform, check_job_scope

logger = logging.getLogger(__name__)

JOB_ACTIVE = "active"
JOB_CLOSED = "closed"

_EDITABLE_FIELDS = ("title", "category", "location", "status")


@dataclass
class AttributedJob:
    """A job draft with its attribution fields resolved."""
    draft: Dict[str, Any]
    company_id: int
    hiring_company_id: Optional[int]
    posted_by_agency_id: Optional[int]
    authorization_id: Optional[int]
    created_by_user_id: Optional[int] = None

    @property
    def is_agency_posted(self) -> bool:
        return self.posted_by_agency_id is not None


def direct_attribution(company_id: int, draft: Optional[Dict[str, Any]] = None,
                       created_by_user_id: Optional[int] = None) -> AttributedJob:
    """Attribution for a company posting its own job: no agency, no authorization."""
    return AttributedJob(
        draft=dict(draft or {}),
        company_id=company_id,
        hiring_company_id=company_id,
        posted_by_agency_id=None,
        authorization_id=None,
        created_by_user_id=created_by_user_id,
    )


class JobAttributionResolver:
    """Gates agency job mutations on the governing authorization."""

    def __init__(self, manager: Optional[AuthorizationLifecycleManager] = None):
        self.manager = manager or AuthorizationLifecycleManager()

    def resolve(
        self,
        db: Session,
        agency_actor: User,
        client_company_id: int,
        job_draft: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> ServiceResult[AttributedJob]:
        """Find the active authorization for (actor's agency, client) and check `create`."""
        agency_id = agency_actor.company_id
        if not agency_id:
            return ServiceResult.failure(ErrorCode.PERMISSION_DENIED, "User not associated with a company")
        if client_company_id == agency_id:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Use a direct posting for your own company")

        record = self.manager.find_active(db, agency_id, client_company_id, now)
        if record is None:
            return ServiceResult.failure(
                ErrorCode.NO_ACTIVE_AUTHORIZATION,
                "No active authorization for this client",
                agency_company_id=agency_id,
                client_company_id=client_company_id,
            )

        decision = can_perform(record, JobAction.CREATE, job_draft)
        if not decision.allowed:
            return decision.to_result()

        return ServiceResult.success(AttributedJob(
            draft=dict(job_draft),
            company_id=client_company_id,
            hiring_company_id=client_company_id,
            posted_by_agency_id=agency_id,
            authorization_id=record.id,
            created_by_user_id=agency_actor.id,
        ))

    def persist(self, db: Session, attributed: AttributedJob, now: Optional[datetime] = None) -> ServiceResult[Job]:
        """
        Insert the job. For agency jobs the quota slot and the insert commit together.

        Returns:
            ServiceResult with the job, or QUOTA_EXCEEDED when a concurrent
            request took the last slot (or the authorization lapsed meanwhile)
        """
        now = now or utcnow()
        if attributed.is_agency_posted:
            if not repository.consume_job_slot(db, attributed.authorization_id, now, utc_date(now)):
                db.rollback()
                logger.info(
                    f"Job slot not available: authorization_id={attributed.authorization_id}, "
                    f"agency_id={attributed.posted_by_agency_id}"
                )
                return ServiceResult.failure(
                    ErrorCode.QUOTA_EXCEEDED,
                    "No job slot available under this authorization",
                    authorization_id=attributed.authorization_id,
                )

        draft = attributed.draft
        job = Job(
            company_id=attributed.company_id,
            created_by_user_id=attributed.created_by_user_id,
            title=draft.get("title"),
            category=draft.get("category"),
            location=draft.get("location"),
            status=JOB_ACTIVE,
            hiring_company_id=attributed.hiring_company_id,
            posted_by_agency_id=attributed.posted_by_agency_id,
            is_agency_posted=attributed.is_agency_posted,
            authorization_id=attributed.authorization_id,
        )
        db.add(job)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(job)

        if job.is_agency_posted:
            logger.info(
                f"Agency job posted: job_id={job.id}, agency_id={job.posted_by_agency_id}, "
                f"client_id={job.hiring_company_id}, authorization_id={job.authorization_id}"
            )
        return ServiceResult.success(job)

    def post_job(
        self,
        db: Session,
        agency_actor: User,
        client_company_id: int,
        job_draft: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> ServiceResult[Job]:
        resolved = self.resolve(db, agency_actor, client_company_id, job_draft, now)
        if not resolved.ok:
            return ServiceResult(error=resolved.error)
        return self.persist(db, resolved.value, now)

    def authorize_existing(
        self,
        db: Session,
        agency_actor: User,
        job: Job,
        action,
        now: Optional[datetime] = None,
    ) -> ServiceResult[Job]:
        """Re-check the job's governing authorization in its current state."""
        if not job.is_agency_posted or job.authorization_id is None:
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Job was not posted by an agency",
                job_id=job.id,
            )
        if agency_actor.company_id != job.posted_by_agency_id:
            return ServiceResult.failure(
                ErrorCode.PERMISSION_DENIED,
                "Job was posted by a different agency",
                job_id=job.id,
            )

        record = repository.get(db, job.authorization_id)
        if record is None:
            return ServiceResult.failure(
                ErrorCode.NO_ACTIVE_AUTHORIZATION,
                "Governing authorization no longer exists",
                job_id=job.id,
            )
        self.manager.refresh(db, record, now)
        return can_perform(record, action).to_result(job)

    def edit_job(
        self,
        db: Session,
        agency_actor: User,
        job: Job,
        changes: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> ServiceResult[Job]:
        allowed = self.authorize_existing(db, agency_actor, job, JobAction.EDIT, now)
        if not allowed.ok:
            return allowed

        was_active = job.status == JOB_ACTIVE
        for key in _EDITABLE_FIELDS:
            if changes.get(key) is not None:
                setattr(job, key, changes[key])
        if job.status not in (JOB_ACTIVE, JOB_CLOSED):
            db.rollback()
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, f"Unknown job status '{job.status}'")

        if changes.get("category") is not None or changes.get("location") is not None:
            record = repository.get(db, job.authorization_id)
            denied = check_job_scope(record, {"category": job.category, "location": job.location})
            if denied is not None:
                db.rollback()
                return denied.to_result()

        # Closing a job frees its slot; reopening is a new posting and is not allowed here
        if was_active and job.status == JOB_CLOSED:
            repository.release_job_slot(db, job.authorization_id)
        elif not was_active and job.status == JOB_ACTIVE:
            db.rollback()
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Closed jobs cannot be reopened")

        db.commit()
        db.refresh(job)
        logger.info(f"Agency job edited: job_id={job.id}, agency_id={job.posted_by_agency_id}")
        return ServiceResult.success(job)

    def delete_job(
        self,
        db: Session,
        agency_actor: User,
        job: Job,
        now: Optional[datetime] = None,
    ) -> ServiceResult[int]:
        allowed = self.authorize_existing(db, agency_actor, job, JobAction.DELETE, now)
        if not allowed.ok:
            return ServiceResult(error=allowed.error)

        job_id, authorization_id = job.id, job.authorization_id
        if job.status == JOB_ACTIVE:
            repository.release_job_slot(db, authorization_id)
        db.delete(job)
        db.commit()
        logger.info(f"Agency job deleted: job_id={job_id}, authorization_id={authorization_id}")
        return ServiceResult.success(job_id)

    def record_application(self, db: Session, job: Job) -> bool:
        """Count an application against the authorization of an agency job."""
        if not job.is_agency_posted or job.authorization_id is None:
            return False
        counted = repository.increment_applications(db, job.authorization_id)
        db.commit()
        return counted
