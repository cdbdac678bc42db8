"""
Permission evaluation for agency job actions.

Answers "may this agency perform this job action under this authorization
right now". Business denials are returned as a Decision; only programming
errors (no record, unknown action) raise.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.authorization_states import AuthorizationStatus, JobAction
from app.core.errors import ErrorCode, MalformedRequestError, ServiceResult
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.services import authorization_repository as repository
from app.services.authorization_lifecycle import AuthorizationLifecycleManager

logger = logging.getLogger(__name__)

# Permission flag required by each non-create action
_ACTION_FLAGS = {
    JobAction.EDIT: ("can_edit_jobs", "Agency is not allowed to edit jobs for this client"),
    JobAction.DELETE: ("can_delete_jobs", "Agency is not allowed to delete jobs for this client"),
    JobAction.VIEW_APPLICATIONS: ("can_view_applications", "Agency is not allowed to view applications for this client"),
}


@dataclass
class Decision:
    """Outcome of a permission check."""
    allowed: bool
    reason: Optional[ErrorCode] = None
    message: str = ""
    constraints: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, **constraints) -> "Decision":
        return cls(allowed=True, constraints=constraints)

    @classmethod
    def deny(cls, reason: ErrorCode, message: str, **constraints) -> "Decision":
        return cls(allowed=False, reason=reason, message=message, constraints=constraints)

    def to_result(self, value=None) -> ServiceResult:
        if self.allowed:
            return ServiceResult.success(value)
        return ServiceResult.failure(self.reason, self.message, **self.constraints)


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _in_allow_list(value: Optional[str], allowed: Optional[Iterable[str]]) -> bool:
    """Empty allow-list means unrestricted; otherwise an exact, case-insensitive member match."""
    allowed = [_normalize(item) for item in (allowed or []) if _normalize(item)]
    if not allowed:
        return True
    candidate = _normalize(value)
    return bool(candidate) and candidate in allowed


def check_job_scope(record: AgencyClientAuthorization, job_context: Dict[str, Any]) -> Optional[Decision]:
    """Category and location allow-lists for a job. Returns the denial, or None when in scope."""
    category = job_context.get("category")
    if not _in_allow_list(category, record.job_categories):
        return Decision.deny(
            ErrorCode.CATEGORY_NOT_AUTHORIZED,
            f"Job category '{category}' is not authorized",
            authorization_id=record.id,
            allowed_categories=list(record.job_categories or []),
        )

    location = job_context.get("location")
    if not _in_allow_list(location, record.allowed_locations):
        return Decision.deny(
            ErrorCode.LOCATION_NOT_AUTHORIZED,
            f"Job location '{location}' is not authorized",
            authorization_id=record.id,
            allowed_locations=list(record.allowed_locations or []),
        )
    return None


def _parse_action(action) -> JobAction:
    try:
        return JobAction(action)
    except ValueError:
        raise MalformedRequestError(f"Unknown job action: {action!r}")


def can_perform(
    record: Optional[AgencyClientAuthorization],
    action,
    job_context: Optional[Dict[str, Any]] = None,
) -> Decision:
    """
    Evaluate one job action against an authorization.

    The caller is expected to have applied lazy time checks to the record
    (see AuthorizationLifecycleManager.refresh).

    Args:
        record: Authorization governing the (agency, client) pair
        action: JobAction or its string value
        job_context: For create: {"category": ..., "location": ...}

    Raises:
        MalformedRequestError: record missing or action unknown
    """
    if record is None:
        raise MalformedRequestError("Authorization record is required")
    action = _parse_action(action)
    job_context = job_context or {}

    if record.status != AuthorizationStatus.ACTIVE.value:
        return Decision.deny(
            ErrorCode.NO_ACTIVE_AUTHORIZATION,
            f"Authorization is {record.status}, not active",
            authorization_id=record.id,
            status=record.status,
        )

    if action != JobAction.CREATE:
        flag, message = _ACTION_FLAGS[action]
        if not getattr(record, flag):
            return Decision.deny(ErrorCode.PERMISSION_DENIED, message, authorization_id=record.id, action=action.value)
        return Decision.allow(authorization_id=record.id)

    if not record.can_post_jobs:
        return Decision.deny(
            ErrorCode.PERMISSION_DENIED,
            "Agency is not allowed to post jobs for this client",
            authorization_id=record.id,
            action=action.value,
        )

    limit = record.max_active_jobs
    active = record.active_jobs_count or 0
    if limit is not None and active >= limit:
        return Decision.deny(
            ErrorCode.QUOTA_EXCEEDED,
            f"Maximum active jobs limit ({limit}) reached",
            authorization_id=record.id,
            max_active_jobs=limit,
            active_jobs_count=active,
        )

    denied = check_job_scope(record, job_context)
    if denied is not None:
        return denied

    return Decision.allow(
        authorization_id=record.id,
        remaining_slots=None if limit is None else limit - active,
    )


def can_perform_by_id(
    db: Session,
    authorization_id: int,
    action,
    job_context: Optional[Dict[str, Any]] = None,
    manager: Optional[AuthorizationLifecycleManager] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """Load, refresh and evaluate. Raises MalformedRequestError when the id is unknown."""
    record = repository.get(db, authorization_id)
    if record is None:
        raise MalformedRequestError(f"Authorization {authorization_id} not found")
    (manager or AuthorizationLifecycleManager()).refresh(db, record, now)
    decision = can_perform(record, action, job_context)
    if not decision.allowed:
        logger.info(
            f"Permission denied: authorization_id={authorization_id}, action={action}, "
            f"reason={decision.reason.value}"
        )
    return decision
