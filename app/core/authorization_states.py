"""
Agency-client authorization states and transition table.

Single source of truth for the authorization lifecycle. Every status change
goes through next_status(); a (status, event) pair missing from
TRANSITIONS is an invalid transition.
"""
import enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class AuthorizationStatus(str, enum.Enum):
    """Closed set of authorization statuses."""
    PENDING = "pending"
    PENDING_CLIENT_CONFIRM = "pending_client_confirm"
    PENDING_ADMIN_REVIEW = "pending_admin_review"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    REJECTED = "rejected"


class LifecycleEvent(str, enum.Enum):
    """Events that move an authorization between statuses."""
    SUBMIT_VERIFIED = "submit_verified"
    SUBMIT_UNVERIFIED = "submit_unverified"
    CLIENT_CONFIRM = "client_confirm"
    CLIENT_DECLINE = "client_decline"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    ADMIN_APPROVE = "admin_approve"
    ADMIN_REJECT = "admin_reject"
    REVOKE = "revoke"
    CONTRACT_EXPIRE = "contract_expire"
    CONTRACT_RENEW = "contract_renew"


class VerificationMethod(str, enum.Enum):
    """How much human review an authorization needs before activation."""
    AUTOMATED_GST = "automated_gst"
    MANUAL_REVIEW = "manual_review"
    HYBRID = "hybrid"


class JobAction(str, enum.Enum):
    """Job mutations gated by an authorization."""
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    VIEW_APPLICATIONS = "view_applications"


S = AuthorizationStatus
E = LifecycleEvent

TRANSITIONS: Dict[Tuple[AuthorizationStatus, LifecycleEvent], AuthorizationStatus] = {
    (S.PENDING, E.SUBMIT_VERIFIED): S.PENDING_CLIENT_CONFIRM,
    (S.PENDING, E.SUBMIT_UNVERIFIED): S.PENDING_ADMIN_REVIEW,
    (S.PENDING_CLIENT_CONFIRM, E.CLIENT_CONFIRM): S.ACTIVE,
    (S.PENDING_CLIENT_CONFIRM, E.CLIENT_DECLINE): S.REJECTED,
    (S.PENDING_CLIENT_CONFIRM, E.CONFIRMATION_TIMEOUT): S.PENDING_ADMIN_REVIEW,
    (S.PENDING_ADMIN_REVIEW, E.ADMIN_APPROVE): S.ACTIVE,
    (S.PENDING_ADMIN_REVIEW, E.ADMIN_REJECT): S.REJECTED,
    (S.ACTIVE, E.REVOKE): S.REVOKED,
    (S.ACTIVE, E.CONTRACT_EXPIRE): S.EXPIRED,
    (S.ACTIVE, E.CONTRACT_RENEW): S.ACTIVE,
}

TERMINAL_STATUSES: FrozenSet[AuthorizationStatus] = frozenset({S.EXPIRED, S.REVOKED, S.REJECTED})

OPEN_STATUSES: FrozenSet[AuthorizationStatus] = frozenset(
    status for status in AuthorizationStatus if status not in TERMINAL_STATUSES
)

# Admin dashboard grouping
STATUS_GROUPS: Dict[str, FrozenSet[AuthorizationStatus]] = {
    "pending": frozenset({S.PENDING, S.PENDING_CLIENT_CONFIRM, S.PENDING_ADMIN_REVIEW}),
    "active": frozenset({S.ACTIVE}),
    "ended": frozenset({S.EXPIRED, S.REVOKED}),
    "rejected": frozenset({S.REJECTED}),
}


def parse_status(value) -> AuthorizationStatus:
    """Coerce a stored value into the closed status set (raises ValueError otherwise)."""
    return AuthorizationStatus(value)


def next_status(status, event: LifecycleEvent) -> Optional[AuthorizationStatus]:
    """
    Pure transition function.

    Args:
        status: Current status (enum or its string value)
        event: Lifecycle event

    Returns:
        The resulting status, or None when the event is not valid from status
    """
    return TRANSITIONS.get((parse_status(status), LifecycleEvent(event)))


def allowed_events(status) -> List[LifecycleEvent]:
    """Events that are valid from the given status."""
    current = parse_status(status)
    return [event for (source, event) in TRANSITIONS if source == current]


def is_terminal(status) -> bool:
    return parse_status(status) in TERMINAL_STATUSES
