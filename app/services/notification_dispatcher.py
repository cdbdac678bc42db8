"""
Notification dispatch contract for authorization lifecycle events.

The authorization core only emits AuthorizationEvent values. Delivery (email,
in-app, webhooks) belongs to whoever implements NotificationDispatcher.
"""
import enum
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from app.core import config
from app.core.logging_config import sanitize_log_data
from app.core.timeutil import utcnow

logger = logging.getLogger(__name__)


class AuthorizationEventType(str, enum.Enum):
    CLIENT_CONFIRMATION_REQUESTED = "client_confirmation_requested"
    ADMIN_REVIEW_REQUESTED = "admin_review_requested"
    ACTIVATED = "activated"
    REJECTED = "rejected"
    REVOKED = "revoked"
    EXPIRED = "expired"
    RENEWED = "renewed"
    CONTRACT_EXPIRING = "contract_expiring"


@dataclass
class AuthorizationEvent:
    """A lifecycle event about one authorization."""
    event_type: AuthorizationEventType
    authorization_id: int
    agency_company_id: int
    client_company_id: int
    status: str
    occurred_at: datetime = field(default_factory=utcnow)
    recipient_email: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "authorization_id": self.authorization_id,
            "agency_company_id": self.agency_company_id,
            "client_company_id": self.client_company_id,
            "status": self.status,
            "occurred_at": self.occurred_at.isoformat(),
            "recipient_email": self.recipient_email,
            "payload": self.payload,
        }


class NotificationDispatcher(ABC):
    """Abstract base class for notification delivery."""

    @abstractmethod
    def notify(self, event: AuthorizationEvent) -> None:
        """
        Deliver one event.

        Args:
            event: The lifecycle event to deliver

        Implementations may raise; the lifecycle manager logs dispatch
        failures without undoing the committed transition.
        """
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes events to the application log. Default when no webhook is configured."""

    def notify(self, event: AuthorizationEvent) -> None:
        logger.info(
            f"Authorization event: type={event.event_type.value}, "
            f"authorization_id={event.authorization_id}, status={event.status}, "
            f"recipient={event.recipient_email or '-'}, payload={sanitize_log_data(event.payload)}"
        )


class RecordingNotificationDispatcher(NotificationDispatcher):
    """Keeps events in memory (tests and local tooling)."""

    def __init__(self):
        self.events: List[AuthorizationEvent] = []

    def notify(self, event: AuthorizationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[AuthorizationEventType]:
        return [event.event_type for event in self.events]


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs events as JSON to a webhook, signed with HMAC-SHA256 when a secret is set."""

    def __init__(self, url: str, secret: Optional[str] = None, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._client = client

    def sign(self, body: bytes) -> Optional[str]:
        if not self.secret:
            return None
        return hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    def notify(self, event: AuthorizationEvent) -> None:
        body = json.dumps(event.to_dict(), sort_keys=True).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Event-Type": event.event_type.value,
        }
        signature = self.sign(body)
        if signature:
            headers["X-Signature-SHA256"] = signature

        if self._client is not None:
            response = self._client.post(self.url, content=body, headers=headers)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, content=body, headers=headers)
        response.raise_for_status()
        logger.debug(f"Webhook delivered: type={event.event_type.value}, authorization_id={event.authorization_id}")


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dispatcher selected from configuration (FastAPI dependency)."""
    if config.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationDispatcher(
            url=config.NOTIFICATION_WEBHOOK_URL,
            secret=config.NOTIFICATION_WEBHOOK_SECRET,
        )
    return LoggingNotificationDispatcher()
