"""
Tests for notification dispatchers.
"""
import hashlib
import hmac
import json
import logging

import httpx
import pytest

from app.services.notification_dispatcher import (
    AuthorizationEvent,
    AuthorizationEventType,
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
)
from tests.conftest import NOW


def make_event(**payload):
    return AuthorizationEvent(
        event_type=AuthorizationEventType.CLIENT_CONFIRMATION_REQUESTED,
        authorization_id=11,
        agency_company_id=1,
        client_company_id=2,
        status="pending_client_confirm",
        occurred_at=NOW,
        recipient_email="hr@acme.example",
        payload=payload,
    )


def test_webhook_posts_signed_json():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    dispatcher = WebhookNotificationDispatcher("https://hooks.example/agency", secret="s3cret", client=client)
    dispatcher.notify(make_event(expires_at="2026-03-08T12:00:00+00:00"))

    request = captured[0]
    assert request.headers["X-Event-Type"] == "client_confirmation_requested"
    expected = hmac.new(b"s3cret", request.content, hashlib.sha256).hexdigest()
    assert request.headers["X-Signature-SHA256"] == expected

    body = json.loads(request.content)
    assert body["authorization_id"] == 11
    assert body["occurred_at"] == NOW.isoformat()
    assert body["payload"]["expires_at"] == "2026-03-08T12:00:00+00:00"


def test_webhook_without_secret_is_unsigned():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookNotificationDispatcher("https://hooks.example/agency", client=client).notify(make_event())
    assert "X-Signature-SHA256" not in captured[0].headers


def test_webhook_error_status_raises():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    dispatcher = WebhookNotificationDispatcher("https://hooks.example/agency", client=client)
    with pytest.raises(httpx.HTTPStatusError):
        dispatcher.notify(make_event())


def test_logging_dispatcher_redacts_confirmation_url(caplog):
    with caplog.at_level(logging.INFO, logger="app.services.notification_dispatcher"):
        LoggingNotificationDispatcher().notify(
            make_event(confirmation_url="https://app.example/confirm?token=abc123", detail="GST matched")
        )
    assert "abc123" not in caplog.text
    assert "***REDACTED***" in caplog.text
    assert "GST matched" in caplog.text
