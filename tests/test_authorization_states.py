"""
Tests for the authorization status set and transition table.
"""
import itertools
import pytest

from app.core.authorization_states import (
    AuthorizationStatus,
    LifecycleEvent,
    STATUS_GROUPS,
    TERMINAL_STATUSES,
    TRANSITIONS,
    allowed_events,
    is_terminal,
    next_status,
    parse_status,
)


def test_every_pair_outside_the_table_is_invalid():
    for status, event in itertools.product(AuthorizationStatus, LifecycleEvent):
        expected = TRANSITIONS.get((status, event))
        assert next_status(status, event) == expected


def test_terminal_statuses_accept_no_events():
    for status in TERMINAL_STATUSES:
        assert allowed_events(status) == []
        assert is_terminal(status)


def test_happy_paths():
    assert next_status("pending", LifecycleEvent.SUBMIT_VERIFIED) == AuthorizationStatus.PENDING_CLIENT_CONFIRM
    assert next_status("pending", LifecycleEvent.SUBMIT_UNVERIFIED) == AuthorizationStatus.PENDING_ADMIN_REVIEW
    assert next_status("pending_client_confirm", "client_confirm") == AuthorizationStatus.ACTIVE
    assert next_status("pending_client_confirm", "confirmation_timeout") == AuthorizationStatus.PENDING_ADMIN_REVIEW
    assert next_status("pending_admin_review", "admin_approve") == AuthorizationStatus.ACTIVE
    assert next_status("active", "contract_renew") == AuthorizationStatus.ACTIVE


def test_no_reentrant_activation():
    assert next_status("active", LifecycleEvent.ADMIN_APPROVE) is None
    assert next_status("active", LifecycleEvent.CLIENT_CONFIRM) is None
    assert next_status("revoked", LifecycleEvent.REVOKE) is None


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        parse_status("suspended")


def test_status_groups_partition_the_status_set():
    grouped = list(itertools.chain.from_iterable(STATUS_GROUPS.values()))
    assert sorted(grouped) == sorted(AuthorizationStatus)
    assert len(grouped) == len(set(grouped))
