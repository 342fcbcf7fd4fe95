from datetime import datetime, timedelta, UTC

import pytest

from app.exceptions import CancellationWindowException, PolicyException
from app.models.session import Session, SessionStatus
from app.services import cancellation_policy


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _session(status, starts_in):
    return Session(
        id=5,
        requester_id=1,
        provider_id=2,
        scheduled_start=NOW + starts_in,
        duration_minutes=60,
        status=status,
    )


@pytest.mark.parametrize("status", [SessionStatus.PENDING, SessionStatus.APPROVED])
def test_cancellable_when_more_than_two_hours_out(status):
    session = _session(status, timedelta(hours=2, seconds=1))

    allowed, reason = cancellation_policy.can_cancel(session, NOW)

    assert allowed is True
    assert reason == "Can cancel"
    cancellation_policy.ensure_cancellable(session, NOW)


@pytest.mark.parametrize("starts_in", [
    timedelta(hours=2),
    timedelta(minutes=90),
    timedelta(minutes=1),
    timedelta(hours=-1),
])
def test_inside_window_is_rejected(starts_in):
    session = _session(SessionStatus.APPROVED, starts_in)

    allowed, _ = cancellation_policy.can_cancel(session, NOW)
    assert allowed is False

    with pytest.raises(CancellationWindowException) as exc_info:
        cancellation_policy.ensure_cancellable(session, NOW)

    assert exc_info.value.status_code == 422
    assert exc_info.value.details["window_hours"] == 2


@pytest.mark.parametrize("status", [
    SessionStatus.DECLINED,
    SessionStatus.CANCELLED,
    SessionStatus.COMPLETED,
    SessionStatus.NO_SHOW,
])
def test_terminal_sessions_are_not_cancellable(status):
    session = _session(status, timedelta(days=2))

    allowed, reason = cancellation_policy.can_cancel(session, NOW)
    assert allowed is False
    assert status.value in reason

    with pytest.raises(PolicyException) as exc_info:
        cancellation_policy.ensure_cancellable(session, NOW)
    assert exc_info.value.code == "NOT_CANCELLABLE"


def test_naive_now_is_treated_as_utc():
    session = _session(SessionStatus.PENDING, timedelta(hours=3))

    allowed, _ = cancellation_policy.can_cancel(session, NOW.replace(tzinfo=None))

    assert allowed is True


def test_window_follows_settings(monkeypatch):
    monkeypatch.setattr(cancellation_policy.settings, "CANCELLATION_WINDOW_HOURS", 24)
    session = _session(SessionStatus.APPROVED, timedelta(hours=12))

    allowed, _ = cancellation_policy.can_cancel(session, NOW)

    assert allowed is False
