# app/services/cancellation_policy.py
"""
Cancellation window rules.

A session may be cancelled while it still holds a slot (pending or approved)
and the scheduled start is more than ``CANCELLATION_WINDOW_HOURS`` away.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from app.config import settings
from app.exceptions import CancellationWindowException, PolicyException
from app.models.session import COMMITTED_STATUSES, Session
from app.utils.clock import ensure_utc, utcnow


def cancellation_window() -> timedelta:
    return timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)


def can_cancel(session: Session, now: Optional[datetime] = None) -> Tuple[bool, str]:
    """
    Check whether a session may be cancelled at ``now``.

    Returns:
        Tuple of (allowed, reason)
    """
    now = ensure_utc(now) or utcnow()

    if session.status not in COMMITTED_STATUSES:
        return (False, f"Session is already {session.status.value}")

    if session.scheduled_start - now <= cancellation_window():
        return (False, "Too close to the scheduled start to cancel")

    return (True, "Can cancel")


def ensure_cancellable(session: Session, now: Optional[datetime] = None) -> None:
    """Raise a PolicyException unless ``can_cancel`` passes."""
    now = ensure_utc(now) or utcnow()
    allowed, reason = can_cancel(session, now)
    if allowed:
        return

    if session.status not in COMMITTED_STATUSES:
        raise PolicyException(reason, code="NOT_CANCELLABLE")

    hours_until_start = (session.scheduled_start - now).total_seconds() / 3600
    raise CancellationWindowException(
        window_hours=settings.CANCELLATION_WINDOW_HOURS,
        hours_until_start=hours_until_start,
    )
