# app/services/conflict_detector.py
"""
Conflict Detector

Decides whether a proposed slot collides with a provider's committed
(pending or approved) sessions. Intervals are half-open, so a session ending
at 10:00 does not collide with one starting at 10:00.

Callers run ``ensure_slot_available`` twice inside the transaction that
inserts the new session: once after ``lock_provider`` has taken the provider's
row lock, and again right after the insert is flushed, excluding the new row.
The row lock serializes bookings on PostgreSQL. SQLite ignores FOR UPDATE and
only locks at the first write, so there the post-flush check is what catches a
booking that committed in between.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.exceptions import BookingConflictException, NotFoundException
from app.models.session import COMMITTED_STATUSES, Session as SessionModel
from app.models.user import User

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def lock_provider(db: Session, provider_id: int) -> Optional[User]:
    """
    Load the provider row with ``SELECT ... FOR UPDATE``.

    The lock is held until the surrounding transaction ends, so two bookings
    for the same provider cannot both pass the overlap check.
    """
    return (
        db.query(User)
        .filter(User.id == provider_id)
        .with_for_update()
        .first()
    )


def find_conflicting_sessions(
    db: Session,
    provider_id: int,
    start: datetime,
    duration_minutes: int,
    exclude_session_id: Optional[int] = None,
) -> List[SessionModel]:
    """
    Return the provider's committed sessions overlapping ``[start, start+duration)``.

    The query narrows candidates to sessions starting inside the window that
    could possibly reach ``start``, bounded by the longest committed session
    actually stored; the exact half-open test runs in Python so it does not
    depend on dialect-specific interval arithmetic.
    """
    committed = (
        SessionModel.provider_id == provider_id,
        SessionModel.status.in_(list(COMMITTED_STATUSES)),
    )
    if exclude_session_id is not None:
        committed += (SessionModel.id != exclude_session_id,)

    longest = db.query(func.max(SessionModel.duration_minutes)).filter(*committed).scalar()
    if longest is None:
        return []

    end = start + timedelta(minutes=duration_minutes)
    earliest_possible_start = start - timedelta(minutes=longest)

    query = db.query(SessionModel).filter(
        *committed,
        SessionModel.scheduled_start < end,
        SessionModel.scheduled_start > earliest_possible_start,
    )
    candidates = query.order_by(SessionModel.scheduled_start.asc()).all()
    return [
        s for s in candidates
        if intervals_overlap(start, end, s.scheduled_start, s.scheduled_end)
    ]


def ensure_slot_available(
    db: Session,
    provider_id: int,
    start: datetime,
    duration_minutes: int,
    exclude_session_id: Optional[int] = None,
) -> None:
    """Raise BookingConflictException naming the first colliding session."""
    conflicts = find_conflicting_sessions(
        db, provider_id, start, duration_minutes, exclude_session_id=exclude_session_id
    )
    if not conflicts:
        return

    first = conflicts[0]
    logger.warning(
        "Booking conflict for provider %s at %s (%s min): collides with session %s",
        provider_id,
        start.isoformat(),
        duration_minutes,
        first.id,
    )
    raise BookingConflictException(
        conflicting_session_id=first.id,
        start=first.scheduled_start.isoformat(),
        end=first.scheduled_end.isoformat(),
    )


def require_provider(db: Session, provider_id: int) -> User:
    """Lock and return the provider, or raise NotFoundException."""
    provider = lock_provider(db, provider_id)
    if provider is None:
        raise NotFoundException(
            "Provider not found",
            details={"provider_id": provider_id},
        )
    return provider
