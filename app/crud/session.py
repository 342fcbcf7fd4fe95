# app/crud/session.py
"""
Session query helpers.

Reads only; every status write goes through app.services.state_machine.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config import settings
from app.models.session import (
    COMMITTED_STATUSES,
    ActorRole,
    Session as SessionModel,
    SessionStatus,
    SessionStatusChange,
)


def get_session_by_id(db: Session, session_id: int, *, lock: bool = False) -> Optional[SessionModel]:
    """
    Get a session by its ID.

    Args:
        db: Database session
        session_id: Session identifier
        lock: Take a row lock for the rest of the transaction

    Returns:
        Session object or None if not found
    """
    query = db.query(SessionModel).filter(SessionModel.id == session_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def _scope_to_actor(query, actor_id: int, role: ActorRole):
    if role == ActorRole.REQUESTER:
        return query.filter(SessionModel.requester_id == actor_id)
    if role == ActorRole.PROVIDER:
        return query.filter(SessionModel.provider_id == actor_id)
    # Operators see every session.
    return query


def list_sessions_for_actor(
    db: Session,
    actor_id: int,
    role: ActorRole,
    status: Optional[SessionStatus] = None,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[SessionModel], int]:
    """
    Sessions visible to an actor, newest first.

    Args:
        db: Database session
        actor_id: Requesting user ID
        role: Which side of the session the actor is on
        status: Optional status filter
        limit: Maximum sessions to return
        offset: Number of sessions to skip

    Returns:
        Tuple of (sessions, total matching sessions)
    """
    query = _scope_to_actor(db.query(SessionModel), actor_id, role)
    if status is not None:
        query = query.filter(SessionModel.status == status)

    total = query.count()
    sessions = (
        query.order_by(SessionModel.created_at.desc(), SessionModel.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return (sessions, total)


def list_upcoming_for_actor(
    db: Session,
    actor_id: int,
    role: ActorRole,
    now: datetime,
) -> List[SessionModel]:
    """Committed sessions starting at or after ``now``, soonest first."""
    query = _scope_to_actor(db.query(SessionModel), actor_id, role)
    return (
        query.filter(
            SessionModel.scheduled_start >= now,
            SessionModel.status.in_(list(COMMITTED_STATUSES)),
        )
        .order_by(SessionModel.scheduled_start.asc())
        .all()
    )


def list_pending_requests(db: Session, provider_id: int) -> List[SessionModel]:
    """Requests still awaiting the provider's answer, newest first."""
    return (
        db.query(SessionModel)
        .filter(
            SessionModel.provider_id == provider_id,
            SessionModel.status == SessionStatus.PENDING,
        )
        .order_by(SessionModel.created_at.desc(), SessionModel.id.desc())
        .all()
    )


def list_elapsed_approved(db: Session, now: datetime, limit: Optional[int] = None) -> List[SessionModel]:
    """Approved sessions whose scheduled window has fully elapsed at ``now``."""
    # Anything ending by ``now`` started at least the minimum duration earlier.
    latest_possible_start = now - timedelta(minutes=settings.MIN_SESSION_MINUTES)
    candidates = (
        db.query(SessionModel)
        .filter(
            SessionModel.status == SessionStatus.APPROVED,
            SessionModel.scheduled_start <= latest_possible_start,
        )
        .order_by(SessionModel.scheduled_start.asc())
        .all()
    )
    elapsed = [s for s in candidates if s.scheduled_end <= now]
    if limit is not None:
        elapsed = elapsed[:limit]
    return elapsed


def get_status_history(db: Session, session_id: int) -> List[SessionStatusChange]:
    return (
        db.query(SessionStatusChange)
        .filter(SessionStatusChange.session_id == session_id)
        .order_by(SessionStatusChange.id.asc())
        .all()
    )
