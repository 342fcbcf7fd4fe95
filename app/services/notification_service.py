from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.models.session import Session as SessionModel
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


EVENT_MESSAGES = {
    "session_requested": "New session request: {title}",
    "session_approved": "Your session '{title}' was approved",
    "session_declined": "Your session request '{title}' was declined",
    "session_cancelled": "Session '{title}' was cancelled",
    "session_completed": "Session '{title}' was marked completed",
    "session_no_show": "Session '{title}' was marked as a no-show",
    "session_rated": "You received a {rating}-star rating for '{title}'",
}


def _recipients_for(session: SessionModel, event_type: str, actor_id: Optional[int]) -> List[int]:
    if event_type in ("session_requested", "session_rated"):
        return [session.provider_id]
    if event_type in ("session_approved", "session_declined"):
        return [session.requester_id]
    if event_type == "session_cancelled":
        if actor_id == session.requester_id:
            return [session.provider_id]
        if actor_id == session.provider_id:
            return [session.requester_id]
    return [session.requester_id, session.provider_id]


def create_notification(
    db: Session,
    *,
    recipient_id: int,
    actor_id: Optional[int],
    session_id: Optional[int],
    event_type: str,
    message: str,
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        actor_id=actor_id,
        session_id=session_id,
        event_type=event_type,
        message=message,
    )
    db.add(notification)
    db.flush()
    return notification


def emit_session_event(
    db: Session,
    session: SessionModel,
    event_type: str,
    *,
    actor_id: Optional[int] = None,
) -> List[Notification]:
    """
    Best-effort outbox write for a committed session event.
    Failures are logged and never propagate to the caller.
    """
    try:
        template = EVENT_MESSAGES.get(event_type, "Session '{title}' was updated")
        message = template.format(title=session.title, rating=session.rating)
        created = [
            create_notification(
                db,
                recipient_id=recipient_id,
                actor_id=actor_id,
                session_id=session.id,
                event_type=event_type,
                message=message[:500],
            )
            for recipient_id in _recipients_for(session, event_type, actor_id)
        ]
        db.commit()
        return created
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "Notification emission failed (session_id=%s, event=%s): %s",
            getattr(session, "id", None),
            event_type,
            exc,
        )
        return []


def list_pending_notifications(db: Session, *, limit: int = 100) -> List[Notification]:
    """Outbox rows the delivery collaborator has not picked up yet, oldest first."""
    return (
        db.query(Notification)
        .filter(Notification.dispatched_at.is_(None))
        .order_by(Notification.id.asc())
        .limit(limit)
        .all()
    )


def mark_dispatched(
    db: Session,
    *,
    notification_ids: Iterable[int],
    now: Optional[datetime] = None,
) -> int:
    ids = list(notification_ids)
    if not ids:
        return 0
    updated = db.query(Notification).filter(
        Notification.id.in_(ids),
        Notification.dispatched_at.is_(None),
    ).update({"dispatched_at": ensure_utc(now) or utcnow()}, synchronize_session=False)
    db.commit()
    return int(updated)
