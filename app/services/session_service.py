# app/services/session_service.py
"""
Session Booking Service

Entry points for every booking operation. Each mutating operation is one
unit of work run through ``with_store_retry``: it validates input, loads and
locks what it needs, delegates the status change to the state machine,
commits, and only then emits a best-effort notification.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.crud import session as session_crud
from app.crud import user as user_crud
from app.database import with_store_retry
from app.exceptions import (
    ConflictException,
    DomainException,
    NotFoundException,
    ValidationException,
)
from app.models.session import (
    ActorRole,
    Session as SessionModel,
    SessionStatus,
    SessionStatusChange,
)
from app.services import conflict_detector, notification_service, rating_aggregator, state_machine
from app.services.state_machine import SessionAction
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


RESPONSE_ACTIONS = {
    "approve": SessionAction.APPROVE,
    "decline": SessionAction.DECLINE,
}


# ======================
# INPUT VALIDATION
# ======================

def _validate_text(
    value: Optional[str],
    field: str,
    *,
    min_length: int = 0,
    max_length: int,
    required: bool = True,
) -> Optional[str]:
    if value is None or not str(value).strip():
        if required:
            raise ValidationException(f"{field} is required", details={"field": field})
        return None
    cleaned = str(value).strip()
    if len(cleaned) < min_length or len(cleaned) > max_length:
        raise ValidationException(
            f"{field} must be between {min_length} and {max_length} characters",
            details={"field": field, "length": len(cleaned)},
        )
    return cleaned


def _validate_agenda(agenda: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
    if not agenda:
        return []
    items = []
    for index, entry in enumerate(agenda):
        if isinstance(entry, str):
            text, done = entry, False
        elif isinstance(entry, dict):
            text, done = entry.get("text"), bool(entry.get("done", False))
        else:
            text, done = getattr(entry, "text", None), bool(getattr(entry, "done", False))
        cleaned = _validate_text(text, f"agenda[{index}].text", min_length=1, max_length=200)
        items.append({"text": cleaned, "done": done})
    return items


def _validate_duration(duration_minutes: Any) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationException(
            "duration_minutes must be an integer",
            details={"field": "duration_minutes"},
        )
    if not settings.MIN_SESSION_MINUTES <= duration_minutes <= settings.MAX_SESSION_MINUTES:
        raise ValidationException(
            f"Duration must be between {settings.MIN_SESSION_MINUTES} and "
            f"{settings.MAX_SESSION_MINUTES} minutes",
            details={"field": "duration_minutes", "value": duration_minutes},
        )
    return duration_minutes


def _validate_rating(rating: Any) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationException(
            "Rating must be between 1 and 5",
            details={"field": "rating", "value": rating},
        )
    return rating


def _parse_role(role: Union[ActorRole, str]) -> ActorRole:
    try:
        parsed = ActorRole(role)
    except ValueError:
        raise ValidationException(f"Unknown role: {role}", details={"field": "role"})
    if parsed == ActorRole.SYSTEM:
        raise ValidationException("System role cannot list sessions", details={"field": "role"})
    return parsed


def _parse_status(status: Union[SessionStatus, str, None]) -> Optional[SessionStatus]:
    if status is None or status == "":
        return None
    try:
        return SessionStatus(status)
    except ValueError:
        raise ValidationException(
            f"Unknown session status: {status}",
            details={"field": "status", "allowed": [s.value for s in SessionStatus]},
        )


# ======================
# LOOKUP HELPERS
# ======================

def _get_or_404(db: Session, session_id: int, *, lock: bool = False) -> SessionModel:
    session = session_crud.get_session_by_id(db, session_id, lock=lock)
    if session is None:
        raise NotFoundException("Session not found", details={"session_id": session_id})
    return session


def _ensure_can_view(session: SessionModel, actor_id: int, role: Optional[ActorRole]) -> None:
    if role == ActorRole.OPERATOR:
        return
    state_machine.resolve_participant_role(session, actor_id)


# ======================
# CREATE SESSION
# ======================

def create_session(
    db: Session,
    *,
    requester_id: int,
    provider_id: int,
    title: str,
    description: str,
    topic: str,
    scheduled_start: datetime,
    duration_minutes: int,
    agenda: Optional[Sequence[Any]] = None,
    timezone: str = "UTC",
    now: Optional[datetime] = None,
) -> SessionModel:
    """
    Book a new session in ``pending``.

    The provider row is locked before the overlap check, and the check is
    repeated after the insert is flushed, so two bookings for the same slot
    cannot both commit.

    Raises:
        ValidationException: bad input, self-booking, inactive provider
        NotFoundException: unknown provider
        BookingConflictException: the slot overlaps a committed session
    """
    now = ensure_utc(now) or utcnow()

    title = _validate_text(title, "title", min_length=5, max_length=200)
    description = _validate_text(description, "description", min_length=10, max_length=1000)
    topic = _validate_text(topic, "topic", min_length=3, max_length=100)
    duration_minutes = _validate_duration(duration_minutes)
    agenda_items = _validate_agenda(agenda)
    timezone = _validate_text(timezone, "timezone", max_length=64, required=False) or "UTC"

    if scheduled_start is None:
        raise ValidationException("scheduled_start is required", details={"field": "scheduled_start"})
    scheduled_start = ensure_utc(scheduled_start)
    if scheduled_start <= now:
        raise ValidationException(
            "Scheduled start must be in the future",
            details={"field": "scheduled_start", "value": scheduled_start.isoformat()},
        )
    if requester_id == provider_id:
        raise ValidationException("Cannot book a session with yourself")

    def _create() -> SessionModel:
        provider = conflict_detector.require_provider(db, provider_id)
        if provider.role != ActorRole.PROVIDER.value:
            raise NotFoundException("Provider not found", details={"provider_id": provider_id})
        if not provider.is_active:
            raise ValidationException(
                "Provider is not currently active",
                details={"provider_id": provider_id},
            )

        conflict_detector.ensure_slot_available(db, provider_id, scheduled_start, duration_minutes)

        session = SessionModel(
            requester_id=requester_id,
            provider_id=provider_id,
            title=title,
            description=description,
            topic=topic,
            agenda=agenda_items,
            scheduled_start=scheduled_start,
            duration_minutes=duration_minutes,
            timezone=timezone,
            status=SessionStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        db.add(session)
        state_machine.record_creation(session, requester_id, now)
        db.flush()

        # The flush holds the write lock; re-check against anything committed meanwhile.
        conflict_detector.ensure_slot_available(
            db,
            provider_id,
            scheduled_start,
            duration_minutes,
            exclude_session_id=session.id,
        )

        rating_aggregator.recompute_provider_reputation(db, provider_id)
        db.commit()
        db.refresh(session)
        return session

    session = _with_reputation_retry(db, "create_session", _create)
    logger.info(
        "Session %s requested by %s with provider %s at %s",
        session.id,
        requester_id,
        provider_id,
        session.scheduled_start.isoformat(),
    )
    notification_service.emit_session_event(db, session, "session_requested", actor_id=requester_id)
    return session


# ======================
# READS
# ======================

def list_sessions(
    db: Session,
    *,
    actor_id: int,
    role: Union[ActorRole, str],
    status: Union[SessionStatus, str, None] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Tuple[List[SessionModel], int]:
    """
    Page through an actor's sessions, newest first.

    Returns:
        Tuple of (sessions on this page, total matching sessions)
    """
    role = _parse_role(role)
    status = _parse_status(status)
    limit = settings.DEFAULT_PAGE_LIMIT if limit is None else limit
    if page < 1 or limit < 1:
        raise ValidationException("page and limit must be positive", details={"page": page, "limit": limit})
    limit = min(limit, settings.MAX_PAGE_LIMIT)

    return session_crud.list_sessions_for_actor(
        db,
        actor_id,
        role,
        status=status,
        limit=limit,
        offset=(page - 1) * limit,
    )


def list_upcoming_sessions(
    db: Session,
    *,
    actor_id: int,
    role: Union[ActorRole, str],
    now: Optional[datetime] = None,
) -> List[SessionModel]:
    now = ensure_utc(now) or utcnow()
    return session_crud.list_upcoming_for_actor(db, actor_id, _parse_role(role), now)


def list_pending_requests(db: Session, *, provider_id: int) -> List[SessionModel]:
    return session_crud.list_pending_requests(db, provider_id)


def get_session(
    db: Session,
    *,
    actor_id: int,
    session_id: int,
    role: Union[ActorRole, str, None] = None,
) -> SessionModel:
    """Participants (and operators) only; everyone else gets ForbiddenException."""
    session = _get_or_404(db, session_id)
    _ensure_can_view(session, actor_id, _parse_role(role) if role else None)
    return session


def get_session_history(
    db: Session,
    *,
    actor_id: int,
    session_id: int,
    role: Union[ActorRole, str, None] = None,
) -> List[SessionStatusChange]:
    session = get_session(db, actor_id=actor_id, session_id=session_id, role=role)
    return session_crud.get_status_history(db, session.id)


def get_provider_reputation(db: Session, *, provider_id: int) -> Dict[str, Any]:
    provider = user_crud.get_provider(db, provider_id)
    if provider is None:
        raise NotFoundException("Provider not found", details={"provider_id": provider_id})
    return rating_aggregator.get_reputation_summary(db, provider_id)


# ======================
# TRANSITIONS
# ======================

def _transition(
    db: Session,
    *,
    op_name: str,
    session_id: int,
    action: SessionAction,
    actor_id: Optional[int],
    actor_role: Optional[ActorRole] = None,
    event_type: str,
    now: Optional[datetime],
    refresh_reputation: bool = False,
    **payload: Any,
) -> SessionModel:
    now = ensure_utc(now) or utcnow()

    def _apply() -> SessionModel:
        session = _get_or_404(db, session_id, lock=True)
        role = actor_role if actor_role is not None else state_machine.participant_role(session, actor_id)
        state_machine.apply_transition(
            session,
            action,
            role,
            actor_id=actor_id,
            now=now,
            **payload,
        )
        if refresh_reputation:
            rating_aggregator.recompute_provider_reputation(db, session.provider_id)
        db.commit()
        db.refresh(session)
        return session

    if refresh_reputation:
        session = _with_reputation_retry(db, op_name, _apply)
    else:
        session = with_store_retry(db, op_name, _apply)
    notification_service.emit_session_event(db, session, event_type, actor_id=actor_id)
    return session


def respond_to_request(
    db: Session,
    *,
    provider_id: int,
    session_id: int,
    action: str,
    message: Optional[str] = None,
    meeting_link: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionModel:
    """
    Provider's answer to a pending request: ``approve`` or ``decline``.

    Raises:
        ValidationException: unknown action or oversized text
        NotFoundException: unknown session
        IllegalTransitionException: session is no longer pending
        ForbiddenException: caller is not this session's provider
    """
    session_action = RESPONSE_ACTIONS.get(action)
    if session_action is None:
        raise ValidationException(
            "action must be 'approve' or 'decline'",
            details={"field": "action", "value": action},
        )
    message = _validate_text(message, "message", max_length=1000, required=False)
    meeting_link = _validate_text(meeting_link, "meeting_link", max_length=500, required=False)
    if session_action == SessionAction.DECLINE:
        meeting_link = None

    return _transition(
        db,
        op_name=f"{session_action.value}_session",
        session_id=session_id,
        action=session_action,
        actor_id=provider_id,
        event_type="session_approved" if session_action == SessionAction.APPROVE else "session_declined",
        now=now,
        response_message=message,
        meeting_link=meeting_link,
    )


def cancel_session(
    db: Session,
    *,
    actor_id: int,
    session_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionModel:
    """Either participant may cancel while the cancellation policy allows it."""
    reason = _validate_text(reason, "reason", max_length=500, required=False)
    return _transition(
        db,
        op_name="cancel_session",
        session_id=session_id,
        action=SessionAction.CANCEL,
        actor_id=actor_id,
        event_type="session_cancelled",
        now=now,
        note=reason,
    )


def complete_session(
    db: Session,
    *,
    session_id: int,
    actual_start: Optional[datetime] = None,
    actual_end: Optional[datetime] = None,
    operator_id: Optional[int] = None,
    actor_role: ActorRole = ActorRole.OPERATOR,
    now: Optional[datetime] = None,
) -> SessionModel:
    """Operator/scheduler closes an approved session once its window has elapsed."""
    return _transition(
        db,
        op_name="complete_session",
        session_id=session_id,
        action=SessionAction.COMPLETE,
        actor_id=operator_id,
        actor_role=actor_role,
        event_type="session_completed",
        now=now,
        refresh_reputation=True,
        actual_start=actual_start,
        actual_end=actual_end,
    )


def mark_no_show(
    db: Session,
    *,
    session_id: int,
    operator_id: Optional[int] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionModel:
    note = _validate_text(note, "note", max_length=500, required=False)
    return _transition(
        db,
        op_name="mark_no_show",
        session_id=session_id,
        action=SessionAction.NO_SHOW,
        actor_id=operator_id,
        actor_role=ActorRole.OPERATOR,
        event_type="session_no_show",
        now=now,
        note=note,
    )


def complete_elapsed_sessions(
    db: Session,
    *,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[int]:
    """
    Scheduler sweep: complete every approved session whose window has ended.

    Sessions that changed underneath the sweep are skipped and logged.

    Returns:
        IDs of the sessions that were completed
    """
    now = ensure_utc(now) or utcnow()
    due_ids = [s.id for s in session_crud.list_elapsed_approved(db, now, limit=limit)]

    completed = []
    for session_id in due_ids:
        try:
            complete_session(
                db,
                session_id=session_id,
                actor_role=ActorRole.SYSTEM,
                now=now,
            )
            completed.append(session_id)
        except DomainException as exc:
            logger.warning("Sweep skipped session %s: %s", session_id, exc.message)

    logger.info("Sweep completed %s of %s elapsed sessions", len(completed), len(due_ids))
    return completed


# ======================
# RATING
# ======================

def rate_session(
    db: Session,
    *,
    requester_id: int,
    session_id: int,
    rating: int,
    review: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionModel:
    """
    Record the requester's one-time rating and refresh the provider's reputation.

    Raises:
        ValidationException: rating outside 1..5 or review too long
        NotFoundException: unknown session
        ForbiddenException: caller is not this session's requester
        RatingNotAllowedException: not completed, or already rated
    """
    now = ensure_utc(now) or utcnow()
    rating = _validate_rating(rating)
    review = _validate_text(review, "review", max_length=1000, required=False)

    def _rate() -> SessionModel:
        session = _get_or_404(db, session_id, lock=True)
        role = state_machine.participant_role(session, requester_id)
        state_machine.record_rating(session, role, rating, review, now=now)
        rating_aggregator.recompute_provider_reputation(db, session.provider_id)
        db.commit()
        db.refresh(session)
        return session

    session = _with_reputation_retry(db, "rate_session", _rate)
    logger.info("Session %s rated %s by requester %s", session.id, rating, requester_id)
    notification_service.emit_session_event(db, session, "session_rated", actor_id=requester_id)
    return session


def _with_reputation_retry(db: Session, op_name: str, func):
    """
    Run ``func`` through the store retry, re-running it when the reputation
    row's version moved underneath us.
    """
    attempts = max(1, settings.REPUTATION_UPDATE_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            return with_store_retry(db, op_name, func)
        except StaleDataError as exc:
            if attempt >= attempts:
                raise ConflictException(
                    "Provider reputation is being updated concurrently, please retry",
                    code="REPUTATION_CONTENTION",
                    details={"operation": op_name, "attempts": attempts},
                ) from exc
            logger.warning(
                "Reputation version conflict during %s (attempt %s/%s), retrying",
                op_name,
                attempt,
                attempts,
            )
