# app/services/state_machine.py
"""
Session State Machine

The only code allowed to change ``Session.status``. Each legal move is one
row of ``TRANSITIONS``; anything not listed there is a conflict regardless of
who asks. Capability checks (who may perform a move) are part of the same
table, so routes never compare user ids against session fields themselves.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from app.exceptions import (
    ForbiddenException,
    IllegalTransitionException,
    PolicyException,
    RatingNotAllowedException,
    ValidationException,
)
from app.models.session import (
    ActorRole,
    CancelledBy,
    Session,
    SessionStatus,
    SessionStatusChange,
)
from app.services import cancellation_policy
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class SessionAction(str, enum.Enum):
    REQUEST = "request"
    APPROVE = "approve"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"
    NO_SHOW = "no_show"


PARTICIPANTS = frozenset({ActorRole.REQUESTER, ActorRole.PROVIDER})
PROVIDER_ONLY = frozenset({ActorRole.PROVIDER})
OPERATOR_ONLY = frozenset({ActorRole.OPERATOR, ActorRole.SYSTEM})


@dataclass(frozen=True)
class Transition:
    action: SessionAction
    source: SessionStatus
    target: SessionStatus
    actors: FrozenSet[ActorRole]


TRANSITIONS: Dict[Tuple[SessionAction, SessionStatus], Transition] = {
    (t.action, t.source): t
    for t in (
        Transition(SessionAction.APPROVE, SessionStatus.PENDING, SessionStatus.APPROVED, PROVIDER_ONLY),
        Transition(SessionAction.DECLINE, SessionStatus.PENDING, SessionStatus.DECLINED, PROVIDER_ONLY),
        Transition(SessionAction.CANCEL, SessionStatus.PENDING, SessionStatus.CANCELLED, PARTICIPANTS),
        Transition(SessionAction.CANCEL, SessionStatus.APPROVED, SessionStatus.CANCELLED, PARTICIPANTS),
        Transition(SessionAction.COMPLETE, SessionStatus.APPROVED, SessionStatus.COMPLETED, OPERATOR_ONLY),
        Transition(SessionAction.NO_SHOW, SessionStatus.APPROVED, SessionStatus.NO_SHOW, OPERATOR_ONLY),
    )
}


# ======================
# CAPABILITIES
# ======================

def participant_role(session: Session, actor_id: Optional[int]) -> Optional[ActorRole]:
    """Which side of the session ``actor_id`` is on; None for outsiders."""
    if actor_id is None:
        return None
    if actor_id == session.provider_id:
        return ActorRole.PROVIDER
    if actor_id == session.requester_id:
        return ActorRole.REQUESTER
    return None


def resolve_participant_role(session: Session, actor_id: int) -> ActorRole:
    """Like ``participant_role`` but refuses outsiders."""
    role = participant_role(session, actor_id)
    if role is None:
        raise ForbiddenException(
            "Not a participant in this session",
            details={"session_id": session.id},
        )
    return role


def find_transition(session: Session, action: SessionAction) -> Transition:
    transition = TRANSITIONS.get((action, session.status))
    if transition is None:
        raise IllegalTransitionException(action.value, session.status.value)
    return transition


def allowed_actions(session: Session, actor_role: ActorRole) -> list:
    """Actions ``actor_role`` could attempt right now (guards not evaluated)."""
    return [
        t.action.value
        for (_, source), t in TRANSITIONS.items()
        if source == session.status and actor_role in t.actors
    ]


# ======================
# SIDE EFFECTS
# ======================

def _on_approve(session: Session, now: datetime, **payload) -> None:
    session.approved_at = now
    if payload.get("meeting_link"):
        session.meeting_link = payload["meeting_link"]
    _record_response(session, now, payload.get("response_message"))


def _on_decline(session: Session, now: datetime, **payload) -> None:
    session.declined_at = now
    _record_response(session, now, payload.get("response_message"))


def _on_cancel(session: Session, now: datetime, **payload) -> None:
    actor_role = payload["actor_role"]
    # Exactly one decision timestamp survives; the approval stays in history.
    session.approved_at = None
    session.cancelled_at = now
    session.cancelled_by = (
        CancelledBy(actor_role.value) if actor_role in PARTICIPANTS else CancelledBy.SYSTEM
    )
    session.cancellation_reason = payload.get("note") or "No reason provided"


def _on_complete(session: Session, now: datetime, **payload) -> None:
    actual_start = ensure_utc(payload.get("actual_start")) or session.scheduled_start
    actual_end = ensure_utc(payload.get("actual_end")) or now
    if actual_end <= actual_start:
        raise ValidationException(
            "actual_end must be after actual_start",
            details={
                "actual_start": actual_start.isoformat(),
                "actual_end": actual_end.isoformat(),
            },
        )
    session.actual_start = actual_start
    session.actual_end = actual_end
    session.actual_duration_minutes = round((actual_end - actual_start).total_seconds() / 60)


def _on_no_show(session: Session, now: datetime, **payload) -> None:
    pass


def _record_response(session: Session, now: datetime, message: Optional[str]) -> None:
    if message:
        session.provider_response_message = message
        session.provider_responded_at = now


SIDE_EFFECTS: Dict[SessionAction, Callable[..., None]] = {
    SessionAction.APPROVE: _on_approve,
    SessionAction.DECLINE: _on_decline,
    SessionAction.CANCEL: _on_cancel,
    SessionAction.COMPLETE: _on_complete,
    SessionAction.NO_SHOW: _on_no_show,
}


# ======================
# GUARDS
# ======================

def _ensure_window_elapsed(session: Session, now: datetime) -> None:
    if now < session.scheduled_end:
        raise PolicyException(
            "Session cannot be closed before its scheduled window has elapsed",
            code="WINDOW_NOT_ELAPSED",
            details={"scheduled_end": session.scheduled_end.isoformat()},
        )


def _check_guards(session: Session, action: SessionAction, now: datetime) -> None:
    if action == SessionAction.CANCEL:
        cancellation_policy.ensure_cancellable(session, now)
    elif action in (SessionAction.COMPLETE, SessionAction.NO_SHOW):
        _ensure_window_elapsed(session, now)


# ======================
# ENGINE
# ======================

def apply_transition(
    session: Session,
    action: SessionAction,
    actor_role: Optional[ActorRole],
    *,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
    note: Optional[str] = None,
    meeting_link: Optional[str] = None,
    response_message: Optional[str] = None,
    actual_start: Optional[datetime] = None,
    actual_end: Optional[datetime] = None,
) -> SessionStatusChange:
    """
    Move ``session`` along one row of the transition table.

    Checks run in a fixed order: legality of the move from the current status
    (IllegalTransitionException), the actor's capability (ForbiddenException),
    then guards such as the cancellation window (PolicyException). The session
    is only touched once every check has passed.

    Returns:
        The history entry appended to ``session.status_changes``.
    """
    now = ensure_utc(now) or utcnow()
    transition = find_transition(session, action)

    if actor_role not in transition.actors:
        who = actor_role.value if actor_role else "non-participant"
        raise ForbiddenException(
            f"A {who} cannot {action.value} this session",
            details={"session_id": session.id, "action": action.value},
        )

    _check_guards(session, action, now)

    SIDE_EFFECTS[action](
        session,
        now,
        actor_role=actor_role,
        note=note,
        meeting_link=meeting_link,
        response_message=response_message,
        actual_start=actual_start,
        actual_end=actual_end,
    )

    previous = session.status
    session.status = transition.target
    session.updated_at = now

    change = SessionStatusChange(
        action=action.value,
        from_status=previous.value,
        to_status=transition.target.value,
        actor_role=actor_role.value,
        actor_id=actor_id,
        note=note or response_message,
        changed_at=now,
    )
    session.status_changes.append(change)

    logger.info(
        "Session %s: %s -> %s (%s by %s %s)",
        session.id,
        previous.value,
        transition.target.value,
        action.value,
        actor_role.value,
        actor_id,
    )
    return change


def record_creation(session: Session, actor_id: int, now: datetime) -> SessionStatusChange:
    """First history entry for a freshly requested session."""
    change = SessionStatusChange(
        action=SessionAction.REQUEST.value,
        from_status=None,
        to_status=SessionStatus.PENDING.value,
        actor_role=ActorRole.REQUESTER.value,
        actor_id=actor_id,
        changed_at=now,
    )
    session.status_changes.append(change)
    return change


def record_rating(
    session: Session,
    actor_role: Optional[ActorRole],
    rating: int,
    review: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Attach the requester's one-time rating to a completed session."""
    now = ensure_utc(now) or utcnow()

    if actor_role != ActorRole.REQUESTER:
        raise ForbiddenException(
            "Only the requester of this session can rate it",
            details={"session_id": session.id},
        )
    if session.status != SessionStatus.COMPLETED:
        raise RatingNotAllowedException("Only completed sessions can be rated")
    if session.rating is not None:
        raise RatingNotAllowedException("Session has already been rated")

    session.rating = rating
    session.review = review
    session.rated_at = now
    session.updated_at = now
