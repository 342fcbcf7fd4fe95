"""
State machine tests: the transition table is closed, capabilities are checked
after legality, and side effects only happen on success.
"""

from datetime import datetime, timedelta, UTC

import pytest

from app.exceptions import (
    ForbiddenException,
    IllegalTransitionException,
    PolicyException,
    RatingNotAllowedException,
    ValidationException,
)
from app.models.session import ActorRole, CancelledBy, Session, SessionStatus
from app.services import state_machine
from app.services.state_machine import SessionAction, TRANSITIONS


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
REQUESTER_ID = 1
PROVIDER_ID = 2


def _session(status, start=None, duration=60):
    return Session(
        id=10,
        requester_id=REQUESTER_ID,
        provider_id=PROVIDER_ID,
        title="Graph theory basics",
        description="Shortest paths and traversals",
        topic="Graphs",
        agenda=[],
        scheduled_start=start or NOW + timedelta(days=2),
        duration_minutes=duration,
        timezone="UTC",
        status=status,
        created_at=NOW,
    )


ILLEGAL_PAIRS = [
    (action, status)
    for action in SessionAction
    if action != SessionAction.REQUEST
    for status in SessionStatus
    if (action, status) not in TRANSITIONS
]


@pytest.mark.parametrize("action,status", ILLEGAL_PAIRS)
@pytest.mark.parametrize("role", list(ActorRole) + [None])
def test_unlisted_transitions_always_conflict(action, status, role):
    session = _session(status)

    with pytest.raises(IllegalTransitionException) as exc_info:
        state_machine.apply_transition(session, action, role, now=NOW)

    assert exc_info.value.status_code == 409
    assert session.status == status
    assert session.status_changes == []


def test_table_has_exactly_the_six_legal_moves():
    moves = {(a.value, s.value, t.target.value) for (a, s), t in TRANSITIONS.items()}
    assert moves == {
        ("approve", "pending", "approved"),
        ("decline", "pending", "declined"),
        ("cancel", "pending", "cancelled"),
        ("cancel", "approved", "cancelled"),
        ("complete", "approved", "completed"),
        ("no_show", "approved", "no-show"),
    }


def test_approve_sets_timestamp_and_link():
    session = _session(SessionStatus.PENDING)

    change = state_machine.apply_transition(
        session,
        SessionAction.APPROVE,
        ActorRole.PROVIDER,
        actor_id=PROVIDER_ID,
        now=NOW,
        meeting_link="https://meet.example.com/abc",
        response_message="See you then",
    )

    assert session.status == SessionStatus.APPROVED
    assert session.approved_at == NOW
    assert session.declined_at is None
    assert session.meeting_link == "https://meet.example.com/abc"
    assert session.provider_response_message == "See you then"
    assert session.provider_responded_at == NOW
    assert change.from_status == "pending"
    assert change.to_status == "approved"
    assert change.actor_role == "provider"


def test_decline_sets_only_declined_at():
    session = _session(SessionStatus.PENDING)

    state_machine.apply_transition(session, SessionAction.DECLINE, ActorRole.PROVIDER, now=NOW)

    assert session.status == SessionStatus.DECLINED
    assert session.declined_at == NOW
    assert session.approved_at is None
    assert session.meeting_link is None


@pytest.mark.parametrize("action", [SessionAction.APPROVE, SessionAction.DECLINE])
@pytest.mark.parametrize("role", [ActorRole.REQUESTER, ActorRole.OPERATOR, None])
def test_only_provider_may_respond(action, role):
    session = _session(SessionStatus.PENDING)

    with pytest.raises(ForbiddenException):
        state_machine.apply_transition(session, action, role, now=NOW)

    assert session.status == SessionStatus.PENDING


@pytest.mark.parametrize("role,expected", [
    (ActorRole.REQUESTER, CancelledBy.REQUESTER),
    (ActorRole.PROVIDER, CancelledBy.PROVIDER),
])
def test_cancel_approved_session_leaves_single_decision_timestamp(role, expected):
    session = _session(SessionStatus.APPROVED)
    session.approved_at = NOW - timedelta(hours=1)

    state_machine.apply_transition(session, SessionAction.CANCEL, role, now=NOW, note="Conflict at work")

    assert session.status == SessionStatus.CANCELLED
    assert session.cancelled_at == NOW
    assert session.cancelled_by == expected
    assert session.cancellation_reason == "Conflict at work"
    assert session.approved_at is None
    assert session.declined_at is None


def test_cancel_without_reason_records_default():
    session = _session(SessionStatus.PENDING)

    state_machine.apply_transition(session, SessionAction.CANCEL, ActorRole.REQUESTER, now=NOW)

    assert session.cancellation_reason == "No reason provided"


def test_operator_cannot_cancel():
    session = _session(SessionStatus.APPROVED)

    with pytest.raises(ForbiddenException):
        state_machine.apply_transition(session, SessionAction.CANCEL, ActorRole.OPERATOR, now=NOW)


def test_cancel_inside_window_is_policy_error():
    session = _session(SessionStatus.APPROVED, start=NOW + timedelta(minutes=90))

    with pytest.raises(PolicyException) as exc_info:
        state_machine.apply_transition(session, SessionAction.CANCEL, ActorRole.REQUESTER, now=NOW)

    assert exc_info.value.code == "CANCELLATION_WINDOW"
    assert session.status == SessionStatus.APPROVED
    assert session.cancelled_at is None


def test_complete_defaults_actual_times():
    start = NOW - timedelta(hours=2)
    session = _session(SessionStatus.APPROVED, start=start, duration=60)

    state_machine.apply_transition(session, SessionAction.COMPLETE, ActorRole.OPERATOR, now=NOW)

    assert session.status == SessionStatus.COMPLETED
    assert session.actual_start == start
    assert session.actual_end == NOW
    assert session.actual_duration_minutes == 120


def test_complete_with_supplied_times():
    start = NOW - timedelta(hours=2)
    session = _session(SessionStatus.APPROVED, start=start, duration=60)

    state_machine.apply_transition(
        session,
        SessionAction.COMPLETE,
        ActorRole.SYSTEM,
        now=NOW,
        actual_start=start + timedelta(minutes=5),
        actual_end=start + timedelta(minutes=50),
    )

    assert session.actual_duration_minutes == 45


def test_complete_rejects_end_before_start():
    start = NOW - timedelta(hours=2)
    session = _session(SessionStatus.APPROVED, start=start)

    with pytest.raises(ValidationException):
        state_machine.apply_transition(
            session,
            SessionAction.COMPLETE,
            ActorRole.OPERATOR,
            now=NOW,
            actual_start=start + timedelta(minutes=30),
            actual_end=start + timedelta(minutes=10),
        )

    assert session.status == SessionStatus.APPROVED


@pytest.mark.parametrize("action", [SessionAction.COMPLETE, SessionAction.NO_SHOW])
def test_cannot_close_before_window_elapsed(action):
    session = _session(SessionStatus.APPROVED, start=NOW - timedelta(minutes=30), duration=60)

    with pytest.raises(PolicyException) as exc_info:
        state_machine.apply_transition(session, action, ActorRole.OPERATOR, now=NOW)

    assert exc_info.value.code == "WINDOW_NOT_ELAPSED"


@pytest.mark.parametrize("role", [ActorRole.REQUESTER, ActorRole.PROVIDER])
def test_participants_cannot_complete(role):
    session = _session(SessionStatus.APPROVED, start=NOW - timedelta(hours=2))

    with pytest.raises(ForbiddenException):
        state_machine.apply_transition(session, SessionAction.COMPLETE, role, now=NOW)


def test_no_show_from_approved():
    session = _session(SessionStatus.APPROVED, start=NOW - timedelta(hours=2))

    state_machine.apply_transition(session, SessionAction.NO_SHOW, ActorRole.OPERATOR, now=NOW)

    assert session.status == SessionStatus.NO_SHOW
    assert session.actual_start is None


def test_participant_role_resolution():
    session = _session(SessionStatus.PENDING)

    assert state_machine.participant_role(session, REQUESTER_ID) == ActorRole.REQUESTER
    assert state_machine.participant_role(session, PROVIDER_ID) == ActorRole.PROVIDER
    assert state_machine.participant_role(session, 99) is None
    with pytest.raises(ForbiddenException):
        state_machine.resolve_participant_role(session, 99)


def test_allowed_actions_per_role():
    pending = _session(SessionStatus.PENDING)
    approved = _session(SessionStatus.APPROVED)
    completed = _session(SessionStatus.COMPLETED)

    assert sorted(state_machine.allowed_actions(pending, ActorRole.PROVIDER)) == ["approve", "cancel", "decline"]
    assert state_machine.allowed_actions(pending, ActorRole.REQUESTER) == ["cancel"]
    assert sorted(state_machine.allowed_actions(approved, ActorRole.OPERATOR)) == ["complete", "no_show"]
    assert state_machine.allowed_actions(completed, ActorRole.PROVIDER) == []


# ======================
# RATING
# ======================

def test_record_rating_sets_all_feedback_fields():
    session = _session(SessionStatus.COMPLETED)

    state_machine.record_rating(session, ActorRole.REQUESTER, 4, "Helpful", now=NOW)

    assert (session.rating, session.review, session.rated_at) == (4, "Helpful", NOW)


@pytest.mark.parametrize("status", [s for s in SessionStatus if s != SessionStatus.COMPLETED])
def test_rating_requires_completed(status):
    session = _session(status)

    with pytest.raises(RatingNotAllowedException):
        state_machine.record_rating(session, ActorRole.REQUESTER, 5, now=NOW)

    assert session.rating is None
    assert session.rated_at is None


def test_rating_twice_is_policy_error():
    session = _session(SessionStatus.COMPLETED)
    state_machine.record_rating(session, ActorRole.REQUESTER, 5, now=NOW)

    with pytest.raises(PolicyException):
        state_machine.record_rating(session, ActorRole.REQUESTER, 1, now=NOW)

    assert session.rating == 5


@pytest.mark.parametrize("role", [ActorRole.PROVIDER, ActorRole.OPERATOR, None])
def test_only_requester_may_rate(role):
    session = _session(SessionStatus.COMPLETED)

    with pytest.raises(ForbiddenException):
        state_machine.record_rating(session, role, 5, now=NOW)
