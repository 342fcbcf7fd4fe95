# app/api/session.py
"""
Session Booking API

Thin transport layer over app.services.session_service. Every domain error is
converted with ``to_http_exception`` so callers get a typed status code:
400 validation, 403 forbidden, 404 not found, 409 conflict, 422 policy,
503 store unavailable.
"""

import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import DomainException
from app.models.session import ActorRole
from app.models.user import User
from app.schemas.session import (
    Pagination,
    SessionCancel,
    SessionComplete,
    SessionCreate,
    SessionDetail,
    SessionNoShow,
    SessionPage,
    SessionRate,
    SessionRespond,
    SessionResponse,
    SessionStatusChangeResponse,
)
from app.services import session_service, state_machine
from app.utils.security import get_current_user, require_role

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ======================
# CREATE SESSION REQUEST
# ======================
@router.post("/", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreate,
    current_user: User = Depends(require_role(ActorRole.REQUESTER.value)),
    db: Session = Depends(get_db)
):
    """Book a session with a provider. Starts out pending."""
    try:
        session = session_service.create_session(
            db,
            requester_id=current_user.id,
            provider_id=payload.provider_id,
            title=payload.title,
            description=payload.description,
            topic=payload.topic,
            scheduled_start=payload.scheduled_start,
            duration_minutes=payload.duration_minutes,
            agenda=[item.model_dump() for item in payload.agenda],
            timezone=payload.timezone,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)


# ======================
# SESSION LISTING
# ======================
@router.get("/", response_model=SessionPage)
def list_sessions(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Sessions of the current user, newest first, optionally filtered by status."""
    try:
        sessions, total = session_service.list_sessions(
            db,
            actor_id=current_user.id,
            role=current_user.role,
            status=status,
            page=page,
            limit=limit,
        )
    except DomainException as e:
        raise e.to_http_exception()

    return SessionPage(
        sessions=[SessionResponse.model_validate(s) for s in sessions],
        pagination=Pagination(
            current=page,
            pages=math.ceil(total / limit) if total else 0,
            total=total,
        ),
    )


@router.get("/upcoming", response_model=List[SessionResponse])
def list_upcoming_sessions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        sessions = session_service.list_upcoming_sessions(
            db,
            actor_id=current_user.id,
            role=current_user.role,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/requests", response_model=List[SessionResponse])
def list_pending_requests(
    current_user: User = Depends(require_role(ActorRole.PROVIDER.value)),
    db: Session = Depends(get_db)
):
    """Pending requests waiting on the current provider."""
    sessions = session_service.list_pending_requests(db, provider_id=current_user.id)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/{session_id}", response_model=SessionDetail)
def get_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        session = session_service.get_session(
            db,
            actor_id=current_user.id,
            session_id=session_id,
            role=current_user.role,
        )
    except DomainException as e:
        raise e.to_http_exception()

    viewer_role = state_machine.participant_role(session, current_user.id)
    if viewer_role is None:
        viewer_role = ActorRole(current_user.role)
    detail = SessionDetail.model_validate(session)
    detail.available_actions = state_machine.allowed_actions(session, viewer_role)
    return detail


@router.get("/{session_id}/history", response_model=List[SessionStatusChangeResponse])
def get_session_history(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        history = session_service.get_session_history(
            db,
            actor_id=current_user.id,
            session_id=session_id,
            role=current_user.role,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return [SessionStatusChangeResponse.model_validate(h) for h in history]


# ======================
# PROVIDER RESPONSE
# ======================
@router.put("/{session_id}/respond", response_model=SessionResponse)
def respond_to_request(
    session_id: int,
    payload: SessionRespond,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Approve (optionally with a meeting link) or decline a pending request."""
    try:
        session = session_service.respond_to_request(
            db,
            provider_id=current_user.id,
            session_id=session_id,
            action=payload.action,
            message=payload.message,
            meeting_link=payload.meeting_link,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)


# ======================
# CANCEL SESSION
# ======================
@router.put("/{session_id}/cancel", response_model=SessionResponse)
def cancel_session(
    session_id: int,
    payload: Optional[SessionCancel] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        session = session_service.cancel_session(
            db,
            actor_id=current_user.id,
            session_id=session_id,
            reason=payload.reason if payload else None,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)


# ======================
# OPERATOR ACTIONS
# ======================
@router.put("/{session_id}/complete", response_model=SessionResponse)
def complete_session(
    session_id: int,
    payload: Optional[SessionComplete] = None,
    current_user: User = Depends(require_role(ActorRole.OPERATOR.value)),
    db: Session = Depends(get_db)
):
    try:
        session = session_service.complete_session(
            db,
            session_id=session_id,
            actual_start=payload.actual_start if payload else None,
            actual_end=payload.actual_end if payload else None,
            operator_id=current_user.id,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)


@router.put("/{session_id}/no-show", response_model=SessionResponse)
def mark_no_show(
    session_id: int,
    payload: Optional[SessionNoShow] = None,
    current_user: User = Depends(require_role(ActorRole.OPERATOR.value)),
    db: Session = Depends(get_db)
):
    try:
        session = session_service.mark_no_show(
            db,
            session_id=session_id,
            operator_id=current_user.id,
            note=payload.note if payload else None,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)


# ======================
# RATE SESSION
# ======================
@router.post("/{session_id}/rate", response_model=SessionResponse)
def rate_session(
    session_id: int,
    payload: SessionRate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Rate a completed session.

    Requirements:
    - Caller must be the session's requester
    - Session must be completed
    - Only one rating per session
    """
    try:
        session = session_service.rate_session(
            db,
            requester_id=current_user.id,
            session_id=session_id,
            rating=payload.rating,
            review=payload.review,
        )
    except DomainException as e:
        raise e.to_http_exception()
    return SessionResponse.model_validate(session)
