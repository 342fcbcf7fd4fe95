# app/models/session.py
import enum
from datetime import timedelta

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import UTCDateTime
from app.utils.clock import utcnow


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


class ActorRole(str, enum.Enum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    OPERATOR = "operator"
    SYSTEM = "system"


class CancelledBy(str, enum.Enum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    SYSTEM = "system"


# Statuses that occupy a slot on the provider's calendar
COMMITTED_STATUSES = frozenset({SessionStatus.PENDING, SessionStatus.APPROVED})


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Session(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Scheduling
    scheduled_start = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)

    # Descriptive
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=False)
    topic = Column(String(100), nullable=False)
    agenda = Column(JSON, default=list, nullable=False)

    # Status
    status = Column(
        Enum(
            SessionStatus,
            name="session_status",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        default=SessionStatus.PENDING,
        nullable=False,
    )
    meeting_link = Column(String(500))
    provider_response_message = Column(String(1000))
    provider_responded_at = Column(UTCDateTime)

    # Decision timestamps
    approved_at = Column(UTCDateTime)
    declined_at = Column(UTCDateTime)
    cancelled_at = Column(UTCDateTime)
    cancelled_by = Column(
        Enum(
            CancelledBy,
            name="cancelled_by",
            native_enum=False,
            values_callable=_enum_values,
            validate_strings=True,
        )
    )
    cancellation_reason = Column(String(500))

    # Outcome
    actual_start = Column(UTCDateTime)
    actual_end = Column(UTCDateTime)
    actual_duration_minutes = Column(Integer)

    # Feedback
    rating = Column(Integer)
    review = Column(Text)
    rated_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "duration_minutes >= 15 AND duration_minutes <= 240",
            name="check_duration_range",
        ),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="check_rating_range",
        ),
        Index("ix_sessions_provider_status_start", "provider_id", "status", "scheduled_start"),
    )

    requester = relationship("User", foreign_keys=[requester_id], back_populates="requested_sessions")
    provider = relationship("User", foreign_keys=[provider_id], back_populates="provided_sessions")
    status_changes = relationship(
        "SessionStatusChange",
        back_populates="session",
        order_by="SessionStatusChange.id",
        cascade="all, delete-orphan",
    )

    @property
    def scheduled_end(self):
        return self.scheduled_start + timedelta(minutes=self.duration_minutes)

    def __repr__(self) -> str:
        return f"<Session id={self.id} provider={self.provider_id} status={self.status}>"


class SessionStatusChange(Base):
    """Append-only history of every status change a session went through."""

    __tablename__ = "session_status_changes"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    actor_role = Column(String(20), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    note = Column(String(1000))
    changed_at = Column(UTCDateTime, default=utcnow, nullable=False)

    session = relationship("Session", back_populates="status_changes")
