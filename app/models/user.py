from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.types import UTCDateTime
from app.utils.clock import utcnow


# ---------------- USER (IDENTITY REFERENCE) ----------------
class User(Base):
    """
    Local projection of an identity-provider account.

    Only the fields the booking core reads are kept: display name, contact
    email, role ("requester", "provider" or "operator") and the active flag.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, onupdate=utcnow)

    requested_sessions = relationship(
        "Session", foreign_keys="Session.requester_id", back_populates="requester"
    )
    provided_sessions = relationship(
        "Session", foreign_keys="Session.provider_id", back_populates="provider"
    )
    reputation = relationship("ProviderReputation", back_populates="provider", uselist=False)


# ---------------- PROVIDER REPUTATION ----------------
class ProviderReputation(Base):
    """Materialized view over one provider's sessions; see rating_aggregator."""

    __tablename__ = "provider_reputations"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    average_rating = Column(Float, default=0.0, nullable=False)
    total_ratings = Column(Integer, default=0, nullable=False)
    total_sessions = Column(Integer, default=0, nullable=False)
    completed_sessions = Column(Integer, default=0, nullable=False)
    version = Column(Integer, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    provider = relationship("User", back_populates="reputation")
