from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.session import CancelledBy, SessionStatus


# ======================
# SESSION REQUEST MODELS
# ======================

class AgendaItem(BaseModel):
    text: str = Field(..., min_length=1, max_length=200)
    done: bool = False


class SessionCreate(BaseModel):
    provider_id: int
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=1000)
    topic: str = Field(..., min_length=3, max_length=100)
    scheduled_start: datetime
    duration_minutes: int = Field(..., ge=15, le=240)
    timezone: str = Field("UTC", max_length=64)
    agenda: List[AgendaItem] = Field(default_factory=list)

    @field_validator("title", "description", "topic")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class SessionRespond(BaseModel):
    """Provider's answer to a pending request."""
    action: Literal["approve", "decline"]
    message: Optional[str] = Field(None, max_length=1000)
    meeting_link: Optional[str] = Field(None, max_length=500)


class SessionCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class SessionComplete(BaseModel):
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None


class SessionNoShow(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class SessionRate(BaseModel):
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5 stars")
    review: Optional[str] = Field(None, max_length=1000)

    @field_validator("review")
    @classmethod
    def validate_review(cls, v):
        """Validate review is not just whitespace"""
        if v is not None and v.strip() == "":
            raise ValueError("Review cannot be empty or just whitespace")
        return v.strip() if v else None


# ======================
# SESSION RESPONSE MODELS
# ======================

class SessionResponse(BaseModel):
    id: int
    requester_id: int
    provider_id: int
    title: str
    description: str
    topic: str
    agenda: List[AgendaItem] = Field(default_factory=list)
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    timezone: str
    status: SessionStatus
    meeting_link: Optional[str] = None
    provider_response_message: Optional[str] = None
    provider_responded_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_reason: Optional[str] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    actual_duration_minutes: Optional[int] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    rated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SessionDetail(SessionResponse):
    """Single-session view with the actions the viewer may attempt next."""
    available_actions: List[str] = Field(default_factory=list)


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class SessionPage(BaseModel):
    sessions: List[SessionResponse]
    pagination: Pagination


class SessionStatusChangeResponse(BaseModel):
    id: int
    action: str
    from_status: Optional[str] = None
    to_status: str
    actor_role: str
    actor_id: Optional[int] = None
    note: Optional[str] = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProviderReputationResponse(BaseModel):
    provider_id: int
    average_rating: float = Field(..., description="Mean rating rounded to one decimal")
    total_ratings: int
    total_sessions: int
    completed_sessions: int
    rating_distribution: Dict[int, int]
    updated_at: Optional[datetime] = None
