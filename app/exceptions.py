# app/exceptions.py
"""
Domain exceptions for the session booking core.

Services raise these; the API layer converts them with ``to_http_exception``.
Every booking failure maps to exactly one of: validation, not found,
forbidden, conflict, policy, or store unavailable.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Malformed or out-of-range input, caught before any state change."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Unknown session or provider."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Actor is not authorized for the requested transition."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Overlapping booking or illegal state transition."""

    status_code = status.HTTP_409_CONFLICT


class PolicyException(DomainException):
    """A business rule (cancellation window, rating rules) was violated."""

    status_code = 422


class StoreUnavailableException(DomainException):
    """The session store kept failing after the retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# Specific booking exceptions


class BookingConflictException(ConflictException):
    def __init__(self, conflicting_session_id: int, start: str, end: str):
        super().__init__(
            message=(
                f"Requested slot overlaps session {conflicting_session_id} "
                f"({start} - {end})"
            ),
            code="BOOKING_CONFLICT",
            details={
                "conflicting_session_id": conflicting_session_id,
                "conflicting_start": start,
                "conflicting_end": end,
            },
        )


class IllegalTransitionException(ConflictException):
    def __init__(self, action: str, current_status: str):
        super().__init__(
            message=f"Cannot {action} a session that is {current_status}",
            code="ILLEGAL_TRANSITION",
            details={"action": action, "status": current_status},
        )


class CancellationWindowException(PolicyException):
    def __init__(self, window_hours: int, hours_until_start: float):
        super().__init__(
            message=(
                f"Sessions can only be cancelled more than {window_hours} hours "
                "before the scheduled start"
            ),
            code="CANCELLATION_WINDOW",
            details={
                "window_hours": window_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class RatingNotAllowedException(PolicyException):
    def __init__(self, reason: str):
        super().__init__(message=reason, code="RATING_NOT_ALLOWED")
