"""
Booking lifecycle exceptions.

Exception Hierarchy:
    BookingError (base)
    ├── BookingNotFound - Unknown booking id
    ├── BookingValidationError - Invalid dates, guests or price breakdown
    ├── InvalidTransition - Requested edge is not in the transition table
    ├── TransitionNotPermitted - Actor may not request the action
    ├── TransitionFailed - A side effect failed; the transition was rolled back
    └── HistoryImmutableError - Attempt to edit or delete an audit row

Usage:
    from bookings.exceptions import InvalidTransition

    try:
        BookingStateMachine.transition(booking.id, BookingAction.CANCEL, actor)
    except InvalidTransition as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class BookingError(BaseApplicationError):
    default_error_code: str = "BOOKING_ERROR"


class BookingNotFound(BookingError, NotFoundError):
    default_error_code: str = "BOOKING_NOT_FOUND"


class BookingValidationError(BookingError, ValidationError):
    default_error_code: str = "BOOKING_VALIDATION_ERROR"


class InvalidTransition(BookingError, ConflictError):
    """
    The requested action is not an edge out of the booking's current state.

    Never retried; surfaced to the caller as-is.
    """

    default_error_code: str = "INVALID_TRANSITION"

    def __init__(self, current_status: str, action: str, message: str | None = None):
        super().__init__(
            message or f"Cannot {action} a booking in {current_status} state",
            details={"current_status": str(current_status), "action": str(action)},
        )
        self.current_status = current_status
        self.action = action


class TransitionNotPermitted(BookingError, PermissionDeniedError):
    default_error_code: str = "TRANSITION_NOT_PERMITTED"


class TransitionFailed(BookingError):
    """
    A side effect raised mid-transition.

    The whole transition was rolled back, so the booking is still in its
    original state and the call is safe to retry.

    Attributes:
        cause: The underlying exception
    """

    default_error_code: str = "TRANSITION_FAILED"
    http_status: int = 422

    def __init__(self, action: str, cause: Exception):
        cause_code = getattr(cause, "error_code", None) or cause.__class__.__name__.upper()
        details = {"action": str(action), "cause": cause_code}
        # Only exposed domain errors carry a user-facing message.
        if isinstance(cause, BaseApplicationError) and cause.expose:
            details["cause_message"] = cause.message
        super().__init__(f"Could not {action} booking", details=details)
        self.action = action
        self.cause = cause


class HistoryImmutableError(BookingError):
    default_error_code: str = "HISTORY_IMMUTABLE"
    http_status: int = 500
    expose: bool = False
