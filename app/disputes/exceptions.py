"""
Dispute workflow exceptions.

Exception Hierarchy:
    DisputeError (base)
    ├── DisputeNotFound - Unknown dispute id
    ├── DisputeValidationError - Bad amounts or outcome for the dispute
    ├── DisputePermissionDenied - Caller is not a party (or not the initiator)
    ├── DisputeNotOpenable - Booking is not in a disputable state
    ├── DisputeAlreadyOpen - Booking already has an active dispute
    ├── DisputeAlreadyResolved - Dispute already ended
    └── InvalidDisputeTransition - Workflow step not allowed from the current status
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class DisputeError(BaseApplicationError):
    default_error_code: str = "DISPUTE_ERROR"


class DisputeNotFound(DisputeError, NotFoundError):
    default_error_code: str = "DISPUTE_NOT_FOUND"


class DisputeValidationError(DisputeError, ValidationError):
    default_error_code: str = "DISPUTE_VALIDATION_ERROR"


class DisputePermissionDenied(DisputeError, PermissionDeniedError):
    default_error_code: str = "DISPUTE_PERMISSION_DENIED"


class DisputeNotOpenable(DisputeError, ConflictError):
    """Booking is neither awaiting return inspection nor completed within the filing window."""

    default_error_code: str = "DISPUTE_NOT_OPENABLE"


class DisputeAlreadyOpen(DisputeError, ConflictError):
    default_error_code: str = "DISPUTE_ALREADY_OPEN"


class DisputeAlreadyResolved(DisputeError, ConflictError):
    default_error_code: str = "DISPUTE_ALREADY_RESOLVED"


class InvalidDisputeTransition(DisputeError, ConflictError):
    default_error_code: str = "INVALID_DISPUTE_TRANSITION"

    def __init__(self, current_status: str, step: str):
        super().__init__(
            f"Cannot {step} a dispute in {current_status} state",
            details={"current_status": str(current_status), "step": step},
        )
