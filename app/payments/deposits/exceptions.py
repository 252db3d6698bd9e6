"""
Deposit hold exceptions.

Exception Hierarchy:
    DepositError (ValidationError)
    ├── DeductionExceedsHold - Claim larger than the held amount
    └── InvalidHoldState - Operation not allowed in the hold's status
    DepositHoldNotFound (NotFoundError)
"""

from __future__ import annotations

from core.exceptions import NotFoundError, ValidationError


class DepositError(ValidationError):
    """Base exception for deposit hold business rules."""

    default_error_code: str = "DEPOSIT_ERROR"


class DeductionExceedsHold(DepositError):
    """
    A deduction was requested for more than the hold still covers.

    The excess is never truncated silently; it must be claimed through a
    separate payment request.
    """

    default_error_code: str = "DEDUCTION_EXCEEDS_HOLD"

    def __init__(self, requested_cents: int, available_cents: int, hold_id=None):
        super().__init__(
            f"Deduction of {requested_cents} exceeds held amount {available_cents}",
            details={
                "requested_cents": requested_cents,
                "available_cents": available_cents,
                "hold_id": str(hold_id) if hold_id else None,
            },
        )
        self.requested_cents = requested_cents
        self.available_cents = available_cents


class InvalidHoldState(DepositError):
    default_error_code: str = "INVALID_HOLD_STATE"


class DepositHoldNotFound(NotFoundError):
    default_error_code: str = "DEPOSIT_HOLD_NOT_FOUND"
