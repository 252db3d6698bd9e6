"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for payment operations,
including payment domain errors, processor outcomes, concurrency control
errors, and Stripe-specific errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Payment/Refund/Payout lookup failures
    ├── PaymentValidationError - Payment validation failures
    ├── ExternalPending - Processor has not confirmed yet (suspension, not failure)
    └── PaymentProcessingError - Payment processing failures
        ├── ExternalFailed - Processor declined (permanent, never retried)
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidAccountError - Invalid destination account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - API unavailable (transient, retry)
            └── StripeTimeoutError - Request timeout (transient, retry)

    StaleRecordError - Optimistic locking conflict (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)
    RefundConflictError - Refund purpose reused with another amount (inherits ConflictError)

Usage:
    from payments.exceptions import ExternalFailed, ExternalPending

    result = processor.capture(intent_id, idempotency_key=key)
    if result.is_pending:
        raise ExternalPending("Capture awaiting confirmation", reference_id=intent_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Errors
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment domain operations.

    Example:
        try:
            refund_service.issue_refund(payment, amount_cents)
        except PaymentError as e:
            logger.error(f"Refund failed: {e}")
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Raised when a Payment, Refund or Payout cannot be found."""

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentValidationError(PaymentError):
    """
    Raised when payment data fails validation.

    Use for:
    - Refund amount larger than the remaining refundable amount
    - Non-positive amounts
    - Currency mismatches
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"
    http_status: int = 422


class ExternalPending(PaymentError):
    """
    The processor accepted the request but has not confirmed it yet.

    Not a failure: the caller leaves the booking in its intermediate state
    (PENDING_PAYMENT, an un-settled settlement attempt) and resumes when a
    webhook or a later poll resolves the reference.

    Attributes:
        reference_id: Processor reference to reconcile later
    """

    default_error_code: str = "EXTERNAL_PENDING"
    http_status: int = 202

    def __init__(
        self,
        message: str,
        reference_id: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if reference_id:
            details["reference_id"] = reference_id
        super().__init__(message, error_code=error_code, details=details)
        self.reference_id = reference_id


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Note:
        For processor-specific errors, prefer the StripeError subclasses
        which carry the provider's codes.
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 402


class ExternalFailed(PaymentProcessingError):
    """
    The processor definitively declined the request.

    Drives the booking to CANCELLED (or a settlement to FAILED). Never
    retried with the same payment method.
    """

    default_error_code: str = "EXTERNAL_FAILED"


# =============================================================================
# Stripe Errors
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for Stripe API errors.

    Attributes:
        stripe_code: Stripe's error code (e.g. "card_declined")
        decline_code: Issuer decline reason for card errors
        is_retryable: Whether the operation can be retried

    Example:
        try:
            StripeAdapter.capture(intent_id, idempotency_key=key)
        except StripeError as e:
            if e.is_retryable:
                raise self.retry(exc=e)
            raise
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError, ExternalFailed):
    """
    Card was declined by the issuing bank.

    The decline_code attribute contains the specific reason
    (generic_decline, lost_card, expired_card, ...).
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError, ExternalFailed):
    """Insufficient funds on the payment method. User action is required."""

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError, ExternalFailed):
    """
    Invalid payout destination account.

    Raised when the destination account for a transfer is missing,
    restricted, or unable to receive payouts. Requires manual
    intervention to resolve the account status.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError, ExternalFailed):
    """
    Invalid request parameters sent to Stripe.

    Possible causes:
    - Unknown payment intent ID
    - Refund larger than the captured amount
    - Capture of an intent that is not capturable

    Note:
        This usually indicates a bug in our code, not a user error.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff, same idempotency key)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    http_status: int = 503
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connection failures and Stripe 5xx responses.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    http_status: int = 503
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Request to Stripe timed out.

    The operation may or may not have completed. Retrying with the same
    idempotency key returns the original result if it did.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    http_status: int = 504
    is_retryable: bool = True


# =============================================================================
# Concurrency Errors
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when a record was modified by another process.

    Example:
        booking = check_version(Booking, booking_id, expected_version=3)
        # raises StaleRecordError if the current version is not 3
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired in time.

    Example:
        with DistributedLock(f"settlement:{booking_id}", timeout=5.0):
            ...
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an FSM transition is not allowed from the current state.

    Example:
        raise InvalidStateTransitionError(
            "Cannot refund payment in 'failed' state",
            details={"current_state": "failed", "target_state": "refunded"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class RefundConflictError(ConflictError):
    """
    Raised when a refund purpose is reused with a different amount.

    Example:
        RefundService.issue_refund(payment, 5750, "Cancelled", purpose="cancel")
        RefundService.issue_refund(payment, 2000, "Cancelled", purpose="cancel")
        # raises RefundConflictError
    """

    default_error_code: str = "REFUND_CONFLICT"
