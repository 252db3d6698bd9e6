"""
Stripe implementation of the PaymentProcessor contract.

All Stripe calls made by the booking engine go through StripeAdapter so
timeouts, idempotency, error translation and logging are handled the
same way everywhere.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency keys on every mutating call
- Thread-safe for use from Celery workers

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries inside the SDK (default: 0)

Usage:
    from payments.adapters import StripeAdapter

    result = StripeAdapter.authorize(
        amount_cents=11500,
        currency="usd",
        payment_method="pm_card_visa",
        idempotency_key="booking:...:payment:1",
        capture_method="manual",
    )
    if result.is_succeeded:
        StripeAdapter.capture(result.reference_id, idempotency_key="...")
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from collections.abc import Callable
from typing import Any

import stripe
from django.conf import settings

from payments.adapters.base import ProcessorResult, ProcessorStatus
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

# PaymentIntent statuses grouped by the outcome they represent. An
# authorization (requires_capture) is a success for manual capture.
INTENT_SUCCEEDED = {"succeeded", "requires_capture"}
INTENT_FAILED = {"canceled", "requires_payment_method"}

REFUND_SUCCEEDED = {"succeeded"}
REFUND_FAILED = {"failed", "canceled"}


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for processor calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity_id, attempt) always yields the same key, so
    a retried Celery task replays the original call instead of repeating it.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="capture",
            entity_id=booking.id,
        )
        # "capture:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if a processor error is transient.

        @shared_task(bind=True, max_retries=3)
        def capture(self, booking_id):
            try:
                ...
            except Exception as e:
                if is_retryable_stripe_error(e):
                    raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
                raise
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds before jitter (default: 60.0)

    Returns:
        Delay in seconds with 0-25% jitter added

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    PaymentProcessor backed by Stripe PaymentIntents, Refunds and Transfers.

    All methods are classmethods; no instance state is kept, so the same
    object is safe to share between Celery workers. ``get_processor()``
    instantiates it once.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 0)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _execute(
        cls,
        log_context: dict[str, Any],
        call: Callable[[], Any],
        level: int = logging.INFO,
    ) -> Any:
        """
        Run a Stripe SDK call with timing, logging and error translation.

        Raises:
            StripeError subclass for any SDK failure
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.log(level, "Starting Stripe operation", extra=log_context)

        try:
            obj = call()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.log(
            level,
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": obj.id,
                "status": getattr(obj, "status", None),
                "duration_ms": duration_ms,
            },
        )
        return obj

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def authorize(
        cls,
        amount_cents: int,
        currency: str,
        payment_method: str,
        idempotency_key: str,
        capture_method: str = "automatic",
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """
        Create and confirm a PaymentIntent.

        With ``capture_method="manual"`` a SUCCEEDED result means the funds
        are held (requires_capture), not collected.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Card has insufficient funds
            StripeAPIUnavailableError: Stripe service unavailable
        """
        log_context = {
            "operation": "authorize",
            "amount_cents": amount_cents,
            "currency": currency,
            "capture_method": capture_method,
            "idempotency_key": idempotency_key,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                payment_method=payment_method,
                payment_method_types=["card"],
                capture_method=capture_method,
                confirm=True,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
        )
        return cls._intent_result(intent)

    @classmethod
    def capture(
        cls,
        intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
    ) -> ProcessorResult:
        """
        Capture a PaymentIntent, optionally for less than the authorized amount.

        Raises:
            StripeInvalidRequestError: PaymentIntent not capturable
        """
        log_context = {
            "operation": "capture",
            "payment_intent_id": intent_id,
            "amount_to_capture": amount_cents,
            "idempotency_key": idempotency_key,
        }

        capture_params: dict[str, Any] = {}
        if amount_cents is not None:
            capture_params["amount_to_capture"] = amount_cents

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                intent_id,
                idempotency_key=idempotency_key,
                **capture_params,
            ),
        )
        # After capture only "succeeded" means the money moved.
        if intent.status == "requires_capture":
            return cls._intent_result(intent, status=ProcessorStatus.PENDING)
        return cls._intent_result(intent)

    @classmethod
    def cancel_authorization(cls, intent_id: str, idempotency_key: str) -> ProcessorResult:
        """Cancel an uncaptured PaymentIntent, releasing the hold."""
        log_context = {
            "operation": "cancel_authorization",
            "payment_intent_id": intent_id,
            "idempotency_key": idempotency_key,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.cancel(intent_id, idempotency_key=idempotency_key),
        )
        status = ProcessorStatus.SUCCEEDED if intent.status == "canceled" else ProcessorStatus.PENDING
        return cls._intent_result(intent, status=status)

    @classmethod
    def refund(
        cls,
        intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """
        Refund part or all of a captured PaymentIntent.

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        log_context = {
            "operation": "refund",
            "payment_intent_id": intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        refund = cls._execute(
            log_context,
            lambda: stripe.Refund.create(
                payment_intent=intent_id,
                amount=amount_cents,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
        )
        return cls._refund_result(refund)

    @classmethod
    def retrieve_refund(cls, refund_id: str) -> ProcessorResult:
        """Poll a Refund the processor had not finished when it was issued."""
        log_context = {
            "operation": "retrieve_refund",
            "refund_id": refund_id,
        }

        refund = cls._execute(
            log_context,
            lambda: stripe.Refund.retrieve(refund_id),
            level=logging.DEBUG,
        )
        return cls._refund_result(refund)

    @staticmethod
    def _refund_result(refund: Any) -> ProcessorResult:
        if refund.status in REFUND_SUCCEEDED:
            status = ProcessorStatus.SUCCEEDED
        elif refund.status in REFUND_FAILED:
            status = ProcessorStatus.FAILED
        else:
            status = ProcessorStatus.PENDING

        return ProcessorResult(
            reference_id=refund.id,
            status=status,
            amount_cents=refund.amount,
            currency=refund.currency,
            failure_code=getattr(refund, "failure_reason", None),
            raw_response=refund.to_dict(),
        )

    @classmethod
    def transfer(
        cls,
        destination: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """
        Transfer funds to a connected Stripe account.

        Transfers are settled synchronously from the platform balance; a
        later ``transfer.reversed`` webhook is the only way one fails.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        log_context = {
            "operation": "transfer",
            "amount_cents": amount_cents,
            "destination_account": destination,
            "idempotency_key": idempotency_key,
        }

        transfer = cls._execute(
            log_context,
            lambda: stripe.Transfer.create(
                amount=amount_cents,
                currency=currency,
                destination=destination,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
        )

        return ProcessorResult(
            reference_id=transfer.id,
            status=ProcessorStatus.SUCCEEDED,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            raw_response=transfer.to_dict(),
        )

    @classmethod
    def retrieve_payment(cls, intent_id: str) -> ProcessorResult:
        """
        Poll a PaymentIntent.

        Unlike ``authorize``, an uncaptured intent reports PENDING here since
        the caller is asking whether money has been collected.
        """
        log_context = {
            "operation": "retrieve_payment",
            "payment_intent_id": intent_id,
        }

        intent = cls._execute(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(intent_id),
            level=logging.DEBUG,
        )
        if intent.status == "requires_capture":
            return cls._intent_result(intent, status=ProcessorStatus.PENDING)
        return cls._intent_result(intent)

    @staticmethod
    def _intent_result(intent: Any, status: ProcessorStatus | None = None) -> ProcessorResult:
        if status is None:
            if intent.status in INTENT_SUCCEEDED:
                status = ProcessorStatus.SUCCEEDED
            elif intent.status in INTENT_FAILED:
                status = ProcessorStatus.FAILED
            else:
                status = ProcessorStatus.PENDING

        last_error = getattr(intent, "last_payment_error", None) or {}
        return ProcessorResult(
            reference_id=intent.id,
            status=status,
            amount_cents=intent.amount,
            currency=intent.currency,
            failure_code=last_error.get("code") if status == ProcessorStatus.FAILED else None,
            failure_message=last_error.get("message") if status == ProcessorStatus.FAILED else None,
            raw_response=intent.to_dict(),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            StripeInvalidRequestError: Invalid signature
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to domain exceptions.

        Permanent failures (declines, bad requests) become ExternalFailed
        subclasses; transport failures become retryable StripeErrors.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(str(error), stripe_code=error.code) from error

            raise StripeInvalidRequestError(str(error), stripe_code=error.code) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
