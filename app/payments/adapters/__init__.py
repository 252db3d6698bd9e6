"""
Payment processor adapters.

All external payment calls go through a PaymentProcessor so error
handling, timeouts, idempotency and logging stay consistent.

Usage:
    from payments.adapters import get_processor

    result = get_processor().refund(intent_id, 5750, idempotency_key=key)
"""

from payments.adapters.base import (
    PaymentProcessor,
    ProcessorResult,
    ProcessorStatus,
    get_processor,
    use_processor,
)
from payments.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    # Contract
    "PaymentProcessor",
    "ProcessorResult",
    "ProcessorStatus",
    "get_processor",
    "use_processor",
    # Stripe
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable_stripe_error",
]
