"""
Payment processor contract consumed by the booking engine.

The engine never talks to a processor SDK directly. Services ask
``get_processor()`` for the configured implementation and call the
protocol below. Every call takes a caller-supplied idempotency key, and
retries of the same logical operation reuse the same key so the processor
never captures, refunds or transfers twice.

Any call may come back PENDING: the processor accepted the request but
confirmation arrives later via webhook or ``retrieve_payment`` poll.

Usage:
    from payments.adapters import get_processor

    processor = get_processor()
    result = processor.capture(intent_id, idempotency_key=key)
    if result.is_pending:
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from collections.abc import Generator


class ProcessorStatus(str, Enum):
    """Outcome of a processor call."""

    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class ProcessorResult:
    """
    Normalized result of a processor operation.

    Attributes:
        reference_id: Processor object id (intent, refund or transfer id)
        status: SUCCEEDED, PENDING or FAILED
        amount_cents: Amount the processor reports for the object
        currency: ISO 4217 currency code
        failure_code: Processor error/decline code when FAILED
        failure_message: Human-readable failure reason when FAILED
        raw_response: Full processor payload (for debugging)
    """

    reference_id: str
    status: ProcessorStatus
    amount_cents: int
    currency: str = "usd"
    failure_code: str | None = None
    failure_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_succeeded(self) -> bool:
        return self.status == ProcessorStatus.SUCCEEDED

    @property
    def is_pending(self) -> bool:
        return self.status == ProcessorStatus.PENDING

    @property
    def is_failed(self) -> bool:
        return self.status == ProcessorStatus.FAILED


@runtime_checkable
class PaymentProcessor(Protocol):
    """
    Contract every processor adapter implements.

    Declines are reported either as a FAILED result or by raising an
    ``ExternalFailed`` subclass; transient transport errors raise
    retryable ``StripeError`` subclasses (``is_retryable = True``).
    """

    def authorize(
        self,
        amount_cents: int,
        currency: str,
        payment_method: str,
        idempotency_key: str,
        capture_method: str = "automatic",
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """Create and confirm a payment; manual capture only authorizes."""
        ...

    def capture(
        self,
        intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
    ) -> ProcessorResult:
        """Capture an authorization, optionally only part of it."""
        ...

    def cancel_authorization(self, intent_id: str, idempotency_key: str) -> ProcessorResult:
        """Void an uncaptured authorization."""
        ...

    def refund(
        self,
        intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """Return captured money to the payer."""
        ...

    def transfer(
        self,
        destination: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ProcessorResult:
        """Move money to an owner's payout account."""
        ...

    def retrieve_payment(self, intent_id: str) -> ProcessorResult:
        """Poll the current state of a payment."""
        ...

    def retrieve_refund(self, refund_id: str) -> ProcessorResult:
        """Poll the current state of a refund."""
        ...


# =============================================================================
# Processor Resolution
# =============================================================================

_active_processor: PaymentProcessor | None = None


@lru_cache(maxsize=None)
def _load_processor(path: str) -> PaymentProcessor:
    return import_string(path)()


def get_processor() -> PaymentProcessor:
    """
    Return the processor adapter in use.

    Resolves ``settings.PAYMENT_PROCESSOR_CLASS`` once per dotted path
    unless a processor was installed with ``use_processor``.
    """
    if _active_processor is not None:
        return _active_processor
    return _load_processor(settings.PAYMENT_PROCESSOR_CLASS)


@contextmanager
def use_processor(processor: PaymentProcessor) -> Generator[PaymentProcessor, None, None]:
    """
    Install a processor for the duration of the block.

    Example:
        with use_processor(FakeProcessor()) as processor:
            PaymentService.complete_payment(...)
    """
    global _active_processor
    previous = _active_processor
    _active_processor = processor
    try:
        yield processor
    finally:
        _active_processor = previous
