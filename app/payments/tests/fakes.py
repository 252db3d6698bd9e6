"""
In-memory stand-in for the payment processor.

Behaves like an idempotent processor: repeating a call with the same
idempotency key returns the first result without recording a new
operation. Outcomes are scripted per operation.

Usage:
    processor = FakeProcessor()
    processor.script("capture", ProcessorStatus.PENDING)
    processor.fail("refund", StripeAPIUnavailableError("down"))

    with use_processor(processor):
        ...

    assert processor.operations("refund")[0]["amount_cents"] == 5750
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

from payments.adapters.base import ProcessorResult, ProcessorStatus

_ids = itertools.count(1)


@dataclass
class FakeProcessor:
    """Recording PaymentProcessor with scripted outcomes."""

    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    outcomes: dict[str, list[ProcessorStatus]] = field(default_factory=dict)
    errors: dict[str, list[Exception]] = field(default_factory=dict)
    payment_statuses: dict[str, ProcessorStatus] = field(default_factory=dict)
    refund_statuses: dict[str, ProcessorStatus] = field(default_factory=dict)
    _by_key: dict[str, ProcessorResult] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def script(self, operation: str, *statuses: ProcessorStatus) -> None:
        """Queue outcomes for the next calls to ``operation``."""
        self.outcomes.setdefault(operation, []).extend(statuses)

    def fail(self, operation: str, *errors: Exception) -> None:
        """Queue exceptions for the next calls to ``operation``."""
        self.errors.setdefault(operation, []).extend(errors)

    def operations(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call(self, operation: str, prefix: str, amount_cents: int, currency: str, **kwargs) -> ProcessorResult:
        key = kwargs.get("idempotency_key")
        if key and key in self._by_key:
            return self._by_key[key]

        pending_errors = self.errors.get(operation)
        if pending_errors:
            raise pending_errors.pop(0)

        self.calls.append((operation, {"amount_cents": amount_cents, "currency": currency, **kwargs}))
        queued = self.outcomes.get(operation)
        status = queued.pop(0) if queued else ProcessorStatus.SUCCEEDED

        reference = kwargs.get("intent_id") if operation in ("capture", "cancel_authorization") else None
        result = ProcessorResult(
            reference_id=reference or f"{prefix}_fake_{next(_ids)}",
            status=status,
            amount_cents=amount_cents,
            currency=currency,
            failure_code="card_declined" if status == ProcessorStatus.FAILED else None,
            raw_response={"operation": operation, **{k: str(v) for k, v in kwargs.items()}},
        )
        if key:
            self._by_key[key] = result
        if operation == "authorize" and kwargs.get("capture_method") != "manual":
            self.payment_statuses[result.reference_id] = status
        if operation == "capture" and status == ProcessorStatus.SUCCEEDED:
            self.payment_statuses[result.reference_id] = status
        if operation == "refund":
            self.refund_statuses[result.reference_id] = status
        return result

    # ------------------------------------------------------------------
    # PaymentProcessor
    # ------------------------------------------------------------------

    def authorize(self, amount_cents, currency, payment_method, idempotency_key, capture_method="automatic", metadata=None):
        return self._call(
            "authorize",
            "pi",
            amount_cents,
            currency,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
            capture_method=capture_method,
            metadata=metadata or {},
        )

    def capture(self, intent_id, idempotency_key, amount_cents=None):
        return self._call(
            "capture",
            "pi",
            amount_cents or 0,
            "usd",
            intent_id=intent_id,
            idempotency_key=idempotency_key,
        )

    def cancel_authorization(self, intent_id, idempotency_key):
        return self._call("cancel_authorization", "pi", 0, "usd", intent_id=intent_id, idempotency_key=idempotency_key)

    def refund(self, intent_id, amount_cents, idempotency_key, metadata=None):
        return self._call(
            "refund",
            "re",
            amount_cents,
            "usd",
            intent_id=intent_id,
            idempotency_key=idempotency_key,
            metadata=metadata or {},
        )

    def transfer(self, destination, amount_cents, currency, idempotency_key, metadata=None):
        return self._call(
            "transfer",
            "tr",
            amount_cents,
            currency,
            destination=destination,
            idempotency_key=idempotency_key,
            metadata=metadata or {},
        )

    def retrieve_payment(self, intent_id):
        pending_errors = self.errors.get("retrieve_payment")
        if pending_errors:
            raise pending_errors.pop(0)
        self.calls.append(("retrieve_payment", {"intent_id": intent_id}))
        queued = self.outcomes.get("retrieve_payment")
        if queued:
            status = queued.pop(0)
        else:
            status = self.payment_statuses.get(intent_id, ProcessorStatus.SUCCEEDED)
        return ProcessorResult(reference_id=intent_id, status=status, amount_cents=0)

    def retrieve_refund(self, refund_id):
        pending_errors = self.errors.get("retrieve_refund")
        if pending_errors:
            raise pending_errors.pop(0)
        self.calls.append(("retrieve_refund", {"refund_id": refund_id}))
        queued = self.outcomes.get("retrieve_refund")
        if queued:
            status = queued.pop(0)
        else:
            status = self.refund_statuses.get(refund_id, ProcessorStatus.SUCCEEDED)
        return ProcessorResult(reference_id=refund_id, status=status, amount_cents=0)
