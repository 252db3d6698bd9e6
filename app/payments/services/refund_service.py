"""
Refund service for returning captured money to renters.

Refunds are issued as side effects of booking cancellation, dispute
resolution and late-payment compensation. Each refund:

1. Checks the payment still has enough refundable money
2. Calls the processor with a key derived from (booking, purpose), so a
   retried transition replays the original refund instead of repeating it
3. Stores a Refund record and posts REFUND legs (CASH -> LIABILITY)
4. Moves the Payment to PARTIALLY_REFUNDED / REFUNDED once confirmed

A PENDING processor result keeps the Refund PENDING with its legs posted
but unsettled; ``confirm_refund`` / ``fail_refund`` resolve it from the
webhook or from ``reconcile_pending_refunds``, and a failed refund has its
legs reversed.

Usage:
    from payments.services import RefundService

    refund = RefundService.issue_refund(
        payment,
        amount_cents=5750,
        reason="Cancelled by renter",
        purpose="cancel",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from core.services import BaseService

from payments.adapters import IdempotencyKeyGenerator, get_processor
from payments.exceptions import (
    ExternalFailed,
    PaymentNotFoundError,
    PaymentValidationError,
    RefundConflictError,
)
from payments.ledger import AccountType, LedgerLeg, LedgerService, TransactionType
from payments.models import Payment, Refund
from payments.state_machines import PaymentStatus, RefundStatus


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundEligibility:
    """
    Result of a refund eligibility check.

    Attributes:
        eligible: Whether the refund may be issued
        max_refundable_cents: Amount still refundable on the payment
        block_reason: Human-readable reason if not eligible
    """

    eligible: bool
    max_refundable_cents: int = 0
    block_reason: str | None = None


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Issues and resolves refunds of captured booking payments.

    Callers run ``issue_refund`` inside their own unit of work; if the
    caller rolls back, the Refund row and its legs roll back with it and a
    retry reuses the same processor idempotency key.
    """

    @classmethod
    def check_refund_eligibility(cls, payment: Payment, amount_cents: int | None = None) -> RefundEligibility:
        if not payment.is_captured:
            return RefundEligibility(
                eligible=False,
                block_reason=f"Cannot refund a {payment.status} payment - no money was captured",
            )

        refundable = payment.refundable_cents
        if refundable <= 0:
            return RefundEligibility(eligible=False, block_reason="Payment has already been fully refunded")

        if amount_cents is not None and amount_cents > refundable:
            return RefundEligibility(
                eligible=False,
                max_refundable_cents=refundable,
                block_reason=f"Requested {amount_cents} exceeds refundable {refundable}",
            )

        return RefundEligibility(eligible=True, max_refundable_cents=refundable)

    @classmethod
    def issue_refund(
        cls,
        payment: Payment,
        amount_cents: int,
        reason: str,
        purpose: str = "refund",
    ) -> Refund:
        """
        Refund ``amount_cents`` of a captured payment.

        ``purpose`` names the business event ("cancel", "dispute:<id>",
        "late_payment"); one refund exists per (booking, purpose).

        Raises:
            PaymentValidationError: Amount is not positive or exceeds what is refundable
            ExternalFailed: Processor declined the refund
            RefundConflictError: Purpose already refunded with another amount
        """
        logger = cls.get_logger()
        key = IdempotencyKeyGenerator.generate(f"refund_{purpose}", payment.booking_id)

        existing = Refund.objects.filter(idempotency_key=key).first()
        if existing is not None:
            if existing.amount_cents != amount_cents:
                raise RefundConflictError(
                    f"Refund for {purpose!r} was already issued with a different amount",
                    details={
                        "refund_id": str(existing.id),
                        "existing_amount_cents": existing.amount_cents,
                        "amount_cents": amount_cents,
                    },
                )
            return existing

        if amount_cents <= 0:
            raise PaymentValidationError(
                "Refund amount must be positive",
                details={"amount_cents": amount_cents},
            )

        eligibility = cls.check_refund_eligibility(payment, amount_cents)
        if not eligibility.eligible:
            raise PaymentValidationError(
                eligibility.block_reason or "Refund not allowed",
                error_code="REFUND_NOT_ALLOWED",
                details={
                    "payment_id": str(payment.id),
                    "amount_cents": amount_cents,
                    "max_refundable_cents": eligibility.max_refundable_cents,
                },
            )

        result = get_processor().refund(
            payment.processor_reference,
            amount_cents=amount_cents,
            idempotency_key=key,
            metadata={"booking_id": str(payment.booking_id), "purpose": purpose},
        )

        if result.is_failed:
            logger.error(
                "Processor rejected refund",
                extra={
                    "booking_id": str(payment.booking_id),
                    "payment_id": str(payment.id),
                    "amount_cents": amount_cents,
                    "failure_code": result.failure_code,
                },
            )
            raise ExternalFailed(
                "Refund was rejected by the processor",
                error_code="REFUND_FAILED",
                details={"booking_id": str(payment.booking_id), "failure_code": result.failure_code},
            )

        with cls.atomic():
            refund = Refund.objects.create(
                payment=payment,
                booking_id=payment.booking_id,
                amount_cents=amount_cents,
                currency=payment.currency,
                reason=reason[:255],
                processor_reference=result.reference_id,
                idempotency_key=key,
            )
            posting = LedgerService.post(
                LedgerLeg.pair(
                    payment.booking_id,
                    TransactionType.REFUND,
                    debit=AccountType.CASH,
                    credit=AccountType.LIABILITY,
                    amount_cents=amount_cents,
                    currency=payment.currency,
                ),
                idempotency_key=LedgerService.posting_key(payment.booking_id, TransactionType.REFUND, purpose),
                description=f"Refund: {reason}"[:255],
                metadata={"refund_id": str(refund.id), "processor_reference": result.reference_id},
            )
            refund.posting_id = posting.id
            if result.is_succeeded:
                refund.succeed()
            refund.save()
            if result.is_succeeded:
                cls._mark_payment(payment)

        logger.info(
            "Refund issued",
            extra={
                "booking_id": str(payment.booking_id),
                "refund_id": str(refund.id),
                "amount_cents": amount_cents,
                "status": refund.status,
                "posting_id": str(posting.id),
            },
        )
        return refund

    @classmethod
    def _mark_payment(cls, payment: Payment) -> None:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status not in (PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED):
            return
        succeeded = sum(
            payment.refunds.filter(status=RefundStatus.SUCCEEDED).values_list("amount_cents", flat=True)
        )
        if succeeded >= payment.amount_cents:
            payment.mark_refunded()
        elif succeeded > 0:
            payment.mark_partially_refunded()
        payment.save()

    # =========================================================================
    # Webhook Resolution
    # =========================================================================

    @classmethod
    def _lock_by_reference(cls, processor_reference: str) -> Refund:
        refund = Refund.objects.select_for_update().filter(processor_reference=processor_reference).first()
        if refund is None:
            raise PaymentNotFoundError(
                f"Refund {processor_reference} not found",
                details={"processor_reference": processor_reference},
            )
        return refund

    @classmethod
    def confirm_refund(cls, processor_reference: str) -> Refund:
        """Processor confirmed a PENDING refund."""
        with cls.atomic():
            refund = cls._lock_by_reference(processor_reference)
            if refund.status != RefundStatus.PENDING:
                return refund
            refund.succeed()
            refund.save()
            cls._mark_payment(refund.payment)
            settled = cls._settle_if_booking_final(refund)

        cls.get_logger().info(
            "Refund confirmed",
            extra={
                "refund_id": str(refund.id),
                "booking_id": str(refund.booking_id),
                "legs_settled": settled,
            },
        )
        return refund

    @staticmethod
    def _settle_if_booking_final(refund: Refund) -> int:
        # Legs of a booking still awaiting settlement are settled with it.
        if not refund.posting_id:
            return 0
        if LedgerService.has_open_entries(refund.booking_id, exclude_postings=[refund.posting_id]):
            return 0
        return LedgerService.settle_posting(refund.posting_id)

    @classmethod
    def fail_refund(cls, processor_reference: str, reason: str = "") -> Refund:
        """Processor gave up on a PENDING refund; its legs are reversed."""
        with cls.atomic():
            refund = cls._lock_by_reference(processor_reference)
            if refund.status != RefundStatus.PENDING:
                return refund
            refund.fail(reason)
            refund.save()
            if refund.posting_id:
                LedgerService.reverse(
                    refund.posting_id,
                    idempotency_key=f"{refund.idempotency_key}:reversal",
                    reason=f"Refund failed: {reason}"[:255],
                )

        cls.get_logger().error(
            "Refund failed at processor",
            extra={"refund_id": str(refund.id), "booking_id": str(refund.booking_id), "reason": reason},
        )
        return refund

    # =========================================================================
    # Reconciliation
    # =========================================================================

    @staticmethod
    def unconfirmed_postings(booking_id: uuid.UUID) -> list[uuid.UUID]:
        """Ledger postings of a booking's refunds the processor has not confirmed."""
        return list(
            Refund.objects.filter(booking_id=booking_id, status=RefundStatus.PENDING)
            .exclude(posting_id=None)
            .values_list("posting_id", flat=True)
        )

    @classmethod
    def reconcile_pending_refunds(cls, booking_id: uuid.UUID) -> int:
        """
        Poll the processor for a booking's PENDING refunds and record the outcome.

        Returns the number of refunds still pending afterwards.
        """
        still_pending = 0
        pending = Refund.objects.filter(booking_id=booking_id, status=RefundStatus.PENDING)
        for refund in pending:
            result = get_processor().retrieve_refund(refund.processor_reference)
            if result.is_succeeded:
                cls.confirm_refund(refund.processor_reference)
            elif result.is_failed:
                cls.fail_refund(refund.processor_reference, reason=result.failure_code or "failed")
            else:
                still_pending += 1
        return still_pending
