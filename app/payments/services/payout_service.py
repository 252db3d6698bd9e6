"""
Payout service for transferring owner earnings out of the platform.

Execution follows a two-phase pattern:
1. Phase 1: Move the payout to PROCESSING and commit
2. Phase 2: Call the processor transfer (outside any transaction)
3. Phase 3: Record the outcome; on success post PAYOUT legs
   (CASH -> RECEIVABLE(owner)) as SETTLED

If the transfer succeeds but phase 3 never runs, the payout stays in
PROCESSING; re-executing it replays the transfer with the same idempotency
key and finishes phase 3.

Usage:
    from payments.services import PayoutService

    result = PayoutService.execute_payout(payout_id)

    if result.success:
        print(f"Transfer: {result.data.processor_reference}")
"""

from __future__ import annotations

import logging
import uuid

from django.db import transaction

from core.services import BaseService, ServiceResult

from payments.adapters import IdempotencyKeyGenerator, get_processor
from payments.exceptions import ExternalFailed, PaymentNotFoundError, StripeError
from payments.ledger import AccountType, EntryStatus, LedgerLeg, LedgerService, TransactionType
from payments.locks import DistributedLock
from payments.models import Payout
from payments.state_machines import PayoutStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Distributed lock TTL for payout execution (seconds)
PAYOUT_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
PAYOUT_LOCK_TIMEOUT = 10.0


class PayoutService(BaseService):
    """
    Executes payouts to owner processor accounts.

    Error Handling:
        - Transient processor errors: re-raised so the Celery task retries;
          the payout stays PROCESSING
        - Declines and FAILED results: payout moves to FAILED
        - PENDING results: payout stays PROCESSING until ``mark_paid``
    """

    @classmethod
    def execute_payout(cls, payout_id: uuid.UUID) -> ServiceResult[Payout]:
        with DistributedLock(f"payout:{payout_id}", ttl=PAYOUT_LOCK_TTL, timeout=PAYOUT_LOCK_TIMEOUT):
            return cls._execute_with_lock(payout_id)

    @classmethod
    def _execute_with_lock(cls, payout_id: uuid.UUID) -> ServiceResult[Payout]:
        # Phase 1
        with transaction.atomic():
            payout = Payout.objects.select_for_update().filter(id=payout_id).first()
            if payout is None:
                raise PaymentNotFoundError(
                    f"Payout {payout_id} not found",
                    details={"payout_id": str(payout_id)},
                )
            if payout.status == PayoutStatus.PAID:
                return ServiceResult.success(payout)
            if payout.status == PayoutStatus.FAILED:
                return ServiceResult.failure(
                    f"Payout {payout_id} has failed; retry it first",
                    error_code="PAYOUT_FAILED",
                )
            if payout.status == PayoutStatus.PENDING:
                payout.start_processing()
                payout.save()

        # Phase 2
        log_context = {
            "payout_id": str(payout.id),
            "owner_id": str(payout.owner_id),
            "booking_id": str(payout.booking_id),
            "amount_cents": payout.amount_cents,
        }
        logger.info("Executing payout transfer", extra=log_context)

        try:
            result = get_processor().transfer(
                payout.destination_account,
                amount_cents=payout.amount_cents,
                currency=payout.currency,
                idempotency_key=IdempotencyKeyGenerator.generate("payout", payout.id),
                metadata={"payout_id": str(payout.id), "booking_id": str(payout.booking_id)},
            )
        except StripeError as e:
            if e.is_retryable:
                logger.warning(
                    f"Transient processor error, will retry: {type(e).__name__}",
                    extra={**log_context, "error": str(e)},
                )
                raise
            return cls._fail(payout.id, str(e))
        except ExternalFailed as e:
            return cls._fail(payout.id, str(e))

        # Phase 3
        if result.is_failed:
            return cls._fail(payout.id, result.failure_message or result.failure_code or "transfer failed")

        if result.is_pending:
            with transaction.atomic():
                payout = Payout.objects.select_for_update().get(id=payout.id)
                payout.processor_reference = result.reference_id
                payout.save(update_fields=["processor_reference", "updated_at"])
            logger.info("Payout transfer pending confirmation", extra=log_context)
            return ServiceResult.success(payout)

        return ServiceResult.success(cls._complete(payout.id, result.reference_id))

    @classmethod
    def _complete(cls, payout_id: uuid.UUID, transfer_id: str) -> Payout:
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status != PayoutStatus.PROCESSING:
                return payout
            posting = LedgerService.post(
                LedgerLeg.pair(
                    payout.booking_id,
                    TransactionType.PAYOUT,
                    debit=AccountType.CASH,
                    credit=AccountType.RECEIVABLE,
                    amount_cents=payout.amount_cents,
                    currency=payout.currency,
                    credit_owner_id=payout.owner_id,
                ),
                idempotency_key=LedgerService.posting_key(
                    payout.booking_id, TransactionType.PAYOUT, f"transfer:{payout.id}"
                ),
                description="Owner payout transferred",
                metadata={"payout_id": str(payout.id), "transfer_id": transfer_id},
                entry_status=EntryStatus.SETTLED,
            )
            payout.posting_id = posting.id
            payout.complete(transfer_id)
            payout.save()

        logger.info(
            "Payout paid",
            extra={
                "payout_id": str(payout.id),
                "owner_id": str(payout.owner_id),
                "transfer_id": transfer_id,
                "posting_id": str(posting.id),
            },
        )
        return payout

    @classmethod
    def _fail(cls, payout_id: uuid.UUID, reason: str) -> ServiceResult[Payout]:
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
                payout.fail(reason=reason)
                payout.save()

        logger.error(
            "Payout failed",
            extra={"payout_id": str(payout_id), "owner_id": str(payout.owner_id), "reason": reason},
        )
        return ServiceResult.failure(reason, error_code="PAYOUT_FAILED")

    # =========================================================================
    # Webhook Resolution
    # =========================================================================

    @classmethod
    def mark_paid(cls, transfer_id: str) -> Payout | None:
        """Processor confirmed a transfer left PROCESSING."""
        payout = Payout.objects.filter(processor_reference=transfer_id).first()
        if payout is None:
            return None
        return cls._complete(payout.id, transfer_id)

    @classmethod
    def mark_failed(cls, transfer_id: str, reason: str = "") -> Payout | None:
        payout = Payout.objects.filter(processor_reference=transfer_id).first()
        if payout is None:
            return None
        cls._fail(payout.id, reason or "transfer failed")
        payout.refresh_from_db()
        return payout

    @classmethod
    def retry_payout(cls, payout_id: uuid.UUID) -> Payout:
        """Operator re-queue: FAILED -> PENDING."""
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status == PayoutStatus.FAILED:
                payout.retry()
                payout.save()
        logger.info("Payout re-queued", extra={"payout_id": str(payout_id)})
        return payout

    @classmethod
    def get_pending_payouts(cls, limit: int = 100) -> list[Payout]:
        return list(Payout.objects.filter(status=PayoutStatus.PENDING).order_by("created_at")[:limit])


__all__ = [
    "PayoutService",
]
