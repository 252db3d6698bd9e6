"""
Celery tasks for settlement and owner payouts.

This module provides async tasks for:
- Settling one booking (queued when a booking completes, and by the sweep)
- Sweeping due retries and missed completions (celery-beat)
- Executing owner payouts and batching pending ones (celery-beat)

Usage:
    from settlement.tasks import settle_booking_task

    settle_booking_task.apply_async(args=[str(booking.id)], countdown=3600)
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from payments.exceptions import LockAcquisitionError, StripeError
from payments.services import PayoutService
from settlement.services import SettlementOrchestrator

logger = logging.getLogger(__name__)


# =============================================================================
# Settlement
# =============================================================================


@shared_task(ignore_result=True)
def settle_booking_task(booking_id: str) -> str | None:
    """
    Make one settlement attempt for ``booking_id``.

    A busy booking is left for the next sweep.
    """
    try:
        settlement = SettlementOrchestrator.settle_booking(UUID(booking_id))
    except LockAcquisitionError:
        logger.info("Booking busy; settlement left for the next sweep", extra={"booking_id": booking_id})
        return None
    return settlement.status


@shared_task
def sweep_settlements() -> dict:
    """Queue every settlement that is due (celery-beat)."""
    due = SettlementOrchestrator.due_bookings()
    for booking_id in due:
        settle_booking_task.delay(booking_id)
    if due:
        logger.info("Settlement sweep queued bookings", extra={"count": len(due)})
    return {"queued": len(due)}


# =============================================================================
# Payouts
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(StripeError, LockAcquisitionError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 5},
)
def execute_payout_task(self, payout_id: str) -> dict:
    """
    Transfer one payout to the owner.

    Transient processor errors are re-raised by PayoutService and retried
    here with backoff; declines leave the payout FAILED.
    """
    result = PayoutService.execute_payout(UUID(payout_id))
    return {"payout_id": payout_id, "success": result.success, "error_code": result.error_code}


@shared_task
def process_pending_payouts() -> dict:
    """Queue payouts for owners whose pending total reached the minimum (celery-beat)."""
    payout_ids = SettlementOrchestrator.due_payouts()
    for payout_id in payout_ids:
        execute_payout_task.delay(str(payout_id))
    return {"queued": len(payout_ids)}
