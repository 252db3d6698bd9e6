"""
Celery tasks for the booking lifecycle.

This module provides async tasks for:
- Publishing committed BookingEvents to in-process receivers
- Scanning for time-driven transitions (timeouts, check-in, checkout,
  inspection grace)
- Applying one scheduled transition under the per-booking lock

Usage:
    from bookings.tasks import run_booking_timeouts

    run_booking_timeouts.delay()
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.db.models import Q
from django.utils import timezone

from bookings.events import BookingEvent, deliver_booking_event
from bookings.exceptions import InvalidTransition
from bookings.models import Booking
from bookings.services import BookingStateMachine
from bookings.states import Actor, BookingAction, BookingStatus
from payments.exceptions import LockAcquisitionError
from payments.locks import booking_lock

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SCAN_BATCH_SIZE = 500

SCHEDULER = Actor.system("scheduler")


# =============================================================================
# Event Delivery
# =============================================================================


@shared_task(ignore_result=True)
def publish_booking_event(event_data: dict) -> int:
    """Deliver a serialized BookingEvent to ``booking_event`` receivers."""
    return deliver_booking_event(BookingEvent.from_dict(event_data))


# =============================================================================
# Scheduled Transitions
# =============================================================================


def _due_transitions(now) -> list[tuple[str, str]]:
    """(booking_id, action) pairs whose time has come."""
    scans = [
        (
            BookingAction.EXPIRE,
            Q(status__in=[BookingStatus.PENDING_OWNER_APPROVAL, BookingStatus.PENDING_PAYMENT], expires_at__lte=now),
        ),
        (BookingAction.ACTIVATE, Q(status=BookingStatus.CONFIRMED, start_at__lte=now)),
        (BookingAction.REQUEST_RETURN, Q(status=BookingStatus.IN_PROGRESS, end_at__lte=now)),
        (
            BookingAction.APPROVE_RETURN,
            Q(status=BookingStatus.AWAITING_RETURN_INSPECTION, inspection_due_at__lte=now),
        ),
    ]
    due = []
    for action, condition in scans:
        ids = Booking.objects.filter(condition).values_list("id", flat=True)[:SCAN_BATCH_SIZE]
        due.extend((str(booking_id), str(action)) for booking_id in ids)
    return due


@shared_task
def run_booking_timeouts() -> dict:
    """
    Queue every time-driven transition that is due (celery-beat).

    - EXPIRE: approval or payment window elapsed
    - ACTIVATE: check-in time reached
    - REQUEST_RETURN: checkout time reached
    - APPROVE_RETURN: inspection grace elapsed without a dispute
    """
    due = _due_transitions(timezone.now())
    for booking_id, action in due:
        apply_scheduled_transition.delay(booking_id, action)

    if due:
        logger.info(f"Queued {len(due)} scheduled booking transitions", extra={"queued_count": len(due)})
    return {"queued_count": len(due)}


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def apply_scheduled_transition(self, booking_id: str, action: str) -> dict:
    """
    Apply one time-driven transition.

    Runs under the per-booking lock so two workers never race on the same
    booking. A booking that moved on since the scan is skipped.
    """
    log_context = {"booking_id": booking_id, "action": action}
    try:
        with booking_lock(booking_id, blocking=False):
            booking = BookingStateMachine.transition(
                UUID(booking_id), action, SCHEDULER, reason="Scheduled transition"
            )
    except LockAcquisitionError as e:
        logger.info("Booking busy, retrying scheduled transition", extra=log_context)
        raise self.retry(exc=e)
    except InvalidTransition as e:
        logger.info(
            "Scheduled transition no longer applies",
            extra={**log_context, "status": e.details.get("current_status")},
        )
        return {"status": "skipped", "booking_id": booking_id, "action": action}

    return {"status": "applied", "booking_id": booking_id, "action": action, "to_status": booking.status}

