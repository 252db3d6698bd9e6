"""
Booking event receivers for settlement.

- COMPLETED: create the settlement record and queue an attempt for the
  end of the dispute filing window
- SETTLED by a dispute resolution: close the settlement and create the
  owner's payout

Related files:
    - bookings/events.py: BookingEvent and the booking_event signal
    - apps.py: Signal import in ready()
"""

import logging

from django.conf import settings
from django.dispatch import receiver

from bookings.events import BookingEvent, booking_event
from bookings.services import BookingService
from bookings.states import BookingAction, BookingStatus
from settlement.services import SettlementOrchestrator

logger = logging.getLogger(__name__)


@receiver(booking_event)
def settle_on_booking_event(sender, event: BookingEvent, **kwargs):
    if event.to_status == BookingStatus.COMPLETED:
        from settlement.tasks import settle_booking_task

        booking = BookingService.get_booking(event.booking_id)
        SettlementOrchestrator.schedule(booking)
        settle_booking_task.apply_async(
            args=[str(booking.id)],
            countdown=settings.DISPUTE_FILING_WINDOW_HOURS * 3600,
        )
        logger.info("Settlement queued after completion", extra={"booking_id": str(booking.id)})

    elif event.to_status == BookingStatus.SETTLED and event.action == BookingAction.RESOLVE_DISPUTE:
        SettlementOrchestrator.record_dispute_settlement(event.booking_id)
