"""
Booking lifecycle events.

Every committed transition produces one BookingEvent. Delivery is
best-effort and never blocks or fails the transition:

    Booking.advance()            (django-fsm)
      -> post_transition         (bookings.signals)
      -> transaction.on_commit
      -> publish_booking_event   (Celery task)
      -> booking_event           (Django signal; notification/settlement receivers)

Usage:
    from django.dispatch import receiver
    from bookings.events import booking_event

    @receiver(booking_event)
    def on_booking_event(sender, event, **kwargs):
        if event.to_status == "completed":
            ...
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from django.dispatch import Signal
from django.utils import timezone
from django.utils.dateparse import parse_datetime

logger = logging.getLogger(__name__)

# Sent with ``event=BookingEvent`` once the transition has committed.
booking_event = Signal()


@dataclass(frozen=True)
class BookingEvent:
    booking_id: uuid.UUID
    action: str
    from_status: str
    to_status: str
    actor: str = ""
    reason: str = ""
    occurred_at: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["booking_id"] = str(self.booking_id)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BookingEvent:
        return cls(
            booking_id=uuid.UUID(data["booking_id"]),
            action=data["action"],
            from_status=data["from_status"],
            to_status=data["to_status"],
            actor=data.get("actor", ""),
            reason=data.get("reason", ""),
            occurred_at=parse_datetime(data["occurred_at"]) if data.get("occurred_at") else timezone.now(),
        )


def dispatch_booking_event(event: BookingEvent) -> None:
    """Queue delivery of ``event``. Failures are logged, never raised."""
    from bookings.tasks import publish_booking_event

    try:
        publish_booking_event.delay(event.to_dict())
    except Exception as e:
        logger.warning(
            f"Failed to dispatch booking event: {e}",
            extra={
                "booking_id": str(event.booking_id),
                "action": event.action,
                "to_status": event.to_status,
            },
        )


def deliver_booking_event(event: BookingEvent) -> int:
    """
    Send ``booking_event`` to every receiver.

    Receiver errors are logged and swallowed so one failing consumer does
    not stop the others. Returns the number of receivers that failed.
    """
    failures = 0
    for receiver, response in booking_event.send_robust(sender=BookingEvent, event=event):
        if isinstance(response, Exception):
            failures += 1
            logger.warning(
                f"Booking event receiver {getattr(receiver, '__name__', receiver)} failed: {response}",
                extra={"booking_id": str(event.booking_id), "to_status": event.to_status},
            )
    return failures
