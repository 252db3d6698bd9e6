"""
Django signal handlers for the bookings app.

- post_transition (django-fsm): queue a BookingEvent once the transition commits

Related files:
    - events.py: BookingEvent and dispatch
    - apps.py: Signal import in ready()
"""

import logging
from functools import partial

from django.db import transaction
from django.dispatch import receiver
from django_fsm.signals import post_transition

from bookings.events import BookingEvent, dispatch_booking_event
from bookings.models import Booking

logger = logging.getLogger(__name__)


@receiver(post_transition, sender=Booking)
def queue_booking_event(sender, instance, name, source, target, **kwargs):
    """
    Publish a BookingEvent after the surrounding transaction commits.

    A rolled-back transition never publishes anything.
    """
    method_kwargs = kwargs.get("method_kwargs") or {}
    event = BookingEvent(
        booking_id=instance.pk,
        action=str(method_kwargs.get("action", name)),
        from_status=str(source),
        to_status=str(target),
        actor=method_kwargs.get("actor", ""),
        reason=method_kwargs.get("reason", ""),
    )
    logger.debug(
        f"Booking {instance.pk} moved {source} -> {target}",
        extra={"booking_id": str(instance.pk), "action": event.action},
    )
    transaction.on_commit(partial(dispatch_booking_event, event))
