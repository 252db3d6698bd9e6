"""
Factory Boy factories for settlement test data.

SettlementFactory writes rows only; the booking and its ledger legs are
untouched. Settle real bookings through SettlementOrchestrator.
"""

import uuid

import factory
from django.utils import timezone

from settlement.models import Settlement, SettlementStatus


class SettlementFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Settlement
        skip_postgeneration_save = True

    booking_id = factory.LazyFunction(uuid.uuid4)
    owner_id = factory.LazyFunction(uuid.uuid4)
    status = SettlementStatus.PENDING
    next_attempt_at = factory.LazyFunction(timezone.now)
