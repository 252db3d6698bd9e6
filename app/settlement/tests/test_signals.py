"""Tests for the settlement booking event receivers."""

import uuid
from unittest.mock import patch

import pytest

from bookings.events import BookingEvent, deliver_booking_event
from bookings.models import Booking
from bookings.states import BookingAction, BookingStatus
from disputes.models import DisputeType, ResolutionOutcome
from disputes.services import DisputeService
from payments.models import Payout
from settlement.models import Settlement, SettlementStatus
from settlement.services import SettlementOrchestrator
from settlement.tasks import settle_booking_task


@pytest.mark.django_db
class TestSettleOnBookingEvent:
    def test_completion_schedules_settlement(self, completed_booking):
        event = BookingEvent(
            booking_id=completed_booking.id,
            action=BookingAction.APPROVE_RETURN,
            from_status=BookingStatus.AWAITING_RETURN_INSPECTION,
            to_status=BookingStatus.COMPLETED,
        )

        with patch.object(settle_booking_task, "apply_async") as apply_async:
            assert deliver_booking_event(event) == 0

        settlement = Settlement.objects.get(booking_id=completed_booking.id)
        assert settlement.status == SettlementStatus.PENDING
        assert settlement.next_attempt_at == SettlementOrchestrator.eligible_at(completed_booking)
        apply_async.assert_called_once_with(args=[str(completed_booking.id)], countdown=72 * 3600)

    def test_dispute_settlement_pays_owner(self, awaiting_inspection_booking, owner_id):
        dispute = DisputeService.open_dispute(
            awaiting_inspection_booking.id,
            owner_id,
            DisputeType.PROPERTY_DAMAGE,
            claimed_amount_cents=3000,
            description="Broken lamp",
        )
        DisputeService.resolve_dispute(
            dispute.id,
            ResolutionOutcome.RESOLVED_COMPROMISE,
            refund_amount_cents=1500,
            resolved_by=uuid.uuid4(),
        )
        event = BookingEvent(
            booking_id=awaiting_inspection_booking.id,
            action=BookingAction.RESOLVE_DISPUTE,
            from_status=BookingStatus.DISPUTED,
            to_status=BookingStatus.SETTLED,
        )

        assert deliver_booking_event(event) == 0

        assert Settlement.objects.get(booking_id=dispute.booking_id).status == SettlementStatus.SETTLED
        assert Payout.objects.get(booking_id=dispute.booking_id).amount_cents == 10000

    def test_other_events_ignored(self, confirmed_booking):
        event = BookingEvent(
            booking_id=confirmed_booking.id,
            action=BookingAction.ACTIVATE,
            from_status=BookingStatus.CONFIRMED,
            to_status=BookingStatus.ACTIVE,
        )

        deliver_booking_event(event)

        assert not Settlement.objects.filter(booking_id=confirmed_booking.id).exists()
        assert Booking.objects.get(pk=confirmed_booking.id).status == BookingStatus.CONFIRMED
