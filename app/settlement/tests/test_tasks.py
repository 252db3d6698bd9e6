"""Tests for settlement and payout Celery tasks."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from bookings.services import BookingStateMachine
from bookings.states import Actor, BookingAction
from payments.exceptions import StripeInvalidAccountError
from payments.ledger import EntryStatus, LedgerEntry
from payments.models import Payout
from payments.state_machines import PayoutStatus
from payments.tests.factories import PayoutFactory
from settlement.models import Settlement, SettlementStatus
from settlement.tasks import (
    execute_payout_task,
    process_pending_payouts,
    settle_booking_task,
    sweep_settlements,
)
from settlement.tests.factories import SettlementFactory


@pytest.mark.django_db
class TestSettleBookingTask:
    def test_settles_booking(self, completed_booking):
        with freeze_time(timezone.now() + timedelta(hours=73)):
            status = settle_booking_task(str(completed_booking.id))

        assert status == SettlementStatus.SETTLED

    def test_busy_booking_left_for_sweep(self, completed_booking, redis_lock):
        redis_lock.set.return_value = False

        assert settle_booking_task(str(completed_booking.id)) is None
        assert not Settlement.objects.filter(booking_id=completed_booking.id).exists()


@pytest.mark.django_db
class TestSweepSettlements:
    def test_queues_due_settlements(self):
        due = SettlementFactory(next_attempt_at=timezone.now() - timedelta(minutes=1))
        SettlementFactory(next_attempt_at=timezone.now() + timedelta(hours=1))

        with patch.object(settle_booking_task, "delay") as delay:
            result = sweep_settlements()

        assert result == {"queued": 1}
        delay.assert_called_once_with(str(due.booking_id))

    def test_settles_missed_completion(self, completed_booking):
        with freeze_time(timezone.now() + timedelta(hours=73)):
            result = sweep_settlements()

        assert result == {"queued": 1}
        settlement = Settlement.objects.get(booking_id=completed_booking.id)
        assert settlement.status == SettlementStatus.SETTLED

    def test_closes_out_cancelled_booking(self, confirmed_booking, renter_id):
        BookingStateMachine.transition(confirmed_booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        with freeze_time(timezone.now() + timedelta(days=30)):
            result = sweep_settlements()

        assert result == {"queued": 1}
        assert Settlement.objects.get(booking_id=confirmed_booking.id).status == SettlementStatus.SETTLED
        assert set(LedgerEntry.objects.filter(booking_id=confirmed_booking.id).values_list("status", flat=True)) == {
            EntryStatus.SETTLED
        }


@pytest.mark.django_db
class TestPayoutTasks:
    def test_process_pending_payouts(self, fake_processor):
        PayoutFactory(amount_cents=8500)
        PayoutFactory(amount_cents=1000)

        assert process_pending_payouts() == {"queued": 1}
        assert Payout.objects.filter(status=PayoutStatus.PAID).count() == 1
        assert len(fake_processor.operations("transfer")) == 1

    def test_execute_payout(self):
        payout = PayoutFactory()

        result = execute_payout_task(str(payout.id))

        assert result == {"payout_id": str(payout.id), "success": True, "error_code": None}

    def test_declined_transfer_reported(self, fake_processor):
        payout = PayoutFactory()
        fake_processor.fail("transfer", StripeInvalidAccountError("No such destination"))

        result = execute_payout_task(str(payout.id))

        assert result["success"] is False
        assert Payout.objects.get(pk=payout.pk).status == PayoutStatus.FAILED
