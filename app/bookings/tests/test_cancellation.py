"""
Tests for cancellation money unwinding.

Default booking: $100 base + $10 service fee + $5 tax = $115 charged,
$50 deposit held.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.exceptions import InvalidTransition, TransitionFailed
from bookings.models import Booking, CancellationPolicy
from bookings.payments import PaymentService
from bookings.services import BookingStateMachine
from bookings.states import Actor, BookingAction, BookingStatus
from payments.adapters import ProcessorStatus
from payments.deposits import DepositHold
from payments.ledger import AccountType, LedgerService, TransactionType
from payments.models import Payment, Refund
from payments.state_machines import DepositHoldStatus, PaymentStatus


@pytest.fixture
def confirm(advance, renter_id, owner_id):
    """Drive a DRAFT booking to CONFIRMED."""
    def run(booking):
        booking = advance(
            booking,
            (BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id)),
            (BookingAction.OWNER_APPROVE, Actor.owner(owner_id)),
        )
        return PaymentService.complete_payment(booking.id, Actor.renter(renter_id), "pm_card_visa")

    return run


@pytest.mark.django_db
class TestCancelActiveBooking:
    """Renter cancels after check-in under a flexible policy: half refunded."""

    @pytest.fixture
    def cancelled(self, make_booking, confirm, advance, renter_id):
        booking = confirm(make_booking(start_at=timezone.now() - timedelta(hours=1)))
        booking = advance(booking, (BookingAction.ACTIVATE, Actor.system("scheduler")))
        assert booking.status == BookingStatus.ACTIVE
        return BookingStateMachine.transition(
            booking.id, BookingAction.CANCEL, Actor.renter(renter_id), reason="Plans changed"
        )

    def test_booking_is_cancelled(self, cancelled, renter_id):
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.refund_fraction == Decimal("0.5")
        assert cancelled.refund_amount_cents == 5750
        assert cancelled.cancelled_by == f"renter:{renter_id}"
        assert cancelled.cancellation_reason == "Plans changed"
        assert cancelled.cancelled_at is not None

    def test_half_of_total_is_refunded(self, cancelled, fake_processor):
        refund = Refund.objects.get(booking_id=cancelled.id)
        assert refund.amount_cents == 5750
        assert fake_processor.operations("refund")[0]["amount_cents"] == 5750
        assert Payment.objects.get(booking_id=cancelled.id).status == PaymentStatus.PARTIALLY_REFUNDED

    def test_deposit_is_released(self, cancelled):
        hold = DepositHold.objects.get(booking_id=cancelled.id)
        assert hold.status == DepositHoldStatus.RELEASED
        assert hold.released_cents == 5000

    def test_only_retained_amount_remains(self, cancelled):
        balances = LedgerService.get_booking_balances(cancelled.id)

        assert balances[AccountType.CASH] == -5750
        assert balances[AccountType.LIABILITY] == 5750
        assert LedgerService.find_unbalanced_postings() == []

    def test_ledger_legs(self, cancelled):
        types = {entry.transaction_type for entry in LedgerService.get_booking_ledger(cancelled.id)}

        assert types == {
            TransactionType.PAYMENT,
            TransactionType.DEPOSIT_HOLD,
            TransactionType.REFUND,
            TransactionType.DEPOSIT_RELEASE,
        }


@pytest.mark.django_db
class TestRefundFraction:
    def test_flexible_with_notice_refunds_everything(self, confirmed_booking, renter_id):
        booking = BookingStateMachine.transition(confirmed_booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        assert booking.refund_amount_cents == 11500
        assert Payment.objects.get(booking_id=booking.id).status == PaymentStatus.REFUNDED
        assert LedgerService.get_balance(booking.id, AccountType.CASH).cents == 0

    def test_moderate_between_tiers(self, make_booking, confirm, renter_id):
        booking = confirm(
            make_booking(
                start_at=timezone.now() + timedelta(hours=30),
                cancellation_policy=CancellationPolicy.MODERATE,
            )
        )

        booking = BookingStateMachine.transition(booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        assert booking.refund_fraction == Decimal("0.5")
        assert booking.refund_amount_cents == 5750

    def test_strict_late_cancellation_refunds_nothing(self, make_booking, confirm, renter_id):
        booking = confirm(
            make_booking(
                start_at=timezone.now() + timedelta(days=2),
                cancellation_policy=CancellationPolicy.STRICT,
            )
        )

        booking = BookingStateMachine.transition(booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        assert booking.refund_amount_cents == 0
        assert not Refund.objects.filter(booking_id=booking.id).exists()
        assert DepositHold.objects.get(booking_id=booking.id).status == DepositHoldStatus.RELEASED

    def test_owner_cancellation_refunds_in_full(self, make_booking, confirm, owner_id):
        booking = confirm(
            make_booking(
                start_at=timezone.now() + timedelta(days=2),
                cancellation_policy=CancellationPolicy.STRICT,
            )
        )

        booking = BookingStateMachine.transition(booking.id, BookingAction.CANCEL, Actor.owner(owner_id))

        assert booking.refund_fraction == Decimal("1")
        assert booking.refund_amount_cents == 11500


@pytest.mark.django_db
class TestCancellationEdges:
    def test_owner_reject_before_payment(self, pending_approval_booking, owner_id, fake_processor):
        booking = BookingStateMachine.transition(
            pending_approval_booking.id, BookingAction.OWNER_REJECT, Actor.owner(owner_id), reason="Dates taken"
        )

        assert booking.status == BookingStatus.CANCELLED
        assert booking.refund_amount_cents == 0
        assert fake_processor.operations("refund") == []

    def test_cannot_cancel_once_rental_started(self, in_progress_booking, renter_id):
        with pytest.raises(InvalidTransition):
            BookingStateMachine.transition(in_progress_booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

    def test_refund_failure_rolls_back_cancellation(self, confirmed_booking, renter_id, fake_processor):
        fake_processor.script("refund", ProcessorStatus.FAILED)

        with pytest.raises(TransitionFailed) as exc_info:
            BookingStateMachine.transition(confirmed_booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        assert exc_info.value.details["cause"] == "REFUND_FAILED"
        booking = Booking.objects.get(pk=confirmed_booking.pk)
        assert booking.status == BookingStatus.CONFIRMED
        assert DepositHold.objects.get(booking_id=booking.id).status == DepositHoldStatus.AUTHORIZED
        assert not Refund.objects.filter(booking_id=booking.id).exists()
