"""
Tests for webhook event handlers.

Handlers are called through ``dispatch_webhook`` with stored events, the
way ``process_webhook_event`` calls them.
"""

import pytest

from bookings.models import Booking
from bookings.payments import PaymentService
from bookings.states import Actor, BookingStatus
from payments.adapters import ProcessorStatus
from payments.deposits import DepositHold
from payments.exceptions import ExternalPending
from payments.models import Payout, Refund
from payments.state_machines import DepositHoldStatus, PayoutStatus, RefundStatus
from payments.tests.factories import DepositHoldFactory, PayoutFactory, RefundFactory
from payments.webhooks.handlers import dispatch_webhook


@pytest.fixture
def pending_intent(pending_payment_booking, renter_id, fake_processor):
    """Booking payment the processor has accepted but not confirmed."""
    fake_processor.script("authorize", ProcessorStatus.PENDING)
    with pytest.raises(ExternalPending) as exc_info:
        PaymentService.complete_payment(pending_payment_booking.id, Actor.renter(renter_id), "pm_card_visa")
    return exc_info.value.reference_id


@pytest.mark.django_db
class TestPaymentIntentHandlers:
    def test_succeeded_confirms_booking(self, make_event, pending_payment_booking, pending_intent):
        event = make_event("payment_intent.succeeded", {"id": pending_intent})

        result = dispatch_webhook(event)

        assert result.success
        assert result.data["status"] == BookingStatus.CONFIRMED
        assert Booking.objects.get(pk=pending_payment_booking.id).status == BookingStatus.CONFIRMED

    def test_failed_cancels_booking(self, make_event, pending_payment_booking, pending_intent):
        event = make_event(
            "payment_intent.payment_failed",
            {"id": pending_intent, "last_payment_error": {"message": "Your card has insufficient funds."}},
        )

        result = dispatch_webhook(event)

        assert result.success
        assert Booking.objects.get(pk=pending_payment_booking.id).status == BookingStatus.CANCELLED

    def test_unknown_intent_fails_for_retry(self, make_event):
        result = dispatch_webhook(make_event("payment_intent.succeeded", {"id": "pi_unknown"}))

        assert not result.success
        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_missing_object_id(self, make_event):
        result = dispatch_webhook(make_event("payment_intent.succeeded", {}))

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_deposit_intent_success_is_ignored(self, make_event):
        hold = DepositHoldFactory()

        result = dispatch_webhook(make_event("payment_intent.succeeded", {"id": hold.processor_reference}))

        assert result.success
        assert result.data is None

    def test_canceled_deposit_intent_fails_hold(self, make_event):
        hold = DepositHoldFactory(status=DepositHoldStatus.PENDING)

        result = dispatch_webhook(make_event("payment_intent.canceled", {"id": hold.processor_reference}))

        assert result.success
        assert DepositHold.objects.get(pk=hold.pk).status == DepositHoldStatus.FAILED

    def test_capturable_confirms_pending_hold(self, make_event):
        hold = DepositHoldFactory(status=DepositHoldStatus.PENDING, authorized_at=None)

        result = dispatch_webhook(
            make_event("payment_intent.amount_capturable_updated", {"id": hold.processor_reference})
        )

        assert result.data["status"] == DepositHoldStatus.AUTHORIZED
        assert DepositHold.objects.get(pk=hold.pk).authorized_at is not None


@pytest.mark.django_db
class TestRefundHandlers:
    def test_refund_updated_succeeded(self, make_event):
        refund = RefundFactory()

        result = dispatch_webhook(
            make_event("charge.refund.updated", {"id": refund.processor_reference, "status": "succeeded"})
        )

        assert result.success
        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.SUCCEEDED

    def test_refund_updated_failed(self, make_event):
        refund = RefundFactory()

        dispatch_webhook(
            make_event(
                "charge.refund.updated",
                {"id": refund.processor_reference, "status": "failed", "failure_reason": "expired_or_canceled_card"},
            )
        )

        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "expired_or_canceled_card"

    def test_charge_refunded_confirms_known_refunds(self, make_event):
        refund = RefundFactory()
        charge = {
            "id": "ch_test",
            "refunds": {
                "data": [
                    {"id": refund.processor_reference, "status": "succeeded"},
                    {"id": "re_unknown", "status": "succeeded"},
                ]
            },
        }

        result = dispatch_webhook(make_event("charge.refunded", charge))

        assert result.data == {"confirmed": [str(refund.id)]}


@pytest.mark.django_db
class TestPayoutHandlers:
    def test_transfer_paid(self, make_event):
        payout = PayoutFactory(status=PayoutStatus.PROCESSING, processor_reference="tr_pending_1")

        result = dispatch_webhook(make_event("transfer.paid", {"id": "tr_pending_1"}))

        assert result.success
        payout = Payout.objects.get(pk=payout.pk)
        assert payout.status == PayoutStatus.PAID
        assert payout.posting_id is not None

    def test_transfer_failed(self, make_event):
        payout = PayoutFactory(status=PayoutStatus.PROCESSING, processor_reference="tr_pending_2")

        dispatch_webhook(make_event("payout.failed", {"id": "tr_pending_2", "failure_message": "account_closed"}))

        payout = Payout.objects.get(pk=payout.pk)
        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == "account_closed"

    def test_unknown_transfer_is_ignored(self, make_event):
        result = dispatch_webhook(make_event("transfer.paid", {"id": "tr_unknown"}))

        assert result.success
        assert result.data is None
