"""
Tests for DepositHoldManager.

Covers authorization (idempotent, pending, declined), release, partial
deduction, expiry, failure, and the ledger legs each operation posts.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from payments.adapters import ProcessorStatus
from payments.deposits import (
    DeductionExceedsHold,
    DepositHold,
    DepositHoldManager,
    InvalidHoldState,
)
from payments.exceptions import ExternalFailed
from payments.ledger import AccountType, LedgerPosting, LedgerService, TransactionType
from payments.state_machines import DepositHoldStatus


def balances(booking_id):
    return LedgerService.get_booking_balances(booking_id)


class TestAuthorize:
    def test_places_hold_and_posts_legs(self, authorized_hold, booking_id, fake_processor):
        assert authorized_hold.status == DepositHoldStatus.AUTHORIZED
        assert authorized_hold.expires_at > timezone.now()

        call = fake_processor.operations("authorize")[0]
        assert call["capture_method"] == "manual"
        assert call["amount_cents"] == 5000

        assert balances(booking_id) == {"cash": -5000, "liability": 5000}

    def test_second_call_returns_existing_hold(self, authorized_hold, booking_id, fake_processor):
        again = DepositHoldManager.authorize(booking_id, 5000, payment_method="pm_card_visa")

        assert again.id == authorized_hold.id
        assert len(fake_processor.operations("authorize")) == 1
        assert LedgerPosting.objects.filter(booking_id=booking_id).count() == 1

    def test_pending_authorization_posts_nothing_until_confirmed(self, db, booking_id, fake_processor):
        fake_processor.script("authorize", ProcessorStatus.PENDING)

        hold = DepositHoldManager.authorize(booking_id, 5000, payment_method="pm_card_visa")

        assert hold.status == DepositHoldStatus.PENDING
        assert balances(booking_id) == {}

        confirmed = DepositHoldManager.confirm(hold.id)

        assert confirmed.status == DepositHoldStatus.AUTHORIZED
        assert balances(booking_id) == {"cash": -5000, "liability": 5000}

    def test_declined_authorization_raises(self, db, booking_id, fake_processor):
        fake_processor.script("authorize", ProcessorStatus.FAILED)

        with pytest.raises(ExternalFailed) as exc_info:
            DepositHoldManager.authorize(booking_id, 5000, payment_method="pm_card_visa")

        assert exc_info.value.error_code == "DEPOSIT_DECLINED"
        assert not DepositHold.objects.exists()

    def test_request_writes_nothing(self, db, booking_id, fake_processor):
        result = DepositHoldManager.request_authorization(booking_id, 5000, payment_method="pm_card_visa")

        assert result.is_succeeded
        assert not DepositHold.objects.exists()
        assert balances(booking_id) == {}

    def test_repeated_request_reuses_authorization(self, db, booking_id, fake_processor):
        first = DepositHoldManager.request_authorization(booking_id, 5000, payment_method="pm_card_visa")
        second = DepositHoldManager.request_authorization(booking_id, 5000, payment_method="pm_card_visa")

        assert second.reference_id == first.reference_id
        assert len(fake_processor.operations("authorize")) == 1

    def test_record_hold_is_idempotent(self, db, booking_id):
        result = DepositHoldManager.request_authorization(booking_id, 5000, payment_method="pm_card_visa")

        hold = DepositHoldManager.record_hold(booking_id, result, 5000)
        again = DepositHoldManager.record_hold(booking_id, result, 5000)

        assert again.id == hold.id
        assert hold.processor_reference == result.reference_id
        assert balances(booking_id) == {"cash": -5000, "liability": 5000}

    def test_void_unrecorded_authorization(self, db, booking_id, fake_processor):
        result = DepositHoldManager.request_authorization(booking_id, 5000, payment_method="pm_card_visa")

        DepositHoldManager.void_authorization(booking_id, result)

        assert fake_processor.operations("cancel_authorization")[0]["intent_id"] == result.reference_id

    def test_confirm_rejects_closed_hold(self, authorized_hold):
        DepositHoldManager.release(authorized_hold.id)

        with pytest.raises(InvalidHoldState):
            DepositHoldManager.confirm(authorized_hold.id)


class TestRelease:
    def test_release_returns_full_amount(self, authorized_hold, booking_id, fake_processor):
        hold = DepositHoldManager.release(authorized_hold.id, reason="checkout clean")

        assert hold.status == DepositHoldStatus.RELEASED
        assert hold.released_cents == 5000
        assert hold.is_conserved
        assert fake_processor.operations("cancel_authorization")[0]["intent_id"] == hold.processor_reference
        assert balances(booking_id) == {"cash": 0, "liability": 0}

    def test_release_twice_is_noop(self, authorized_hold, fake_processor):
        DepositHoldManager.release(authorized_hold.id)
        DepositHoldManager.release(authorized_hold.id)

        assert len(fake_processor.operations("cancel_authorization")) == 1
        assert LedgerPosting.objects.filter(transaction_type=TransactionType.DEPOSIT_RELEASE).count() == 1

    def test_releasing_pending_hold_posts_no_legs(self, db, booking_id, fake_processor):
        fake_processor.script("authorize", ProcessorStatus.PENDING)
        hold = DepositHoldManager.authorize(booking_id, 5000, payment_method="pm_card_visa")

        released = DepositHoldManager.release(hold.id)

        assert released.status == DepositHoldStatus.RELEASED
        assert not LedgerPosting.objects.filter(booking_id=booking_id).exists()


class TestDeduct:
    def test_partial_deduction_releases_remainder(self, authorized_hold, booking_id, owner_id, fake_processor):
        hold = DepositHoldManager.deduct(authorized_hold.id, 1500, reason="Broken lamp")

        assert hold.status == DepositHoldStatus.CAPTURED
        assert hold.deducted_cents == 1500
        assert hold.released_cents == 3500
        assert hold.deduction_reason == "Broken lamp"
        assert hold.is_conserved
        assert fake_processor.operations("capture")[0]["amount_cents"] == 1500

        assert balances(booking_id) == {"cash": -1500, "liability": 0, "receivable": 1500}
        assert LedgerService.get_owner_balance(owner_id).cents == 1500

    def test_full_deduction_posts_no_release(self, authorized_hold):
        hold = DepositHoldManager.deduct(authorized_hold.id, 5000, reason="Total loss")

        assert hold.released_cents == 0
        assert not LedgerPosting.objects.filter(transaction_type=TransactionType.DEPOSIT_RELEASE).exists()

    def test_deduction_beyond_hold_is_rejected(self, authorized_hold, fake_processor):
        with pytest.raises(DeductionExceedsHold) as exc_info:
            DepositHoldManager.deduct(authorized_hold.id, 5001, reason="Too much")

        assert exc_info.value.requested_cents == 5001
        assert exc_info.value.available_cents == 5000

        authorized_hold.refresh_from_db()
        assert authorized_hold.status == DepositHoldStatus.AUTHORIZED
        assert fake_processor.operations("capture") == []

    def test_zero_deduction_releases(self, authorized_hold):
        hold = DepositHoldManager.deduct(authorized_hold.id, 0, reason="No damage")

        assert hold.status == DepositHoldStatus.RELEASED

    def test_deduct_from_released_hold_fails(self, authorized_hold):
        DepositHoldManager.release(authorized_hold.id)

        with pytest.raises(InvalidHoldState):
            DepositHoldManager.deduct(authorized_hold.id, 100, reason="Late claim")

    def test_rejected_capture_leaves_hold_untouched(self, authorized_hold, booking_id, fake_processor):
        fake_processor.script("capture", ProcessorStatus.FAILED)

        with pytest.raises(ExternalFailed):
            DepositHoldManager.deduct(authorized_hold.id, 1500, reason="Broken lamp")

        authorized_hold.refresh_from_db()
        assert authorized_hold.status == DepositHoldStatus.AUTHORIZED
        assert balances(booking_id) == {"cash": -5000, "liability": 5000}


class TestExpireAndFail:
    def test_expire_stale_holds(self, authorized_hold, booking_id):
        later = timezone.now() + timedelta(hours=169)

        assert DepositHoldManager.expire_stale_holds(now=later) == 1

        authorized_hold.refresh_from_db()
        assert authorized_hold.status == DepositHoldStatus.EXPIRED
        assert authorized_hold.released_cents == 5000
        assert authorized_hold.is_conserved
        assert balances(booking_id) == {"cash": 0, "liability": 0}

    def test_unexpired_holds_are_left_alone(self, authorized_hold):
        assert DepositHoldManager.expire_stale_holds() == 0

    def test_fail_forfeits_remaining_amount(self, authorized_hold):
        hold = DepositHoldManager.fail(authorized_hold.id, reason="authorization lost")

        assert hold.status == DepositHoldStatus.FAILED
        assert hold.forfeited_cents == 5000
        assert hold.is_conserved
