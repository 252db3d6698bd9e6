"""
Tests for the DepositHold model.
"""

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from payments.state_machines import DepositHoldStatus
from payments.tests.factories import DepositHoldFactory


class TestDepositHoldModel:
    def test_available_cents_tracks_allocations(self, db):
        hold = DepositHoldFactory(amount_cents=5000)

        assert hold.available_cents == 5000

        hold.capture(1500, "Scratched table")

        assert hold.available_cents == 0
        assert hold.deducted_cents + hold.released_cents == 5000

    def test_active_hold_is_conserved_trivially(self, db):
        assert DepositHoldFactory().is_conserved

    def test_expire_requires_authorized(self, db):
        hold = DepositHoldFactory(status=DepositHoldStatus.PENDING)

        with pytest.raises(TransitionNotAllowed):
            hold.expire()

    def test_one_active_hold_per_booking(self, db):
        hold = DepositHoldFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            DepositHoldFactory(booking_id=hold.booking_id)

    def test_closed_hold_does_not_block_new_one(self, db):
        hold = DepositHoldFactory(status=DepositHoldStatus.RELEASED, released_cents=5000)

        DepositHoldFactory(booking_id=hold.booking_id)

    def test_over_allocation_is_rejected(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            DepositHoldFactory(deducted_cents=4000, released_cents=2000)
