"""
Pytest fixtures for deposit hold tests.
"""

import uuid

import pytest

from payments.deposits import DepositHoldManager


@pytest.fixture
def booking_id():
    return uuid.uuid4()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def authorized_hold(db, booking_id, owner_id):
    """$50.00 hold placed through the manager, DEPOSIT_HOLD legs posted."""
    return DepositHoldManager.authorize(
        booking_id,
        5000,
        currency="usd",
        payment_method="pm_card_visa",
        owner_id=owner_id,
    )
