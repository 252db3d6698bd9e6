"""
Pytest fixtures for payment tests.

Fixtures provide payment records in the states the services branch on.

Usage:
    def test_refund_marks_payment(captured_payment):
        RefundService.issue_refund(captured_payment, 5750, reason="cancel")
"""

import uuid

import pytest

from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory, PayoutFactory


# =============================================================================
# Identity Fixtures
# =============================================================================


@pytest.fixture
def booking_id():
    return uuid.uuid4()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def captured_payment(db, booking_id):
    """$115.00 payment captured for ``booking_id``."""
    return PaymentFactory(booking_id=booking_id)


@pytest.fixture
def pending_payment(db, booking_id):
    return PaymentFactory(booking_id=booking_id, status=PaymentStatus.PENDING, processed_at=None)


@pytest.fixture
def pending_payout(db, owner_id, booking_id):
    return PayoutFactory(owner_id=owner_id, booking_id=booking_id)

