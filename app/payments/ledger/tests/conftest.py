"""
Pytest fixtures for ledger tests.

Sections:
    - Test Data Fixtures: booking/owner ids
    - Leg Fixtures: Pre-built balanced legs
"""

import uuid

import pytest

from payments.ledger.models import AccountType, TransactionType
from payments.ledger.types import LedgerLeg


# ==========================================================================
# Test Data Fixtures
# ==========================================================================


@pytest.fixture
def booking_id():
    return uuid.uuid4()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


# ==========================================================================
# Leg Fixtures
# ==========================================================================


@pytest.fixture
def payment_legs(booking_id):
    """Capture of a $115.00 payment."""
    return LedgerLeg.pair(
        booking_id=booking_id,
        transaction_type=TransactionType.PAYMENT,
        debit=AccountType.LIABILITY,
        credit=AccountType.CASH,
        amount_cents=11500,
    )


@pytest.fixture
def earning_legs(booking_id, owner_id):
    """Owner earning of $85.00 credited to the owner's receivable."""
    return LedgerLeg.pair(
        booking_id=booking_id,
        transaction_type=TransactionType.OWNER_EARNING,
        debit=AccountType.RECEIVABLE,
        credit=AccountType.LIABILITY,
        amount_cents=8500,
        debit_owner_id=owner_id,
    )
