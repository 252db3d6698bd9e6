"""
Tests for ledger models and leg types.
"""

import uuid

import pytest
from django.db import IntegrityError

from payments.ledger.exceptions import LedgerImmutableError
from payments.ledger.models import AccountType, EntryStatus, LedgerEntry, TransactionType
from payments.ledger.tests.factories import LedgerEntryFactory
from payments.ledger.types import LedgerLeg, Money


class TestLedgerEntryImmutability:
    """SETTLED entries cannot be edited or deleted."""

    def test_pending_entry_can_be_saved(self, db):
        entry = LedgerEntryFactory()
        entry.amount_cents = 2000
        entry.save()

        assert LedgerEntry.objects.get(id=entry.id).amount_cents == 2000

    def test_settled_entry_rejects_save(self, db):
        entry = LedgerEntryFactory(status=EntryStatus.SETTLED)
        loaded = LedgerEntry.objects.get(id=entry.id)
        loaded.amount_cents = 1

        with pytest.raises(LedgerImmutableError):
            loaded.save()

    def test_settled_entry_rejects_delete(self, db):
        entry = LedgerEntryFactory(status=EntryStatus.SETTLED)
        loaded = LedgerEntry.objects.get(id=entry.id)

        with pytest.raises(LedgerImmutableError):
            loaded.delete()

        assert LedgerEntry.objects.filter(id=entry.id).exists()

    def test_amount_must_be_positive(self, db):
        with pytest.raises(IntegrityError):
            LedgerEntryFactory(amount_cents=0)


class TestLedgerLeg:
    """Tests for the LedgerLeg dataclass."""

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            LedgerLeg(uuid.uuid4(), TransactionType.PAYMENT, AccountType.CASH, "debit", 0)

    def test_rejects_unknown_side(self):
        with pytest.raises(ValueError):
            LedgerLeg(uuid.uuid4(), TransactionType.PAYMENT, AccountType.CASH, "left", 100)

    def test_pair_is_balanced(self):
        legs = LedgerLeg.pair(
            uuid.uuid4(), TransactionType.REFUND, AccountType.CASH, AccountType.LIABILITY, 5750
        )

        assert [leg.side for leg in legs] == ["debit", "credit"]
        assert sum(leg.signed_amount for leg in legs) == 0

    def test_flipped_swaps_side(self):
        leg = LedgerLeg(uuid.uuid4(), TransactionType.PAYMENT, AccountType.CASH, "credit", 100)

        assert leg.flipped().side == "debit"
        assert leg.flipped().amount_cents == 100


class TestMoney:
    def test_formats_as_currency(self):
        assert str(Money(cents=5750)) == "$57.50 USD"

    def test_rejects_mixed_currency_arithmetic(self):
        with pytest.raises(ValueError):
            Money(100, "usd") + Money(100, "eur")
