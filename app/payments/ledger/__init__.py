"""
Ledger - Double-entry bookkeeping for booking money movements.

Every money movement of a booking (payment capture, deposit hold, fees,
owner earning, refund, payout, dispute adjustment) is recorded as a
balanced posting of DEBIT/CREDIT legs. The ledger is append-only and the
source of financial truth.

Public API:
    Models:
        LedgerPosting - Balanced group of legs under one idempotency key
        LedgerEntry - One leg
        AccountType, EntrySide, TransactionType, EntryStatus - Enums

    Service:
        ledger - Singleton instance of LedgerService
        LedgerService - Class with all ledger operations

    Types:
        Money - Represents monetary amount in cents
        LedgerLeg - Leg passed to ``post``

    Exceptions:
        LedgerError - Base exception for ledger operations
        UnbalancedPosting - Legs do not form a balanced posting
        IdempotencyConflict - Key reused with different legs
        LedgerImmutableError - SETTLED entry modification attempt

Usage:
    from payments.ledger import AccountType, LedgerLeg, TransactionType, ledger

    ledger.post(
        LedgerLeg.pair(booking.id, TransactionType.PAYMENT,
                       AccountType.LIABILITY, AccountType.CASH, 11500),
        idempotency_key=ledger.posting_key(booking.id, TransactionType.PAYMENT),
    )
    ledger.get_balance(booking.id, AccountType.CASH)  # Money(cents=-11500, ...)
"""

from .exceptions import (
    IdempotencyConflict,
    LedgerError,
    LedgerImmutableError,
    UnbalancedPosting,
)
from .models import (
    AccountType,
    EntrySide,
    EntryStatus,
    LedgerEntry,
    LedgerPosting,
    TransactionType,
)
from .services import LedgerService, ledger
from .types import LedgerLeg, Money

__all__ = [
    # Models
    "LedgerPosting",
    "LedgerEntry",
    "AccountType",
    "EntrySide",
    "EntryStatus",
    "TransactionType",
    # Service
    "ledger",
    "LedgerService",
    # Types
    "Money",
    "LedgerLeg",
    # Exceptions
    "LedgerError",
    "UnbalancedPosting",
    "IdempotencyConflict",
    "LedgerImmutableError",
]
