"""
Data types for ledger operations.

Types:
    Money: Represents a monetary amount in cents with currency
    LedgerLeg: One leg handed to LedgerService.post

Usage:
    from payments.ledger.types import LedgerLeg, Money

    legs = LedgerLeg.pair(
        booking_id=booking.id,
        transaction_type=TransactionType.PAYMENT,
        debit=AccountType.LIABILITY,
        credit=AccountType.CASH,
        amount_cents=11500,
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass
class Money:
    """
    Represents a monetary amount.

    All amounts are stored in cents (smallest currency unit) to avoid
    floating-point precision issues.

    Example:
        amount = Money(cents=5750, currency='usd')
        print(amount)  # "$57.50 USD"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        """Format as currency string (e.g., '$50.00 USD')."""
        dollars = self.cents / 100
        return f"${dollars:.2f} {self.currency.upper()}"

    def __repr__(self) -> str:
        return f"Money(cents={self.cents}, currency={self.currency!r})"

    def __add__(self, other: Money) -> Money:
        """Add two Money objects (must have same currency)."""
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents + other.cents, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        """Subtract two Money objects (must have same currency)."""
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot subtract Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents - other.cents, currency=self.currency)


@dataclass(frozen=True)
class LedgerLeg:
    """
    One DEBIT or CREDIT leg of a posting.

    Required Attributes:
        booking_id: Booking the leg belongs to
        transaction_type: Business meaning shared by the posting
        account_type: Account category
        side: 'debit' or 'credit'
        amount_cents: Positive amount in cents

    Optional Attributes:
        currency: ISO 4217 code (default: 'usd')
        owner_id: Owner sub-ledger key for receivable legs
        reversal_of_id: Leg this one offsets (reversal postings only)
    """

    booking_id: uuid.UUID
    transaction_type: str
    account_type: str
    side: str
    amount_cents: int
    currency: str = "usd"
    owner_id: uuid.UUID | None = None
    reversal_of_id: uuid.UUID | None = None

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if self.side not in ("debit", "credit"):
            raise ValueError(f"side must be 'debit' or 'credit', got {self.side!r}")

    @property
    def signed_amount(self) -> int:
        return self.amount_cents if self.side == "debit" else -self.amount_cents

    def flipped(self, reversal_of_id: uuid.UUID | None = None) -> LedgerLeg:
        """Return the mirror leg (same amount, opposite side)."""
        return LedgerLeg(
            booking_id=self.booking_id,
            transaction_type=self.transaction_type,
            account_type=self.account_type,
            side="credit" if self.side == "debit" else "debit",
            amount_cents=self.amount_cents,
            currency=self.currency,
            owner_id=self.owner_id,
            reversal_of_id=reversal_of_id,
        )

    @classmethod
    def pair(
        cls,
        booking_id: uuid.UUID,
        transaction_type: str,
        debit: str,
        credit: str,
        amount_cents: int,
        currency: str = "usd",
        debit_owner_id: uuid.UUID | None = None,
        credit_owner_id: uuid.UUID | None = None,
    ) -> list[LedgerLeg]:
        """
        Build the two legs of a simple balanced movement.

        Example:
            LedgerLeg.pair(
                booking_id=booking.id,
                transaction_type=TransactionType.OWNER_EARNING,
                debit=AccountType.RECEIVABLE,
                credit=AccountType.LIABILITY,
                amount_cents=8500,
                debit_owner_id=booking.owner_id,
            )
        """
        return [
            cls(
                booking_id=booking_id,
                transaction_type=transaction_type,
                account_type=debit,
                side="debit",
                amount_cents=amount_cents,
                currency=currency,
                owner_id=debit_owner_id,
            ),
            cls(
                booking_id=booking_id,
                transaction_type=transaction_type,
                account_type=credit,
                side="credit",
                amount_cents=amount_cents,
                currency=currency,
                owner_id=credit_owner_id,
            ),
        ]
