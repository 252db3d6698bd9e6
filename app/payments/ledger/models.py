"""
Ledger models for double-entry bookkeeping.

This module defines the core models for the booking ledger:
- LedgerPosting: A balanced group of legs sharing one idempotency key
- LedgerEntry: One DEBIT or CREDIT leg of a posting

Every posting's legs net to zero per currency. Entries are append-only;
once SETTLED they are immutable and corrections are new postings whose
legs point back at the originals (``reversal_of``).

Balances are reported as debit minus credit for an account type.

Usage:
    from payments.ledger.models import AccountType, LedgerEntry, TransactionType

    LedgerEntry.objects.filter(
        booking_id=booking.id,
        transaction_type=TransactionType.PAYMENT,
    )
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin

from .exceptions import LedgerImmutableError


class AccountType(models.TextChoices):
    """
    Ledger account categories.

    Owner earnings live in RECEIVABLE with ``owner_id`` set, which forms
    the per-owner sub-ledger payouts are computed from.
    """

    REVENUE = "revenue", "Revenue"
    EXPENSE = "expense", "Expense"
    LIABILITY = "liability", "Liability"
    ASSET = "asset", "Asset"
    EQUITY = "equity", "Equity"
    CASH = "cash", "Cash"
    RECEIVABLE = "receivable", "Receivable"
    PAYABLE = "payable", "Payable"


class EntrySide(models.TextChoices):
    DEBIT = "debit", "Debit"
    CREDIT = "credit", "Credit"


class TransactionType(models.TextChoices):
    """
    Business meaning of a posting.

    Values:
        PAYMENT: Renter payment captured
        PLATFORM_FEE: Platform's share of the base price
        SERVICE_FEE: Renter service fee recognised at settlement
        OWNER_EARNING: Owner's share credited to their receivable
        DEPOSIT_HOLD: Security deposit authorized
        DEPOSIT_RELEASE: Deposit (or its remainder) released
        REFUND: Money returned to the renter
        PAYOUT: Transfer to the owner, or a dispute payout adjustment
        DISPUTE: Deposit deduction awarded in a dispute
    """

    PAYMENT = "payment", "Payment"
    PLATFORM_FEE = "platform_fee", "Platform Fee"
    SERVICE_FEE = "service_fee", "Service Fee"
    OWNER_EARNING = "owner_earning", "Owner Earning"
    DEPOSIT_HOLD = "deposit_hold", "Deposit Hold"
    DEPOSIT_RELEASE = "deposit_release", "Deposit Release"
    REFUND = "refund", "Refund"
    PAYOUT = "payout", "Payout"
    DISPUTE = "dispute", "Dispute"


class EntryStatus(models.TextChoices):
    """
    Lifecycle of a ledger leg.

    State Flow:
        PENDING -> SETTLED (external confirmation, final)
        PENDING -> FAILED (settlement gave up; operator re-drive reopens)
        PENDING -> REVERSED (offset by a reversal posting)
    """

    PENDING = "pending", "Pending"
    SETTLED = "settled", "Settled"
    FAILED = "failed", "Failed"
    REVERSED = "reversed", "Reversed"


class LedgerPosting(UUIDPrimaryKeyMixin, models.Model):
    """
    Header row for a balanced posting.

    The posting id is the reference id linking sibling legs. The
    idempotency key is unique; the fingerprint of the legs decides whether
    a repeated key is a harmless retry or a conflict.

    Fields:
        booking_id: Booking every leg belongs to
        transaction_type: Shared transaction type of the legs
        idempotency_key: Caller-supplied unique key
        fingerprint: Hash of the normalized legs
        reverses: Posting this one offsets, if it is a reversal
        description: Human-readable description
        created_by: Service or actor that recorded the posting
        metadata: Arbitrary JSON data
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this posting was recorded",
    )
    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking this posting belongs to",
    )
    transaction_type = models.CharField(
        max_length=30,
        choices=TransactionType.choices,
        help_text="Transaction type shared by all legs",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate postings",
    )
    fingerprint = models.CharField(
        max_length=64,
        help_text="SHA-256 of the normalized legs",
    )
    reverses = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
        help_text="Posting offset by this reversal",
    )
    description = models.TextField(
        null=True,
        blank=True,
        help_text="Human-readable description of this posting",
    )
    created_by = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Identifier of service/actor that created this posting",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON data for extensibility",
    )

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["booking_id", "transaction_type"]),
        ]

    def __str__(self) -> str:
        return f"{self.get_transaction_type_display()} posting {self.idempotency_key}"


class LedgerEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    One leg of a double-entry posting.

    Fields:
        posting: Posting (reference id) this leg belongs to
        booking_id: Denormalized booking reference for balance queries
        account_type: Account category
        side: DEBIT or CREDIT
        amount_cents: Amount in cents (always positive)
        currency: ISO 4217 currency code
        transaction_type: Denormalized posting transaction type
        status: PENDING / SETTLED / FAILED / REVERSED
        owner_id: Owner sub-ledger key (RECEIVABLE legs)
        reversal_of: Original leg this one offsets
        settled_at: When the leg became final

    Constraints:
        - amount_cents must be positive

    Note:
        ``save()`` and ``delete()`` refuse to touch a row that was loaded
        as SETTLED. Status changes go through LedgerService, which only
        updates rows still PENDING (or FAILED on operator re-drive).
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )
    posting = models.ForeignKey(
        LedgerPosting,
        on_delete=models.PROTECT,
        related_name="entries",
        help_text="Posting this leg belongs to",
    )
    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking this leg belongs to",
    )
    account_type = models.CharField(
        max_length=20,
        choices=AccountType.choices,
        help_text="Account category",
    )
    side = models.CharField(
        max_length=6,
        choices=EntrySide.choices,
        help_text="DEBIT or CREDIT",
    )
    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount in cents (always positive)",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )
    transaction_type = models.CharField(
        max_length=30,
        choices=TransactionType.choices,
        help_text="Transaction type of the posting",
    )
    status = models.CharField(
        max_length=10,
        choices=EntryStatus.choices,
        default=EntryStatus.PENDING,
        db_index=True,
        help_text="Settlement status of this leg",
    )
    owner_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Owner sub-ledger key for receivable legs",
    )
    reversal_of = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversed_by",
        help_text="Original leg offset by this one",
    )
    settled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this leg was marked SETTLED",
    )

    class Meta:
        ordering = ["created_at", "posting_id", "side"]
        verbose_name_plural = "Ledger entries"
        indexes = [
            models.Index(fields=["booking_id", "account_type", "currency"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="ledger_entry_amount_cents_positive",
            )
        ]

    def __str__(self) -> str:
        return (
            f"{self.get_side_display()} {self.get_account_type_display()} "
            f"{self.amount_cents} {self.currency} ({self.status})"
        )

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_status = instance.__dict__.get("status")
        return instance

    def _guard_settled(self) -> None:
        if getattr(self, "_loaded_status", None) == EntryStatus.SETTLED:
            raise LedgerImmutableError(
                f"Ledger entry {self.id} is SETTLED and cannot be modified",
                details={"entry_id": str(self.id)},
            )

    def save(self, *args, **kwargs):
        self._guard_settled()
        super().save(*args, **kwargs)
        self._loaded_status = self.status

    def delete(self, *args, **kwargs):
        self._guard_settled()
        return super().delete(*args, **kwargs)

    @property
    def signed_amount(self) -> int:
        """Amount as it contributes to a debit-minus-credit balance."""
        return self.amount_cents if self.side == EntrySide.DEBIT else -self.amount_cents
