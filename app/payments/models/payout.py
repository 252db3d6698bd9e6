"""
Payout model for tracking owner earnings leaving the platform.

A Payout is computed by the settlement orchestrator from a booking's
owner receivable balance and executed as a processor transfer.

Usage:
    payout.start_processing()
    payout.save()

    # After the transfer succeeds
    payout.complete(transfer_id="tr_xxx")
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from payments.state_machines import PayoutStatus


class Payout(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Represents a transfer of owner earnings for one booking.

    State Flow:
        PENDING -> PROCESSING -> PAID
        PENDING/PROCESSING -> FAILED -> PENDING (retry)

    Fields:
        owner_id: Owner receiving the money
        booking_id: Booking the earnings come from
        destination_account: Owner's processor account (acct_xxx)
        amount_cents: Payout amount in smallest currency unit
        status: Current FSM state
        processor_reference: Processor transfer id (tr_xxx)
        attempt_count: Number of transfer attempts
        posting_id: Ledger posting holding the PAYOUT legs
    """

    owner_id = models.UUIDField(
        db_index=True,
        help_text="Owner receiving the payout",
    )

    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking whose earnings are paid out",
    )

    destination_account = models.CharField(
        max_length=255,
        help_text="Processor account receiving the transfer (acct_xxx)",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Payout amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    processor_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Processor transfer id (tr_xxx)",
    )

    attempt_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of transfer attempts made",
    )

    posting_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Ledger posting holding the PAYOUT legs",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer completed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout last failed",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Detailed reason if payout failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["owner_id", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payout_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["booking_id"],
                name="payout_one_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.amount_cents / 100:.2f} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PayoutStatus.PENDING, target=PayoutStatus.PROCESSING)
    def start_processing(self):
        self.attempt_count += 1

    @transition(field=status, source=PayoutStatus.PROCESSING, target=PayoutStatus.PAID)
    def complete(self, transfer_id: str = ""):
        if transfer_id:
            self.processor_reference = transfer_id
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(field=status, source=PayoutStatus.FAILED, target=PayoutStatus.PENDING)
    def retry(self):
        self.failed_at = None
        self.failure_reason = ""

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.PAID
