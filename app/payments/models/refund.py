"""
Refund model for tracking money returned to renters.

One Payment can have several Refunds (cancellation refund, dispute award,
compensating refund for a payment that succeeded after cancellation).
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import RefundStatus


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents money returned to a renter.

    State Flow:
        PENDING -> SUCCEEDED
        PENDING -> FAILED

    Fields:
        payment: Payment being refunded
        booking_id: Booking the refund belongs to (denormalized for queries)
        amount_cents: Refund amount in smallest currency unit
        reason: Why the money is returned
        status: Current FSM state
        processor_reference: Processor refund id (re_xxx)
        idempotency_key: Key used for the processor call (unique)
        posting_id: Ledger posting recording the REFUND legs
    """

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment being refunded",
    )

    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking this refund belongs to",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why the refund was issued",
    )

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    processor_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Processor refund id (re_xxx)",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Idempotency key used for the processor call",
    )

    posting_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Ledger posting holding the REFUND legs",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the processor confirmed the refund outcome",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Processor failure details",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.status}, {self.amount_cents / 100:.2f} {self.currency.upper()})"

    @transition(field=status, source=RefundStatus.PENDING, target=RefundStatus.SUCCEEDED)
    def succeed(self):
        self.processed_at = timezone.now()

    @transition(field=status, source=RefundStatus.PENDING, target=RefundStatus.FAILED)
    def fail(self, reason: str | None = None):
        self.processed_at = timezone.now()
        if reason:
            self.failure_reason = reason
