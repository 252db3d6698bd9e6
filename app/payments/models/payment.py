"""
Payment model: money collected from a renter for one booking.

A Payment is created when the renter completes checkout. It mirrors one
processor payment intent and is the source that refunds draw from.

Usage:
    from payments.models import Payment

    payment = Payment.objects.get(processor_reference="pi_xxx")
    payment.succeed()
    payment.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Sum
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from payments.state_machines import PaymentStatus, RefundStatus


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Record of a processor payment for a booking.

    State Flow:
        PENDING -> SUCCEEDED -> PARTIALLY_REFUNDED -> REFUNDED
        PENDING -> FAILED | CANCELED

    Fields:
        booking_id: Booking this payment pays for
        payer_id: Renter who paid
        amount_cents: Captured amount in smallest currency unit
        currency: ISO 4217 currency code
        status: Current FSM state
        processor_reference: Processor payment intent id (pi_xxx)
        idempotency_key: Key used for the processor call
        processed_at: When the processor confirmed the outcome
        failure_code / failure_message: Decline details if FAILED
    """

    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking this payment belongs to",
    )

    payer_id = models.UUIDField(
        help_text="User who paid (the renter)",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Payment amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    processor_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Processor payment intent id (pi_xxx)",
    )

    idempotency_key = models.CharField(
        max_length=255,
        help_text="Idempotency key used for the processor call",
    )

    payment_method = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Processor payment method (pm_xxx), reused for the deposit hold",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the processor confirmed success or failure",
    )

    failure_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Processor decline/error code",
    )

    failure_message = models.TextField(
        blank=True,
        default="",
        help_text="Processor failure message",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["booking_id", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount_cents / 100:.2f} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    # A failed or voided intent can still be captured late; the booking
    # side compensates with a refund.
    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.CANCELED],
        target=PaymentStatus.SUCCEEDED,
    )
    def succeed(self):
        self.processed_at = timezone.now()

    @transition(field=status, source=PaymentStatus.PENDING, target=PaymentStatus.FAILED)
    def fail(self, code: str = "", message: str = ""):
        self.processed_at = timezone.now()
        self.failure_code = code or ""
        self.failure_message = message or ""

    @transition(field=status, source=PaymentStatus.PENDING, target=PaymentStatus.CANCELED)
    def cancel(self):
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def mark_partially_refunded(self):
        pass

    @transition(
        field=status,
        source=[PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_captured(self) -> bool:
        return self.status in (
            PaymentStatus.SUCCEEDED,
            PaymentStatus.PARTIALLY_REFUNDED,
            PaymentStatus.REFUNDED,
        )

    @property
    def refunded_cents(self) -> int:
        """Sum of refunds that were not rejected by the processor."""
        return (
            self.refunds.exclude(status=RefundStatus.FAILED).aggregate(total=Sum("amount_cents"))[
                "total"
            ]
            or 0
        )

    @property
    def refundable_cents(self) -> int:
        if not self.is_captured:
            return 0
        return self.amount_cents - self.refunded_cents
