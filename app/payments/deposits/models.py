"""
DepositHold model: one security-deposit authorization for a booking.

The held money is reserved on the renter's card but never collected
unless damage is assessed. Every closed hold satisfies

    amount == released + deducted + forfeited
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from payments.state_machines import ACTIVE_HOLD_STATUSES, DepositHoldStatus


class DepositHold(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Security deposit authorization against an external processor.

    State Flow:
        PENDING -> AUTHORIZED -> CAPTURED (deduction) | RELEASED | EXPIRED
        PENDING/AUTHORIZED -> FAILED (processor lost the authorization)
    """

    # ==========================================================================
    # Ownership
    # ==========================================================================

    booking_id = models.UUIDField(
        db_index=True,
        help_text="Booking this deposit secures",
    )

    owner_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Owner credited with any deduction",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Authorized deposit amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    deducted_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount captured for damage",
    )

    released_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount returned to the renter",
    )

    forfeited_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount lost when the processor dropped the authorization",
    )

    deduction_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why a deduction was made",
    )

    # ==========================================================================
    # Processor State
    # ==========================================================================

    status = FSMField(
        default=DepositHoldStatus.PENDING,
        choices=DepositHoldStatus.choices,
        db_index=True,
        help_text="Current state of the hold",
    )

    processor_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Processor authorization id (pi_xxx)",
    )

    idempotency_key = models.CharField(
        max_length=255,
        help_text="Idempotency key used for the authorization",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    authorized_at = models.DateTimeField(null=True, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the processor authorization lapses",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Deposit Hold"
        verbose_name_plural = "Deposit Holds"
        constraints = [
            models.UniqueConstraint(
                fields=["booking_id"],
                condition=Q(status__in=ACTIVE_HOLD_STATUSES),
                name="deposit_hold_one_active_per_booking",
            ),
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="deposit_hold_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(
                    amount_cents__gte=F("deducted_cents") + F("released_cents") + F("forfeited_cents")
                ),
                name="deposit_hold_not_over_allocated",
            ),
        ]

    def __str__(self) -> str:
        return f"DepositHold({self.id}, {self.status}, {self.amount_cents / 100:.2f} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=DepositHoldStatus.PENDING, target=DepositHoldStatus.AUTHORIZED)
    def mark_authorized(self, expires_at=None):
        self.authorized_at = timezone.now()
        self.expires_at = expires_at

    @transition(field=status, source=DepositHoldStatus.AUTHORIZED, target=DepositHoldStatus.CAPTURED)
    def capture(self, amount_cents: int, reason: str):
        """Deduct ``amount_cents``; whatever is left is released."""
        self.deducted_cents = amount_cents
        self.deduction_reason = reason
        self.released_cents = self.amount_cents - amount_cents - self.forfeited_cents
        self.captured_at = timezone.now()
        self.released_at = self.captured_at

    @transition(field=status, source=ACTIVE_HOLD_STATUSES, target=DepositHoldStatus.RELEASED)
    def release(self):
        self.released_cents = self.available_cents
        self.released_at = timezone.now()

    @transition(field=status, source=DepositHoldStatus.AUTHORIZED, target=DepositHoldStatus.EXPIRED)
    def expire(self):
        # A lapsed authorization returns the money to the renter.
        self.released_cents = self.available_cents
        self.released_at = timezone.now()

    @transition(field=status, source=ACTIVE_HOLD_STATUSES, target=DepositHoldStatus.FAILED)
    def fail(self):
        self.forfeited_cents = self.available_cents

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_HOLD_STATUSES

    @property
    def available_cents(self) -> int:
        """Amount still held and available for deduction."""
        return self.amount_cents - self.deducted_cents - self.released_cents - self.forfeited_cents

    @property
    def is_conserved(self) -> bool:
        """Closed holds must account for every held cent."""
        if self.is_active:
            return True
        return self.amount_cents == self.released_cents + self.deducted_cents + self.forfeited_cents
