"""
Booking aggregate and its audit trail.

- Booking: one rental transaction. Mutated only through
  bookings.services.BookingStateMachine; never deleted.
- BookingStateHistory: append-only row per applied transition.

Ledger entries, deposit holds, payments and disputes reference a booking
by ``booking_id`` only; nothing here points back at them except the
processor references needed to resume a suspended booking.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q

from django_fsm import RETURN_VALUE, FSMField, transition

from bookings.exceptions import HistoryImmutableError
from bookings.states import ActorRole, BookingAction, BookingMode, BookingStatus
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel


class CancellationPolicy(models.TextChoices):
    FLEXIBLE = "flexible", "Flexible"
    MODERATE = "moderate", "Moderate"
    STRICT = "strict", "Strict"


class Booking(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One rental transaction from request to payout.

    Price invariants (enforced here and by check constraints):
        total == base_price + service_fee + tax - discount
        owner_earnings + platform_fee == base_price

    ``status`` is a protected FSM field: it changes only through
    ``advance``, which BookingStateMachine calls after validating the edge
    against bookings.states.TRANSITIONS.
    """

    # ==========================================================================
    # Parties & Schedule
    # ==========================================================================

    listing_id = models.UUIDField(db_index=True, help_text="Listing being rented")
    renter_id = models.UUIDField(db_index=True, help_text="User renting the listing")
    owner_id = models.UUIDField(db_index=True, help_text="Listing owner receiving the payout")

    start_at = models.DateTimeField(help_text="Check-in time")
    end_at = models.DateTimeField(help_text="Checkout time")
    guest_count = models.PositiveSmallIntegerField(default=1)

    booking_mode = models.CharField(
        max_length=10,
        choices=BookingMode.choices,
        default=BookingMode.REQUEST,
        help_text="Instant-book bookings skip owner approval",
    )

    cancellation_policy = models.CharField(
        max_length=10,
        choices=CancellationPolicy.choices,
        default=CancellationPolicy.MODERATE,
        help_text="Listing cancellation policy at the time of booking",
    )

    # ==========================================================================
    # Price Breakdown (smallest currency unit)
    # ==========================================================================

    base_price_cents = models.PositiveBigIntegerField(help_text="Rental price before fees")
    service_fee_cents = models.PositiveBigIntegerField(default=0, help_text="Renter service fee")
    tax_cents = models.PositiveBigIntegerField(default=0, help_text="Pre-computed tax")
    deposit_cents = models.PositiveBigIntegerField(default=0, help_text="Security deposit to hold")
    discount_cents = models.PositiveBigIntegerField(default=0, help_text="Discount applied to the total")
    total_cents = models.PositiveBigIntegerField(help_text="Amount charged to the renter")
    owner_earnings_cents = models.PositiveBigIntegerField(help_text="Owner share of the base price")
    platform_fee_cents = models.PositiveBigIntegerField(help_text="Platform share of the base price")

    currency = models.CharField(max_length=3, default="usd", help_text="ISO 4217 currency code (lowercase)")

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = FSMField(
        default=BookingStatus.DRAFT,
        choices=BookingStatus.choices,
        protected=True,
        db_index=True,
        help_text="Current lifecycle state (managed by the state machine)",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Deadline of the current approval/payment window",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    inspection_due_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When a clean return inspection is approved automatically",
    )

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=100, blank=True, default="")
    cancellation_reason = models.TextField(blank=True, default="")
    refund_fraction = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Refund fraction returned by the cancellation policy",
    )
    refund_amount_cents = models.PositiveBigIntegerField(default=0)

    # ==========================================================================
    # Processor References
    # ==========================================================================

    payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Active processor payment intent (pi_xxx)",
    )

    deposit_hold_id = models.UUIDField(null=True, blank=True, help_text="Active DepositHold")

    owner_payout_account = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Processor account the owner is paid out to (acct_xxx)",
    )

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=["status", "expires_at"]),
            models.Index(fields=["status", "start_at"]),
            models.Index(fields=["status", "end_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(
                    total_cents=F("base_price_cents") + F("service_fee_cents") + F("tax_cents") - F("discount_cents")
                ),
                name="booking_total_matches_breakdown",
            ),
            models.CheckConstraint(
                condition=Q(base_price_cents=F("owner_earnings_cents") + F("platform_fee_cents")),
                name="booking_fee_split_matches_base_price",
            ),
            models.CheckConstraint(
                condition=Q(end_at__gt=F("start_at")),
                name="booking_end_after_start",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status})"

    # ==========================================================================
    # State Transition (django-fsm)
    # ==========================================================================

    @transition(field=status, source="*", target=RETURN_VALUE(*BookingStatus.values))
    def advance(self, action: str, target: str, actor: str = "", reason: str = "") -> str:
        """
        Move to ``target``; the edge was validated by BookingStateMachine.

        ``action``, ``actor`` and ``reason`` travel to django-fsm's
        ``post_transition`` receivers (bookings.signals).
        """
        return target

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_instant(self) -> bool:
        return self.booking_mode == BookingMode.INSTANT

    @property
    def price_is_consistent(self) -> bool:
        return (
            self.total_cents
            == self.base_price_cents + self.service_fee_cents + self.tax_cents - self.discount_cents
            and self.base_price_cents == self.owner_earnings_cents + self.platform_fee_cents
        )

    def party_role(self, party_id) -> str | None:
        """Role ``party_id`` plays on this booking, if any."""
        if party_id is None:
            return None
        if str(party_id) == str(self.renter_id):
            return ActorRole.RENTER
        if str(party_id) == str(self.owner_id):
            return ActorRole.OWNER
        return None


class BookingStateHistory(UUIDPrimaryKeyMixin, models.Model):
    """
    Immutable audit row written in the same transaction as the transition.

    Rows are never updated or deleted; ``save`` on an existing row and
    ``delete`` raise HistoryImmutableError.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        related_name="history",
    )

    sequence = models.PositiveIntegerField(help_text="1-based position in the booking's history")
    action = models.CharField(max_length=30, choices=BookingAction.choices)
    from_status = models.CharField(max_length=30, choices=BookingStatus.choices)
    to_status = models.CharField(max_length=30, choices=BookingStatus.choices)
    reason = models.TextField(blank=True, default="")

    actor_role = models.CharField(max_length=10, choices=ActorRole.choices)
    actor = models.CharField(max_length=100, help_text="Actor label, e.g. renter:<uuid> or system:timeouts")

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["booking_id", "sequence"]
        verbose_name = "Booking State History"
        verbose_name_plural = "Booking State History"
        constraints = [
            models.UniqueConstraint(fields=["booking", "sequence"], name="booking_history_unique_sequence"),
        ]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.from_status} -> {self.to_status} ({self.action})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise HistoryImmutableError(
                "Booking state history is append-only",
                details={"history_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise HistoryImmutableError(
            "Booking state history is append-only",
            details={"history_id": str(self.pk)},
        )
