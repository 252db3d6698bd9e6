"""
DRF serializers for the bookings app.

This module provides serializers for:
- Booking creation requests and booking display
- Transition requests (action, reason, optional expected version)
- Payment requests for bookings awaiting payment
- Read-only audit views (state history, ledger legs)

Related files:
    - models.py: Booking, BookingStateHistory
    - views.py: BookingViewSet

Usage:
    serializer = BookingCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from bookings.models import Booking, BookingStateHistory, CancellationPolicy
from bookings.states import BookingAction, BookingMode, available_actions
from core.serializer_mixins import AuditFieldsMixin
from payments.ledger import LedgerEntry


class BookingCreateSerializer(serializers.Serializer):
    """
    Request body for creating a DRAFT booking.

    The renter is the authenticated caller; amounts are in cents and the
    service fee defaults to the configured percentage of the base price.
    """

    listing_id = serializers.UUIDField()
    owner_id = serializers.UUIDField()
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    guest_count = serializers.IntegerField(min_value=1, default=1)
    base_price_cents = serializers.IntegerField(min_value=1)
    tax_cents = serializers.IntegerField(min_value=0, default=0)
    deposit_cents = serializers.IntegerField(min_value=0, default=0)
    discount_cents = serializers.IntegerField(min_value=0, default=0)
    service_fee_cents = serializers.IntegerField(min_value=0, required=False)
    booking_mode = serializers.ChoiceField(choices=BookingMode.choices, default=BookingMode.REQUEST)
    cancellation_policy = serializers.ChoiceField(
        choices=CancellationPolicy.choices,
        default=CancellationPolicy.MODERATE,
    )
    currency = serializers.CharField(max_length=3, required=False)
    owner_payout_account = serializers.CharField(max_length=255, required=False, default="")

    def validate(self, attrs):
        if attrs["end_at"] <= attrs["start_at"]:
            raise serializers.ValidationError({"end_at": "Must be after start_at."})
        return attrs


class BookingSerializer(AuditFieldsMixin, serializers.ModelSerializer):
    """Booking with its price breakdown and the caller's next actions."""

    available_actions = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "listing_id",
            "renter_id",
            "owner_id",
            "start_at",
            "end_at",
            "guest_count",
            "booking_mode",
            "cancellation_policy",
            "status",
            "version",
            "base_price_cents",
            "service_fee_cents",
            "tax_cents",
            "deposit_cents",
            "discount_cents",
            "total_cents",
            "owner_earnings_cents",
            "platform_fee_cents",
            "currency",
            "expires_at",
            "completed_at",
            "cancelled_at",
            "cancelled_by",
            "cancellation_reason",
            "refund_fraction",
            "refund_amount_cents",
            "payment_intent_id",
            "deposit_hold_id",
            "available_actions",
        ]
        read_only_fields = fields

    def get_available_actions(self, obj: Booking) -> list[str]:
        role = self.context.get("role")
        return available_actions(obj.status, role)


class TransitionRequestSerializer(serializers.Serializer):
    """
    Request body for ``POST /bookings/{id}/transitions/``.

    ``expected_version`` makes the request fail with 409 if the booking
    changed since the client last read it.
    """

    action = serializers.ChoiceField(choices=BookingAction.choices)
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(min_value=1, required=False)


class PaymentRequestSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=255)


class BookingStateHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingStateHistory
        fields = [
            "sequence",
            "action",
            "from_status",
            "to_status",
            "reason",
            "actor_role",
            "actor",
            "created_at",
        ]
        read_only_fields = fields


class LedgerEntrySerializer(serializers.ModelSerializer):
    """One leg of a ledger posting (read-only audit view)."""

    posting_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = LedgerEntry
        fields = [
            "id",
            "posting_id",
            "transaction_type",
            "account_type",
            "side",
            "amount_cents",
            "currency",
            "status",
            "owner_id",
            "reversal_of",
            "settled_at",
            "created_at",
        ]
        read_only_fields = fields
