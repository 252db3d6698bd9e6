import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models

BOOKING_STATUSES = [
    ("draft", "Draft"),
    ("pending_owner_approval", "Pending Owner Approval"),
    ("pending_payment", "Pending Payment"),
    ("confirmed", "Confirmed"),
    ("active", "Active"),
    ("in_progress", "In Progress"),
    ("awaiting_return_inspection", "Awaiting Return Inspection"),
    ("completed", "Completed"),
    ("settled", "Settled"),
    ("cancelled", "Cancelled"),
    ("disputed", "Disputed"),
    ("refunded", "Refunded"),
]

BOOKING_ACTIONS = [
    ("submit_request", "Submit Request"),
    ("owner_approve", "Owner Approve"),
    ("owner_reject", "Owner Reject"),
    ("complete_payment", "Complete Payment"),
    ("fail_payment", "Fail Payment"),
    ("expire", "Expire"),
    ("activate", "Activate"),
    ("start_rental", "Start Rental"),
    ("request_return", "Request Return"),
    ("approve_return", "Approve Return"),
    ("initiate_dispute", "Initiate Dispute"),
    ("settle", "Settle"),
    ("cancel", "Cancel"),
    ("resolve_dispute", "Resolve Dispute"),
    ("refund", "Refund"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Version for optimistic locking - incremented on each save"
                    ),
                ),
                ("listing_id", models.UUIDField(db_index=True, help_text="Listing being rented")),
                ("renter_id", models.UUIDField(db_index=True, help_text="User renting the listing")),
                ("owner_id", models.UUIDField(db_index=True, help_text="Listing owner receiving the payout")),
                ("start_at", models.DateTimeField(help_text="Check-in time")),
                ("end_at", models.DateTimeField(help_text="Checkout time")),
                ("guest_count", models.PositiveSmallIntegerField(default=1)),
                (
                    "booking_mode",
                    models.CharField(
                        choices=[("instant", "Instant Book"), ("request", "Request to Book")],
                        default="request",
                        help_text="Instant-book bookings skip owner approval",
                        max_length=10,
                    ),
                ),
                (
                    "cancellation_policy",
                    models.CharField(
                        choices=[("flexible", "Flexible"), ("moderate", "Moderate"), ("strict", "Strict")],
                        default="moderate",
                        help_text="Listing cancellation policy at the time of booking",
                        max_length=10,
                    ),
                ),
                ("base_price_cents", models.PositiveBigIntegerField(help_text="Rental price before fees")),
                ("service_fee_cents", models.PositiveBigIntegerField(default=0, help_text="Renter service fee")),
                ("tax_cents", models.PositiveBigIntegerField(default=0, help_text="Pre-computed tax")),
                ("deposit_cents", models.PositiveBigIntegerField(default=0, help_text="Security deposit to hold")),
                (
                    "discount_cents",
                    models.PositiveBigIntegerField(default=0, help_text="Discount applied to the total"),
                ),
                ("total_cents", models.PositiveBigIntegerField(help_text="Amount charged to the renter")),
                ("owner_earnings_cents", models.PositiveBigIntegerField(help_text="Owner share of the base price")),
                ("platform_fee_cents", models.PositiveBigIntegerField(help_text="Platform share of the base price")),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=BOOKING_STATUSES,
                        db_index=True,
                        default="draft",
                        help_text="Current lifecycle state (managed by the state machine)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Deadline of the current approval/payment window",
                        null=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "inspection_due_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When a clean return inspection is approved automatically",
                        null=True,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_by", models.CharField(blank=True, default="", max_length=100)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "refund_fraction",
                    models.DecimalField(
                        blank=True,
                        decimal_places=4,
                        help_text="Refund fraction returned by the cancellation policy",
                        max_digits=5,
                        null=True,
                    ),
                ),
                ("refund_amount_cents", models.PositiveBigIntegerField(default=0)),
                (
                    "payment_intent_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Active processor payment intent (pi_xxx)",
                        max_length=255,
                    ),
                ),
                ("deposit_hold_id", models.UUIDField(blank=True, help_text="Active DepositHold", null=True)),
                (
                    "owner_payout_account",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Processor account the owner is paid out to (acct_xxx)",
                        max_length=255,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "expires_at"], name="bookings_bo_status_4f1e2a_idx"),
                    models.Index(fields=["status", "start_at"], name="bookings_bo_status_8c3d71_idx"),
                    models.Index(fields=["status", "end_at"], name="bookings_bo_status_b92e05_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "total_cents",
                                models.F("base_price_cents")
                                + models.F("service_fee_cents")
                                + models.F("tax_cents")
                                - models.F("discount_cents"),
                            )
                        ),
                        name="booking_total_matches_breakdown",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("base_price_cents", models.F("owner_earnings_cents") + models.F("platform_fee_cents"))
                        ),
                        name="booking_fee_split_matches_base_price",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("end_at__gt", models.F("start_at"))),
                        name="booking_end_after_start",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingStateHistory",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("sequence", models.PositiveIntegerField(help_text="1-based position in the booking's history")),
                ("action", models.CharField(choices=BOOKING_ACTIONS, max_length=30)),
                ("from_status", models.CharField(choices=BOOKING_STATUSES, max_length=30)),
                ("to_status", models.CharField(choices=BOOKING_STATUSES, max_length=30)),
                ("reason", models.TextField(blank=True, default="")),
                (
                    "actor_role",
                    models.CharField(
                        choices=[("renter", "Renter"), ("owner", "Owner"), ("admin", "Admin"), ("system", "System")],
                        max_length=10,
                    ),
                ),
                (
                    "actor",
                    models.CharField(
                        help_text="Actor label, e.g. renter:<uuid> or system:timeouts", max_length=100
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="history",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking State History",
                "verbose_name_plural": "Booking State History",
                "ordering": ["booking_id", "sequence"],
                "constraints": [
                    models.UniqueConstraint(fields=("booking", "sequence"), name="booking_history_unique_sequence"),
                ],
            },
        ),
    ]
