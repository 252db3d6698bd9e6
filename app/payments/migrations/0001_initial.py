import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models

ACCOUNT_TYPES = [
    ("revenue", "Revenue"),
    ("expense", "Expense"),
    ("liability", "Liability"),
    ("asset", "Asset"),
    ("equity", "Equity"),
    ("cash", "Cash"),
    ("receivable", "Receivable"),
    ("payable", "Payable"),
]

TRANSACTION_TYPES = [
    ("payment", "Payment"),
    ("platform_fee", "Platform Fee"),
    ("service_fee", "Service Fee"),
    ("owner_earning", "Owner Earning"),
    ("deposit_hold", "Deposit Hold"),
    ("deposit_release", "Deposit Release"),
    ("refund", "Refund"),
    ("payout", "Payout"),
    ("dispute", "Dispute"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        # ---------------------------------------------------------------------
        # Ledger
        # ---------------------------------------------------------------------
        migrations.CreateModel(
            name="LedgerPosting",
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
                        auto_now_add=True, db_index=True, help_text="Timestamp when this posting was recorded"
                    ),
                ),
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking this posting belongs to")),
                (
                    "transaction_type",
                    models.CharField(
                        choices=TRANSACTION_TYPES, help_text="Transaction type shared by all legs", max_length=30
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate postings", max_length=255, unique=True
                    ),
                ),
                ("fingerprint", models.CharField(help_text="SHA-256 of the normalized legs", max_length=64)),
                (
                    "description",
                    models.TextField(blank=True, help_text="Human-readable description of this posting", null=True),
                ),
                (
                    "created_by",
                    models.CharField(
                        blank=True,
                        help_text="Identifier of service/actor that created this posting",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(blank=True, default=dict, help_text="Arbitrary JSON data for extensibility"),
                ),
                (
                    "reverses",
                    models.ForeignKey(
                        blank=True,
                        help_text="Posting offset by this reversal",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reversals",
                        to="payments.ledgerposting",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["booking_id", "transaction_type"], name="payments_le_booking_7c1f0a_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
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
                        auto_now_add=True, db_index=True, help_text="Timestamp when this entry was recorded"
                    ),
                ),
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking this leg belongs to")),
                (
                    "account_type",
                    models.CharField(choices=ACCOUNT_TYPES, help_text="Account category", max_length=20),
                ),
                (
                    "side",
                    models.CharField(
                        choices=[("debit", "Debit"), ("credit", "Credit")],
                        help_text="DEBIT or CREDIT",
                        max_length=6,
                    ),
                ),
                ("amount_cents", models.PositiveBigIntegerField(help_text="Amount in cents (always positive)")),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code", max_length=3)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=TRANSACTION_TYPES, help_text="Transaction type of the posting", max_length=30
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("settled", "Settled"),
                            ("failed", "Failed"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Settlement status of this leg",
                        max_length=10,
                    ),
                ),
                (
                    "owner_id",
                    models.UUIDField(
                        blank=True, db_index=True, help_text="Owner sub-ledger key for receivable legs", null=True
                    ),
                ),
                (
                    "settled_at",
                    models.DateTimeField(blank=True, help_text="When this leg was marked SETTLED", null=True),
                ),
                (
                    "posting",
                    models.ForeignKey(
                        help_text="Posting this leg belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="payments.ledgerposting",
                    ),
                ),
                (
                    "reversal_of",
                    models.ForeignKey(
                        blank=True,
                        help_text="Original leg offset by this one",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reversed_by",
                        to="payments.ledgerentry",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Ledger entries",
                "ordering": ["created_at", "posting_id", "side"],
                "indexes": [
                    models.Index(
                        fields=["booking_id", "account_type", "currency"], name="payments_le_booking_3e9b52_idx"
                    ),
                    models.Index(fields=["status", "created_at"], name="payments_le_status_a41d6e_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)), name="ledger_entry_amount_cents_positive"
                    ),
                ],
            },
        ),
        # ---------------------------------------------------------------------
        # Deposits
        # ---------------------------------------------------------------------
        migrations.CreateModel(
            name="DepositHold",
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
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking this deposit secures")),
                (
                    "owner_id",
                    models.UUIDField(blank=True, help_text="Owner credited with any deduction", null=True),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Authorized deposit amount in smallest currency unit"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                ("deducted_cents", models.PositiveBigIntegerField(default=0, help_text="Amount captured for damage")),
                (
                    "released_cents",
                    models.PositiveBigIntegerField(default=0, help_text="Amount returned to the renter"),
                ),
                (
                    "forfeited_cents",
                    models.PositiveBigIntegerField(
                        default=0, help_text="Amount lost when the processor dropped the authorization"
                    ),
                ),
                (
                    "deduction_reason",
                    models.TextField(blank=True, default="", help_text="Why a deduction was made"),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("authorized", "Authorized"),
                            ("captured", "Captured"),
                            ("released", "Released"),
                            ("expired", "Expired"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the hold",
                        max_length=50,
                    ),
                ),
                (
                    "processor_reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Processor authorization id (pi_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(help_text="Idempotency key used for the authorization", max_length=255),
                ),
                ("authorized_at", models.DateTimeField(blank=True, null=True)),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True, db_index=True, help_text="When the processor authorization lapses", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Deposit Hold",
                "verbose_name_plural": "Deposit Holds",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ("pending", "authorized"))),
                        fields=("booking_id",),
                        name="deposit_hold_one_active_per_booking",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)), name="deposit_hold_amount_positive"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "amount_cents__gte",
                                models.F("deducted_cents") + models.F("released_cents") + models.F("forfeited_cents"),
                            )
                        ),
                        name="deposit_hold_not_over_allocated",
                    ),
                ],
            },
        ),
        # ---------------------------------------------------------------------
        # Payments
        # ---------------------------------------------------------------------
        migrations.CreateModel(
            name="Payment",
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
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking this payment belongs to")),
                ("payer_id", models.UUIDField(help_text="User who paid (the renter)")),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Payment amount in smallest currency unit (e.g., cents)"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("succeeded", "Succeeded"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "processor_reference",
                    models.CharField(help_text="Processor payment intent id (pi_xxx)", max_length=255, unique=True),
                ),
                (
                    "idempotency_key",
                    models.CharField(help_text="Idempotency key used for the processor call", max_length=255),
                ),
                (
                    "payment_method",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Processor payment method (pm_xxx), reused for the deposit hold",
                        max_length=255,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the processor confirmed success or failure", null=True
                    ),
                ),
                (
                    "failure_code",
                    models.CharField(blank=True, default="", help_text="Processor decline/error code", max_length=100),
                ),
                (
                    "failure_message",
                    models.TextField(blank=True, default="", help_text="Processor failure message"),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking_id", "status"], name="payments_pa_booking_0d5a17_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="payment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
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
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking this refund belongs to")),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Refund amount in smallest currency unit (e.g., cents)"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "reason",
                    models.CharField(blank=True, default="", help_text="Why the refund was issued", max_length=255),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("pending", "Pending"), ("succeeded", "Succeeded"), ("failed", "Failed")],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "processor_reference",
                    models.CharField(
                        blank=True, db_index=True, default="", help_text="Processor refund id (re_xxx)", max_length=255
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Idempotency key used for the processor call", max_length=255, unique=True
                    ),
                ),
                (
                    "posting_id",
                    models.UUIDField(blank=True, help_text="Ledger posting holding the REFUND legs", null=True),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the processor confirmed the refund outcome", null=True
                    ),
                ),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Processor failure details")),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="refund_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
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
                ("owner_id", models.UUIDField(db_index=True, help_text="Owner receiving the payout")),
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking whose earnings are paid out")),
                (
                    "destination_account",
                    models.CharField(help_text="Processor account receiving the transfer (acct_xxx)", max_length=255),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Payout amount in smallest currency unit (e.g., cents)"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "processor_reference",
                    models.CharField(
                        blank=True, db_index=True, default="", help_text="Processor transfer id (tr_xxx)", max_length=255
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of transfer attempts made"),
                ),
                (
                    "posting_id",
                    models.UUIDField(blank=True, help_text="Ledger posting holding the PAYOUT legs", null=True),
                ),
                ("paid_at", models.DateTimeField(blank=True, help_text="When the transfer completed", null=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payout last failed", null=True)),
                (
                    "failure_reason",
                    models.TextField(blank=True, default="", help_text="Detailed reason if payout failed"),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner_id", "status"], name="payments_pa_owner_i_5b8e2c_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount_cents__gt", 0)), name="payout_amount_positive"),
                    models.UniqueConstraint(fields=("booking_id",), name="payout_one_per_booking"),
                ],
            },
        ),
        # ---------------------------------------------------------------------
        # Webhooks
        # ---------------------------------------------------------------------
        migrations.CreateModel(
            name="WebhookEvent",
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
                    "event_id",
                    models.CharField(
                        help_text="Processor event id (evt_xxx) - unique for idempotency", max_length=255, unique=True
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True, help_text="Event type (e.g., 'payment_intent.succeeded')", max_length=100
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True),
                ),
                (
                    "error_message",
                    models.TextField(blank=True, default="", help_text="Error message if processing failed"),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts"),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "retry_count"], name="payments_we_status_9f2c41_idx"),
                ],
            },
        ),
    ]
