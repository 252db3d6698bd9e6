import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models

DISPUTE_STATUSES = [
    ("open", "Open"),
    ("under_review", "Under Review"),
    ("investigating", "Investigating"),
    ("awaiting_response", "Awaiting Response"),
    ("in_mediation", "In Mediation"),
    ("resolved", "Resolved"),
    ("closed", "Closed"),
]

DISPUTE_TYPES = [
    ("property_damage", "Property Damage"),
    ("payment_issue", "Payment Issue"),
    ("cancellation", "Cancellation"),
    ("cleaning_fee", "Cleaning Fee"),
    ("rules_violation", "Rules Violation"),
    ("missing_items", "Missing Items"),
    ("condition_mismatch", "Condition Mismatch"),
    ("refund_request", "Refund Request"),
    ("other", "Other"),
]

RESOLUTION_OUTCOMES = [
    ("resolved_favor_initiator", "Resolved in Favor of Initiator"),
    ("resolved_favor_defendant", "Resolved in Favor of Defendant"),
    ("resolved_compromise", "Resolved by Compromise"),
    ("no_action", "No Action"),
    ("escalated", "Escalated"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Dispute",
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
                ("booking_id", models.UUIDField(db_index=True, help_text="Booking under dispute")),
                ("initiator_id", models.UUIDField(db_index=True, help_text="Party who opened the dispute")),
                ("defendant_id", models.UUIDField(db_index=True, help_text="The other booking party")),
                (
                    "initiator_role",
                    models.CharField(choices=[("renter", "Renter"), ("owner", "Owner")], max_length=10),
                ),
                ("dispute_type", models.CharField(choices=DISPUTE_TYPES, max_length=30)),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.TextField()),
                (
                    "claimed_amount_cents",
                    models.PositiveBigIntegerField(
                        default=0, help_text="Amount claimed by the initiator in smallest currency unit"
                    ),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("evidence", models.JSONField(blank=True, default=list, help_text="Evidence file URLs")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=DISPUTE_STATUSES,
                        db_index=True,
                        default="open",
                        help_text="Current workflow state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "priority",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("urgent", "Urgent")],
                        default="medium",
                        max_length=10,
                    ),
                ),
                (
                    "response_due_at",
                    models.DateTimeField(db_index=True, help_text="SLA deadline for the first response"),
                ),
                ("first_response_at", models.DateTimeField(blank=True, null=True)),
                ("escalated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "assigned_to",
                    models.UUIDField(blank=True, help_text="Staff member reviewing the dispute", null=True),
                ),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Dispute",
                "verbose_name_plural": "Disputes",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "response_due_at"], name="dispute_status_due_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("status__in", ["open", "under_review", "investigating", "awaiting_response", "in_mediation"])
                        ),
                        fields=("booking_id",),
                        name="dispute_one_active_per_booking",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DisputeResponse",
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
                ("author_id", models.UUIDField(help_text="Party who wrote the response")),
                ("message", models.TextField()),
                ("evidence", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "dispute",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="responses",
                        to="disputes.dispute",
                    ),
                ),
            ],
            options={
                "verbose_name": "Dispute Response",
                "verbose_name_plural": "Dispute Responses",
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="DisputeResolution",
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
                ("outcome", models.CharField(choices=RESOLUTION_OUTCOMES, max_length=30)),
                ("refund_amount_cents", models.PositiveBigIntegerField(default=0)),
                ("payout_adjustment_cents", models.BigIntegerField(default=0)),
                ("booking_status", models.CharField(help_text="Booking status after resolution", max_length=30)),
                (
                    "resolved_by",
                    models.UUIDField(blank=True, help_text="Staff member, or empty for system resolutions", null=True),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("posting_ids", models.JSONField(blank=True, default=list)),
                ("resolved_at", models.DateTimeField(auto_now_add=True)),
                (
                    "dispute",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="resolution",
                        to="disputes.dispute",
                    ),
                ),
            ],
            options={
                "verbose_name": "Dispute Resolution",
                "verbose_name_plural": "Dispute Resolutions",
                "ordering": ["-resolved_at"],
            },
        ),
    ]
