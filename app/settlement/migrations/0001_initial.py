import uuid

import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Settlement",
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
                ("booking_id", models.UUIDField(help_text="Booking being settled", unique=True)),
                ("owner_id", models.UUIDField(db_index=True, help_text="Owner receiving the earnings")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("retrying", "Retrying"),
                            ("settled", "Settled"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current settlement state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("attempt_count", models.PositiveSmallIntegerField(default=0, help_text="Settlement attempts made")),
                (
                    "next_attempt_at",
                    models.DateTimeField(
                        blank=True, db_index=True, help_text="When the next attempt is due", null=True
                    ),
                ),
                ("last_error", models.TextField(blank=True, default="")),
                ("last_error_code", models.CharField(blank=True, default="", max_length=100)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Settlement",
                "verbose_name_plural": "Settlements",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "next_attempt_at"], name="settlement_status_due_idx"),
                ],
            },
        ),
    ]
