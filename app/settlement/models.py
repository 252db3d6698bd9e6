"""
Settlement records.

One row per booking tracks the settlement attempts: how many were made,
when the next one is due, and why the last one did not go through.
FAILED rows are the operator queue; nothing is dropped silently.

Usage:
    from settlement.models import Settlement, SettlementStatus

    failed = Settlement.objects.filter(status=SettlementStatus.FAILED)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel


class SettlementStatus(models.TextChoices):
    """
    Settlement states.

    State Flow:
        PENDING -> SETTLED
        PENDING | RETRYING -> RETRYING (processor not confirmed yet)
        PENDING | RETRYING -> FAILED (retry ceiling or permanent error)
        FAILED -> PENDING (operator re-queue)
    """

    PENDING = "pending", "Pending"
    RETRYING = "retrying", "Retrying"
    SETTLED = "settled", "Settled"
    FAILED = "failed", "Failed"


OPEN_SETTLEMENT_STATUSES = [SettlementStatus.PENDING, SettlementStatus.RETRYING]


class Settlement(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Settlement bookkeeping for one booking.

    Fields:
        booking_id: Booking being settled
        owner_id: Owner whose earnings are settled
        attempt_count: Attempts made since creation or the last re-queue
        next_attempt_at: When the sweep should try again; empty while the
            booking is parked (e.g. under dispute)
        last_error / last_error_code: Why the last attempt did not settle
    """

    booking_id = models.UUIDField(unique=True, help_text="Booking being settled")
    owner_id = models.UUIDField(db_index=True, help_text="Owner receiving the earnings")

    status = FSMField(
        default=SettlementStatus.PENDING,
        choices=SettlementStatus.choices,
        db_index=True,
        help_text="Current settlement state (managed by FSM)",
    )

    attempt_count = models.PositiveSmallIntegerField(default=0, help_text="Settlement attempts made")
    next_attempt_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the next attempt is due",
    )

    last_error = models.TextField(blank=True, default="")
    last_error_code = models.CharField(max_length=100, blank=True, default="")

    settled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Settlement"
        verbose_name_plural = "Settlements"
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="settlement_status_due_idx"),
        ]

    def __str__(self) -> str:
        return f"Settlement({self.booking_id}, {self.status}, attempts={self.attempt_count})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=OPEN_SETTLEMENT_STATUSES, target=SettlementStatus.SETTLED)
    def settle(self):
        self.settled_at = timezone.now()
        self.next_attempt_at = None

    @transition(field=status, source=OPEN_SETTLEMENT_STATUSES, target=SettlementStatus.RETRYING)
    def schedule_retry(self, error: str, error_code: str, next_attempt_at):
        self.last_error = error
        self.last_error_code = error_code
        self.next_attempt_at = next_attempt_at

    @transition(field=status, source=OPEN_SETTLEMENT_STATUSES, target=SettlementStatus.FAILED)
    def fail(self, error: str, error_code: str):
        self.last_error = error
        self.last_error_code = error_code
        self.failed_at = timezone.now()
        self.next_attempt_at = None

    @transition(field=status, source=SettlementStatus.FAILED, target=SettlementStatus.PENDING)
    def requeue(self):
        self.attempt_count = 0
        self.failed_at = None
        self.next_attempt_at = timezone.now()

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SETTLEMENT_STATUSES
