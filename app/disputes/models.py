"""
Dispute models.

- Dispute: a claim raised by one booking party against the other. Holds a
  one-way ``booking_id`` reference; the booking never points back.
- DisputeResponse: statement or evidence added by a party.
- DisputeResolution: terminal record, written exactly once when the
  dispute is resolved or closed.

Usage:
    from disputes.models import Dispute, DisputeStatus

    open_disputes = Dispute.objects.filter(status__in=ACTIVE_DISPUTE_STATUSES)
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel


# =============================================================================
# Choices
# =============================================================================


class DisputeStatus(models.TextChoices):
    """
    Dispute workflow states.

    State Flow:
        OPEN -> UNDER_REVIEW | INVESTIGATING
        UNDER_REVIEW | INVESTIGATING -> AWAITING_RESPONSE | IN_MEDIATION
        AWAITING_RESPONSE -> UNDER_REVIEW (party responded)
        any active state -> RESOLVED | CLOSED (terminal)
    """

    OPEN = "open", "Open"
    UNDER_REVIEW = "under_review", "Under Review"
    INVESTIGATING = "investigating", "Investigating"
    AWAITING_RESPONSE = "awaiting_response", "Awaiting Response"
    IN_MEDIATION = "in_mediation", "In Mediation"
    RESOLVED = "resolved", "Resolved"
    CLOSED = "closed", "Closed"


ACTIVE_DISPUTE_STATUSES = [
    DisputeStatus.OPEN,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.INVESTIGATING,
    DisputeStatus.AWAITING_RESPONSE,
    DisputeStatus.IN_MEDIATION,
]


class DisputeType(models.TextChoices):
    PROPERTY_DAMAGE = "property_damage", "Property Damage"
    PAYMENT_ISSUE = "payment_issue", "Payment Issue"
    CANCELLATION = "cancellation", "Cancellation"
    CLEANING_FEE = "cleaning_fee", "Cleaning Fee"
    RULES_VIOLATION = "rules_violation", "Rules Violation"
    MISSING_ITEMS = "missing_items", "Missing Items"
    CONDITION_MISMATCH = "condition_mismatch", "Condition Mismatch"
    REFUND_REQUEST = "refund_request", "Refund Request"
    OTHER = "other", "Other"


class DisputePriority(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    URGENT = "urgent", "Urgent"


class ResolutionOutcome(models.TextChoices):
    """
    How a dispute ended.

    The first three leave the dispute RESOLVED; the rest CLOSED.
    """

    RESOLVED_FAVOR_INITIATOR = "resolved_favor_initiator", "Resolved in Favor of Initiator"
    RESOLVED_FAVOR_DEFENDANT = "resolved_favor_defendant", "Resolved in Favor of Defendant"
    RESOLVED_COMPROMISE = "resolved_compromise", "Resolved by Compromise"
    NO_ACTION = "no_action", "No Action"
    ESCALATED = "escalated", "Escalated"
    CANCELLED = "cancelled", "Cancelled"


RESOLVED_OUTCOMES = frozenset(
    {
        ResolutionOutcome.RESOLVED_FAVOR_INITIATOR,
        ResolutionOutcome.RESOLVED_FAVOR_DEFENDANT,
        ResolutionOutcome.RESOLVED_COMPROMISE,
    }
)


class PartyRole(models.TextChoices):
    RENTER = "renter", "Renter"
    OWNER = "owner", "Owner"


# =============================================================================
# Dispute
# =============================================================================


class Dispute(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A claim one booking party raises against the other.

    At most one dispute per booking may be active at a time; the partial
    unique constraint backs the check in DisputeService.open_dispute.

    Fields:
        booking_id: Disputed booking
        initiator_id / defendant_id: The two booking parties
        initiator_role: Whether the renter or the owner opened it
        claimed_amount_cents: Amount the initiator asks for
        response_due_at: SLA deadline for the first response
        assigned_to: Staff member reviewing the dispute
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    booking_id = models.UUIDField(db_index=True, help_text="Booking under dispute")
    initiator_id = models.UUIDField(db_index=True, help_text="Party who opened the dispute")
    defendant_id = models.UUIDField(db_index=True, help_text="The other booking party")
    initiator_role = models.CharField(max_length=10, choices=PartyRole.choices)

    # ==========================================================================
    # Claim
    # ==========================================================================

    dispute_type = models.CharField(max_length=30, choices=DisputeType.choices)
    title = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField()
    claimed_amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount claimed by the initiator in smallest currency unit",
    )
    currency = models.CharField(max_length=3, default="usd")
    evidence = models.JSONField(default=list, blank=True, help_text="Evidence file URLs")

    # ==========================================================================
    # Workflow
    # ==========================================================================

    status = FSMField(
        default=DisputeStatus.OPEN,
        choices=DisputeStatus.choices,
        db_index=True,
        help_text="Current workflow state (managed by FSM)",
    )

    priority = models.CharField(
        max_length=10,
        choices=DisputePriority.choices,
        default=DisputePriority.MEDIUM,
    )

    response_due_at = models.DateTimeField(
        db_index=True,
        help_text="SLA deadline for the first response",
    )
    first_response_at = models.DateTimeField(null=True, blank=True)
    escalated_at = models.DateTimeField(null=True, blank=True)

    assigned_to = models.UUIDField(null=True, blank=True, help_text="Staff member reviewing the dispute")
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Dispute"
        verbose_name_plural = "Disputes"
        indexes = [
            models.Index(fields=["status", "response_due_at"], name="dispute_status_due_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking_id"],
                condition=Q(
                    status__in=[
                        "open",
                        "under_review",
                        "investigating",
                        "awaiting_response",
                        "in_mediation",
                    ]
                ),
                name="dispute_one_active_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.id}, {self.dispute_type}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=DisputeStatus.OPEN, target=DisputeStatus.UNDER_REVIEW)
    def assign(self, assignee_id):
        self.assigned_to = assignee_id

    @transition(
        field=status,
        source=[DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW],
        target=DisputeStatus.INVESTIGATING,
    )
    def investigate(self):
        pass

    @transition(
        field=status,
        source=[DisputeStatus.UNDER_REVIEW, DisputeStatus.INVESTIGATING],
        target=DisputeStatus.AWAITING_RESPONSE,
    )
    def request_response(self):
        pass

    @transition(
        field=status,
        source=[DisputeStatus.OPEN, DisputeStatus.AWAITING_RESPONSE],
        target=DisputeStatus.UNDER_REVIEW,
    )
    def record_response(self):
        pass

    @transition(
        field=status,
        source=[DisputeStatus.UNDER_REVIEW, DisputeStatus.INVESTIGATING, DisputeStatus.AWAITING_RESPONSE],
        target=DisputeStatus.IN_MEDIATION,
    )
    def mediate(self):
        pass

    @transition(field=status, source=ACTIVE_DISPUTE_STATUSES, target=DisputeStatus.RESOLVED)
    def resolve(self):
        self.resolved_at = timezone.now()

    @transition(field=status, source=ACTIVE_DISPUTE_STATUSES, target=DisputeStatus.CLOSED)
    def close(self):
        self.resolved_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_DISPUTE_STATUSES

    @property
    def is_overdue(self) -> bool:
        return self.is_active and self.first_response_at is None and timezone.now() > self.response_due_at

    def is_party(self, party_id) -> bool:
        return str(party_id) in (str(self.initiator_id), str(self.defendant_id))


class DisputeResponse(UUIDPrimaryKeyMixin, models.Model):
    """Statement or evidence added to a dispute by one of the parties."""

    dispute = models.ForeignKey(Dispute, on_delete=models.PROTECT, related_name="responses")
    author_id = models.UUIDField(help_text="Party who wrote the response")
    message = models.TextField()
    evidence = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Dispute Response"
        verbose_name_plural = "Dispute Responses"

    def __str__(self) -> str:
        return f"Response to {self.dispute_id} by {self.author_id}"


class DisputeResolution(UUIDPrimaryKeyMixin, models.Model):
    """
    Terminal record of a dispute.

    Created in the same transaction as the money movements and the forced
    booking transition; one per dispute.

    Fields:
        refund_amount_cents: Awarded to the initiator (deposit deduction for
            owners, refund of the payment for renters)
        payout_adjustment_cents: Signed correction to the owner's payout
        booking_status: Status the booking was moved to
        posting_ids: Ledger postings written by the resolution
    """

    dispute = models.OneToOneField(Dispute, on_delete=models.PROTECT, related_name="resolution")
    outcome = models.CharField(max_length=30, choices=ResolutionOutcome.choices)
    refund_amount_cents = models.PositiveBigIntegerField(default=0)
    payout_adjustment_cents = models.BigIntegerField(default=0)
    booking_status = models.CharField(max_length=30, help_text="Booking status after resolution")
    resolved_by = models.UUIDField(null=True, blank=True, help_text="Staff member, or empty for system resolutions")
    notes = models.TextField(blank=True, default="")
    posting_ids = models.JSONField(default=list, blank=True)
    resolved_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-resolved_at"]
        verbose_name = "Dispute Resolution"
        verbose_name_plural = "Dispute Resolutions"

    def __str__(self) -> str:
        return f"Resolution({self.dispute_id}, {self.outcome})"
