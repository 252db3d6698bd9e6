"""
Dispute workflow service.

A dispute freezes a booking in DISPUTED until staff resolve it. Resolution
is a single database transaction: the deposit deduction or refund, any
payout adjustment, the settlement legs, the DisputeResolution record and
the forced booking transition all commit together or not at all.
Processor calls are keyed per dispute, so retrying a failed resolution
replays them instead of moving money twice.

Outcome -> booking status:
    renter awarded the full booking total      REFUNDED
    every other outcome                        SETTLED

Usage:
    from disputes.services import DisputeService

    dispute = DisputeService.open_dispute(
        booking.id, owner_id, DisputeType.PROPERTY_DAMAGE,
        claimed_amount_cents=3000, description="Broken lamp",
    )
    DisputeService.resolve_dispute(
        dispute.id, ResolutionOutcome.RESOLVED_COMPROMISE,
        refund_amount_cents=1500, resolved_by=staff_id,
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.utils import timezone
from django_fsm import can_proceed

from bookings.cancellation import CancellationService
from bookings.exceptions import BookingNotFound, InvalidTransition
from bookings.models import Booking
from bookings.postings import post_payout_adjustment, post_settlement
from bookings.services import BookingService, BookingStateMachine
from bookings.states import TRANSITIONS, Actor, BookingAction, BookingStatus
from core.services import BaseService
from disputes.exceptions import (
    DisputeAlreadyOpen,
    DisputeAlreadyResolved,
    DisputeNotFound,
    DisputeNotOpenable,
    DisputePermissionDenied,
    DisputeValidationError,
    InvalidDisputeTransition,
)
from disputes.models import (
    ACTIVE_DISPUTE_STATUSES,
    RESOLVED_OUTCOMES,
    Dispute,
    DisputePriority,
    DisputeResolution,
    DisputeResponse,
    DisputeStatus,
    PartyRole,
    ResolutionOutcome,
)
from payments.deposits import DeductionExceedsHold, DepositHoldManager
from payments.ledger import LedgerPosting, LedgerService, TransactionType
from payments.services import RefundService

DISPUTABLE_STATUSES = (BookingStatus.AWAITING_RETURN_INSPECTION, BookingStatus.COMPLETED)

# Outcomes that may carry a refund to the initiator
AWARDING_OUTCOMES = frozenset(
    {ResolutionOutcome.RESOLVED_FAVOR_INITIATOR, ResolutionOutcome.RESOLVED_COMPROMISE}
)

# Outcomes that end the dispute without moving money
NO_MONEY_OUTCOMES = frozenset(
    {ResolutionOutcome.NO_ACTION, ResolutionOutcome.ESCALATED, ResolutionOutcome.CANCELLED}
)

DISPUTE_ACTOR = Actor.system("disputes")


class DisputeService(BaseService):
    """
    Opens, advances and resolves disputes.

    Methods:
        open_dispute: Party raises a claim; booking moves to DISPUTED
        add_response: Party adds a statement or evidence
        assign / start_investigation / request_response / start_mediation:
            Staff workflow steps
        resolve_dispute: Staff decision; moves money and the booking
        close_dispute: Initiator withdraws, or staff close without action
        escalate_overdue_disputes: Flag disputes past their response SLA
    """

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    def get_dispute(dispute_id: uuid.UUID) -> Dispute:
        try:
            return Dispute.objects.get(pk=dispute_id)
        except Dispute.DoesNotExist:
            raise DisputeNotFound(
                f"Dispute {dispute_id} not found",
                details={"dispute_id": str(dispute_id)},
            ) from None

    @staticmethod
    def get_active_dispute(booking_id: uuid.UUID) -> Dispute | None:
        return Dispute.objects.filter(booking_id=booking_id, status__in=ACTIVE_DISPUTE_STATUSES).first()

    @staticmethod
    def get_dispute_stats() -> dict:
        """Counts for the staff dashboard."""
        counts = dict(Dispute.objects.order_by().values("status").annotate(n=Count("id")).values_list("status", "n"))
        by_status = {status: counts.get(status, 0) for status in DisputeStatus.values}
        overdue = Dispute.objects.filter(
            status__in=ACTIVE_DISPUTE_STATUSES,
            first_response_at__isnull=True,
            response_due_at__lt=timezone.now(),
        ).count()
        return {
            "total": sum(by_status.values()),
            "active": sum(by_status[status] for status in ACTIVE_DISPUTE_STATUSES),
            "overdue": overdue,
            "by_status": by_status,
        }

    # ==========================================================================
    # Opening
    # ==========================================================================

    @classmethod
    def open_dispute(
        cls,
        booking_id: uuid.UUID,
        initiator_id: uuid.UUID,
        dispute_type: str,
        claimed_amount_cents: int = 0,
        description: str = "",
        title: str = "",
        evidence: list[str] | None = None,
        priority: str = DisputePriority.MEDIUM,
    ) -> Dispute:
        """
        Open a dispute and move the booking to DISPUTED.

        Raises:
            BookingNotFound: Unknown booking
            DisputePermissionDenied: Initiator is not a party to the booking
            DisputeAlreadyOpen: Booking already has an active dispute
            DisputeNotOpenable: Booking is not disputable (wrong state, or
                the filing window after completion has closed)
            DisputeValidationError: Negative claimed amount
        """
        logger = cls.get_logger()
        if claimed_amount_cents < 0:
            raise DisputeValidationError(
                "Claimed amount cannot be negative",
                details={"claimed_amount_cents": claimed_amount_cents},
            )

        with cls.atomic():
            booking = cls._lock_booking(booking_id)
            role = booking.party_role(initiator_id)
            if role is None:
                raise DisputePermissionDenied(
                    "Only the renter or the owner can open a dispute",
                    details={"booking_id": str(booking.id)},
                )

            active = cls.get_active_dispute(booking.id)
            if active is not None:
                raise DisputeAlreadyOpen(
                    "This booking already has an active dispute",
                    details={"booking_id": str(booking.id), "dispute_id": str(active.id)},
                )

            if booking.status not in DISPUTABLE_STATUSES:
                raise DisputeNotOpenable(
                    f"A booking in {booking.status} state cannot be disputed",
                    details={"booking_id": str(booking.id), "status": booking.status},
                )

            defendant_id = booking.owner_id if role == PartyRole.RENTER else booking.renter_id
            try:
                with transaction.atomic():
                    dispute = Dispute.objects.create(
                        booking_id=booking.id,
                        initiator_id=initiator_id,
                        defendant_id=defendant_id,
                        initiator_role=role,
                        dispute_type=dispute_type,
                        title=title,
                        description=description,
                        claimed_amount_cents=claimed_amount_cents,
                        currency=booking.currency,
                        evidence=list(evidence or []),
                        priority=priority,
                        response_due_at=timezone.now()
                        + timedelta(hours=settings.DISPUTE_RESPONSE_SLA_HOURS),
                    )
            except IntegrityError:
                raise DisputeAlreadyOpen(
                    "This booking already has an active dispute",
                    details={"booking_id": str(booking.id)},
                ) from None

            try:
                BookingStateMachine.transition(
                    booking.id,
                    BookingAction.INITIATE_DISPUTE,
                    DISPUTE_ACTOR,
                    reason=f"Dispute {dispute.id} opened by {role}",
                    context={"dispute_id": str(dispute.id)},
                )
            except InvalidTransition as exc:
                raise DisputeNotOpenable(
                    exc.message,
                    details={"booking_id": str(booking.id), **exc.details},
                ) from exc

        logger.info(
            "Dispute opened",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking.id),
                "initiator_role": role,
                "dispute_type": dispute_type,
                "claimed_amount_cents": claimed_amount_cents,
            },
        )
        return dispute

    # ==========================================================================
    # Workflow
    # ==========================================================================

    @classmethod
    def add_response(
        cls,
        dispute_id: uuid.UUID,
        author_id: uuid.UUID,
        message: str,
        evidence: list[str] | None = None,
    ) -> DisputeResponse:
        """
        Add a party statement.

        The defendant's first response stops the SLA clock; a defendant
        response to an OPEN or AWAITING_RESPONSE dispute puts it back under
        review.

        Raises:
            DisputePermissionDenied: Author is not a party
            DisputeAlreadyResolved: Dispute has ended
        """
        with cls.atomic():
            dispute = cls._lock(dispute_id)
            if not dispute.is_active:
                raise DisputeAlreadyResolved(
                    "Cannot respond to a dispute that has ended",
                    details={"dispute_id": str(dispute.id), "status": dispute.status},
                )
            if not dispute.is_party(author_id):
                raise DisputePermissionDenied(
                    "Only the parties can respond to a dispute",
                    details={"dispute_id": str(dispute.id)},
                )

            response = DisputeResponse.objects.create(
                dispute=dispute,
                author_id=author_id,
                message=message,
                evidence=list(evidence or []),
            )

            if str(author_id) == str(dispute.defendant_id):
                if dispute.first_response_at is None:
                    dispute.first_response_at = response.created_at
                if can_proceed(dispute.record_response):
                    dispute.record_response()
                dispute.save()

        cls.get_logger().info(
            "Dispute response added",
            extra={"dispute_id": str(dispute.id), "status": dispute.status},
        )
        return response

    @classmethod
    def assign(cls, dispute_id: uuid.UUID, assignee_id: uuid.UUID) -> Dispute:
        return cls._advance(dispute_id, "assign", assignee_id=assignee_id)

    @classmethod
    def start_investigation(cls, dispute_id: uuid.UUID) -> Dispute:
        return cls._advance(dispute_id, "investigate")

    @classmethod
    def request_response(cls, dispute_id: uuid.UUID) -> Dispute:
        return cls._advance(dispute_id, "request_response")

    @classmethod
    def start_mediation(cls, dispute_id: uuid.UUID) -> Dispute:
        return cls._advance(dispute_id, "mediate")

    @classmethod
    def _advance(cls, dispute_id: uuid.UUID, step: str, **kwargs) -> Dispute:
        with cls.atomic():
            dispute = cls._lock(dispute_id)
            from_status = dispute.status
            method = getattr(dispute, step)
            if not can_proceed(method):
                raise InvalidDisputeTransition(dispute.status, step)
            method(**kwargs)
            dispute.save()

        cls.get_logger().info(
            "Dispute advanced",
            extra={
                "dispute_id": str(dispute.id),
                "step": step,
                "from_status": from_status,
                "to_status": dispute.status,
            },
        )
        return dispute

    # ==========================================================================
    # Resolution
    # ==========================================================================

    @classmethod
    def resolve_dispute(
        cls,
        dispute_id: uuid.UUID,
        outcome: str,
        refund_amount_cents: int = 0,
        payout_adjustment_cents: int = 0,
        resolved_by: uuid.UUID | None = None,
        notes: str = "",
    ) -> DisputeResolution:
        """
        Apply a staff decision and move the booking out of DISPUTED.

        ``refund_amount_cents`` is awarded to the initiator: deducted from
        the deposit hold when the owner opened the dispute, refunded from
        the captured payment when the renter did.

        Raises:
            DisputeAlreadyResolved: Dispute has ended
            DisputeValidationError: Amounts do not fit the outcome
            DeductionExceedsHold: Owner award larger than the deposit held
            PaymentValidationError: Renter award larger than what is refundable
            ExternalFailed: Processor rejected the deduction or refund
        """
        logger = cls.get_logger()
        outcome = cls._validate_outcome(outcome, refund_amount_cents, payout_adjustment_cents)

        with cls.atomic():
            dispute = cls._lock(dispute_id)
            if not dispute.is_active:
                raise DisputeAlreadyResolved(
                    "Dispute has already ended",
                    details={"dispute_id": str(dispute.id), "status": dispute.status},
                )

            booking = BookingService.get_booking(dispute.booking_id)
            if booking.status != BookingStatus.DISPUTED:
                raise InvalidTransition(booking.status, BookingAction.RESOLVE_DISPUTE)

            full_refund = (
                dispute.initiator_role == PartyRole.RENTER
                and refund_amount_cents >= booking.total_cents
            )
            action = BookingAction.REFUND if full_refund else BookingAction.RESOLVE_DISPUTE

            postings = cls._move_money(
                dispute,
                booking,
                refund_amount_cents,
                payout_adjustment_cents,
                settle=not full_refund,
                created_by=str(resolved_by or ""),
            )

            resolution = DisputeResolution.objects.create(
                dispute=dispute,
                outcome=outcome,
                refund_amount_cents=refund_amount_cents,
                payout_adjustment_cents=payout_adjustment_cents,
                booking_status=TRANSITIONS[action].target,
                resolved_by=resolved_by,
                notes=notes,
                posting_ids=[str(posting.id) for posting in postings],
            )

            if outcome in RESOLVED_OUTCOMES:
                dispute.resolve()
            else:
                dispute.close()
            dispute.save()

            BookingStateMachine.force_transition(
                booking.id,
                action,
                reason=f"Dispute {dispute.id} {outcome}",
                resolved_by=resolved_by,
                context={"dispute_id": str(dispute.id), "outcome": str(outcome)},
            )
            # A refund the processor has not confirmed keeps its legs PENDING.
            LedgerService.settle_entries(
                booking.id,
                exclude_postings=RefundService.unconfirmed_postings(booking.id),
            )

        logger.info(
            "Dispute resolved",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking.id),
                "outcome": str(outcome),
                "refund_amount_cents": refund_amount_cents,
                "payout_adjustment_cents": payout_adjustment_cents,
                "booking_status": resolution.booking_status,
            },
        )
        return resolution

    @classmethod
    def close_dispute(
        cls,
        dispute_id: uuid.UUID,
        closed_by: uuid.UUID,
        reason: str = "",
        is_admin: bool = False,
    ) -> DisputeResolution:
        """
        Close a dispute without moving money. The booking settles normally.

        Raises:
            DisputePermissionDenied: Caller is neither the initiator nor staff
        """
        dispute = cls.get_dispute(dispute_id)
        if not is_admin and str(closed_by) != str(dispute.initiator_id):
            raise DisputePermissionDenied(
                "Only the initiator can withdraw a dispute",
                details={"dispute_id": str(dispute.id)},
            )
        return cls.resolve_dispute(
            dispute.id,
            ResolutionOutcome.CANCELLED,
            resolved_by=closed_by if is_admin else None,
            notes=reason or "Withdrawn by initiator",
        )

    @staticmethod
    def _validate_outcome(outcome: str, refund_amount_cents: int, payout_adjustment_cents: int) -> ResolutionOutcome:
        try:
            outcome = ResolutionOutcome(outcome)
        except ValueError:
            raise DisputeValidationError(
                f"Unknown resolution outcome: {outcome}",
                details={"outcome": str(outcome)},
            ) from None
        if refund_amount_cents < 0:
            raise DisputeValidationError(
                "Refund amount cannot be negative",
                details={"refund_amount_cents": refund_amount_cents},
            )
        if refund_amount_cents and outcome not in AWARDING_OUTCOMES:
            raise DisputeValidationError(
                f"Outcome {outcome} cannot award a refund",
                details={"outcome": str(outcome), "refund_amount_cents": refund_amount_cents},
            )
        if payout_adjustment_cents and outcome in NO_MONEY_OUTCOMES:
            raise DisputeValidationError(
                f"Outcome {outcome} cannot adjust the payout",
                details={"outcome": str(outcome), "payout_adjustment_cents": payout_adjustment_cents},
            )
        return outcome

    @classmethod
    def _move_money(
        cls,
        dispute: Dispute,
        booking: Booking,
        refund_amount_cents: int,
        payout_adjustment_cents: int,
        settle: bool,
        created_by: str,
    ) -> list[LedgerPosting]:
        postings: list[LedgerPosting] = []
        reason = f"Dispute {dispute.id}"

        if refund_amount_cents > 0:
            if dispute.initiator_role == PartyRole.OWNER:
                hold = DepositHoldManager.get_active_hold(booking.id)
                if hold is None:
                    raise DeductionExceedsHold(refund_amount_cents, 0)
                hold = DepositHoldManager.deduct(hold.id, refund_amount_cents, reason=reason)
                postings += cls._postings(
                    LedgerService.posting_key(booking.id, TransactionType.DISPUTE, hold.id),
                    LedgerService.posting_key(booking.id, TransactionType.DEPOSIT_RELEASE, hold.id),
                )
            else:
                payment = CancellationService.captured_payment(booking.id)
                if payment is None:
                    raise DisputeValidationError(
                        "Booking has no captured payment to refund",
                        details={"booking_id": str(booking.id)},
                    )
                refund = RefundService.issue_refund(
                    payment,
                    refund_amount_cents,
                    reason=reason,
                    purpose=f"dispute_{dispute.id}",
                )
                postings += list(LedgerPosting.objects.filter(pk=refund.posting_id))

        adjustment = post_payout_adjustment(
            booking,
            payout_adjustment_cents,
            sequence=f"dispute_{dispute.id}",
            reason=reason,
        )
        if adjustment is not None:
            postings.append(adjustment)

        if settle:
            postings += post_settlement(booking, created_by=created_by)

        hold = DepositHoldManager.get_active_hold(booking.id)
        if hold is not None:
            DepositHoldManager.release(hold.id, reason=reason)
            postings += cls._postings(
                LedgerService.posting_key(booking.id, TransactionType.DEPOSIT_RELEASE, hold.id)
            )
        return postings

    @staticmethod
    def _postings(*keys: str) -> list[LedgerPosting]:
        return list(LedgerPosting.objects.filter(idempotency_key__in=keys))

    # ==========================================================================
    # SLA
    # ==========================================================================

    @classmethod
    def escalate_overdue_disputes(cls, now: datetime | None = None) -> int:
        """
        Raise to URGENT every active dispute whose response SLA has passed
        without a first response. Each dispute is escalated once.
        """
        now = now or timezone.now()
        overdue = Dispute.objects.filter(
            status__in=ACTIVE_DISPUTE_STATUSES,
            first_response_at__isnull=True,
            escalated_at__isnull=True,
            response_due_at__lt=now,
        )
        dispute_ids = [str(pk) for pk in overdue.values_list("id", flat=True)]
        if not dispute_ids:
            return 0

        count = Dispute.objects.filter(pk__in=dispute_ids).update(
            priority=DisputePriority.URGENT,
            escalated_at=now,
            version=F("version") + 1,
        )
        cls.get_logger().warning(
            "Disputes escalated past response SLA",
            extra={"count": count, "dispute_ids": dispute_ids},
        )
        return count

    # ==========================================================================
    # Locking
    # ==========================================================================

    @staticmethod
    def _lock(dispute_id: uuid.UUID) -> Dispute:
        dispute = Dispute.objects.select_for_update().filter(pk=dispute_id).first()
        if dispute is None:
            raise DisputeNotFound(
                f"Dispute {dispute_id} not found",
                details={"dispute_id": str(dispute_id)},
            )
        return dispute

    @staticmethod
    def _lock_booking(booking_id: uuid.UUID) -> Booking:
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise BookingNotFound(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            )
        return booking
