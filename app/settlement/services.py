"""
Settlement Orchestrator.

A COMPLETED booking is settled once its dispute filing window has passed:

1. Confirm with the processor that the renter's payment is captured
2. Post OWNER_EARNING, PLATFORM_FEE and SERVICE_FEE legs
3. Release the deposit hold
4. Move the booking to SETTLED and mark its ledger entries SETTLED
5. Create the owner's payout

Steps 2-4 commit together. An attempt the processor cannot confirm yet is
retried with exponential backoff; once SETTLEMENT_MAX_ATTEMPTS is reached,
or on a permanent error, the settlement is marked FAILED together with the
booking's pending ledger entries and waits for an operator to re-queue it.

CANCELLED and REFUNDED bookings are closed out instead: once the processor
has confirmed their refunds, the remaining PENDING legs are settled under
the same retry and failure rules. Nothing is paid out for them.

Usage:
    from settlement.services import SettlementOrchestrator

    SettlementOrchestrator.settle_booking(booking.id)
    SettlementOrchestrator.requeue(booking.id)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from bookings.cancellation import CancellationService
from bookings.exceptions import InvalidTransition, TransitionFailed
from bookings.models import Booking
from bookings.postings import post_settlement
from bookings.services import BookingService, BookingStateMachine
from bookings.states import Actor, BookingAction, BookingStatus
from core.exceptions import BaseApplicationError
from core.services import BaseService
from payments.adapters import get_processor
from payments.deposits import DepositHoldManager
from payments.exceptions import ExternalFailed, ExternalPending, StripeError
from payments.ledger import AccountType, LedgerService
from payments.locks import booking_lock
from payments.models import Payout
from payments.services import RefundService
from payments.state_machines import PayoutStatus
from settlement.exceptions import SettlementNotEligible, SettlementNotFound
from settlement.models import OPEN_SETTLEMENT_STATUSES, Settlement, SettlementStatus

SETTLEMENT_ACTOR = Actor.system("settlement")

# Terminal without a payout; only their ledger legs are made final.
CLOSE_OUT_STATUSES = (BookingStatus.CANCELLED, BookingStatus.REFUNDED)


def _error_code(exc: Exception) -> str:
    return getattr(exc, "error_code", None) or exc.__class__.__name__.upper()


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, StripeError):
        return exc.is_retryable
    # InvalidTransition: a dispute was opened concurrently; the next attempt parks it.
    return isinstance(exc, (ExternalPending, TransitionFailed, InvalidTransition))


class SettlementOrchestrator(BaseService):
    """
    Drives completed bookings to SETTLED and pays their owners.

    Methods:
        schedule: Create the settlement record when a booking completes
        settle_booking: One settlement attempt under the booking lock
        requeue: Operator retry of a FAILED settlement
        record_dispute_settlement: Close out a booking settled by a dispute
        create_owner_payout: Payout for the owner's settled earnings
        due_bookings / due_payouts: Work for the periodic sweeps
    """

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    @staticmethod
    def eligible_at(booking: Booking) -> datetime:
        """End of the dispute filing window."""
        completed_at = booking.completed_at or timezone.now()
        return completed_at + timedelta(hours=settings.DISPUTE_FILING_WINDOW_HOURS)

    @staticmethod
    def backoff_delay(attempt: int) -> timedelta:
        """Delay before retry number ``attempt`` (1-based), doubling up to the cap."""
        base = settings.SETTLEMENT_RETRY_BASE_SECONDS
        seconds = min(base * 2 ** max(attempt - 1, 0), settings.SETTLEMENT_RETRY_MAX_SECONDS)
        return timedelta(seconds=seconds)

    @classmethod
    def schedule(cls, booking: Booking) -> Settlement:
        settlement, created = Settlement.objects.get_or_create(
            booking_id=booking.id,
            defaults={"owner_id": booking.owner_id, "next_attempt_at": cls.eligible_at(booking)},
        )
        if created:
            cls.get_logger().info(
                "Settlement scheduled",
                extra={
                    "booking_id": str(booking.id),
                    "settlement_id": str(settlement.id),
                    "next_attempt_at": settlement.next_attempt_at.isoformat(),
                },
            )
        return settlement

    @staticmethod
    def get_settlement(booking_id: uuid.UUID) -> Settlement:
        try:
            return Settlement.objects.get(booking_id=booking_id)
        except Settlement.DoesNotExist:
            raise SettlementNotFound(
                f"No settlement for booking {booking_id}",
                details={"booking_id": str(booking_id)},
            ) from None

    # ==========================================================================
    # Settling
    # ==========================================================================

    @classmethod
    def settle_booking(cls, booking_id: uuid.UUID) -> Settlement:
        """
        Make one settlement attempt.

        Returns the settlement in whatever state the attempt left it.

        Raises:
            BookingNotFound: Unknown booking
            LockAcquisitionError: Another worker holds the booking lock
            SettlementNotEligible: Booking is still in progress, or a closed-out
                booking has nothing left to settle
        """
        with booking_lock(booking_id, blocking=False):
            return cls._settle(booking_id)

    @classmethod
    def _settle(cls, booking_id: uuid.UUID) -> Settlement:
        logger = cls.get_logger()
        booking = BookingService.get_booking(booking_id)
        if booking.status in CLOSE_OUT_STATUSES:
            return cls._close_out(booking)
        if booking.status == BookingStatus.SETTLED:
            settlement = cls.record_dispute_settlement(booking.id)
            cls._reconcile_refunds(booking)
            return settlement
        if booking.status not in (BookingStatus.COMPLETED, BookingStatus.DISPUTED):
            raise SettlementNotEligible(
                f"A booking in {booking.status} state cannot be settled",
                details={"booking_id": str(booking.id), "status": booking.status},
            )

        settlement = cls.schedule(booking)
        log_context = {"booking_id": str(booking.id), "settlement_id": str(settlement.id)}
        if not settlement.is_open:
            return settlement

        if booking.status == BookingStatus.DISPUTED:
            # The dispute resolution settles the booking.
            settlement.next_attempt_at = None
            settlement.save(update_fields=["next_attempt_at", "updated_at"])
            logger.info("Settlement parked while booking is disputed", extra=log_context)
            return settlement

        due_at = cls.eligible_at(booking)
        if timezone.now() < due_at:
            settlement.next_attempt_at = due_at
            settlement.save(update_fields=["next_attempt_at", "updated_at"])
            return settlement

        settlement.attempt_count += 1
        settlement.save(update_fields=["attempt_count", "updated_at"])
        log_context["attempt"] = settlement.attempt_count

        try:
            cls._confirm_capture(booking)
            with cls.atomic():
                post_settlement(booking, created_by=SETTLEMENT_ACTOR.label)
                hold = DepositHoldManager.get_active_hold(booking.id)
                if hold is not None:
                    DepositHoldManager.release(hold.id, reason="Booking settled")
                BookingStateMachine.transition(
                    booking.id,
                    BookingAction.SETTLE,
                    SETTLEMENT_ACTOR,
                    reason="Dispute window closed",
                )
                LedgerService.settle_entries(
                    booking.id,
                    exclude_postings=RefundService.unconfirmed_postings(booking.id),
                )
                settlement.settle()
                settlement.save()
        except BaseApplicationError as exc:
            if _is_retryable(exc):
                return cls._retry_or_fail(settlement, exc)
            return cls._fail(settlement, exc)

        logger.info("Booking settled", extra=log_context)
        cls.create_owner_payout(booking)
        return settlement

    @classmethod
    def _confirm_capture(cls, booking: Booking) -> None:
        payment = CancellationService.captured_payment(booking.id)
        if payment is None:
            raise SettlementNotEligible(
                "Booking has no captured payment",
                details={"booking_id": str(booking.id)},
            )
        result = get_processor().retrieve_payment(payment.processor_reference)
        if result.is_pending:
            raise ExternalPending(
                "Processor has not confirmed the capture yet",
                reference_id=payment.processor_reference,
            )
        if result.is_failed:
            raise ExternalFailed(
                "Processor reports the payment as failed",
                error_code="CAPTURE_NOT_CONFIRMED",
                details={"booking_id": str(booking.id), "processor_reference": payment.processor_reference},
            )

    @classmethod
    def _close_out(cls, booking: Booking) -> Settlement:
        """
        Make the ledger of a CANCELLED or REFUNDED booking final.

        Nothing is paid out; the attempt waits until the processor has
        confirmed every refund, then settles the remaining PENDING legs.
        """
        log_context = {"booking_id": str(booking.id), "status": booking.status}
        settlement = Settlement.objects.filter(booking_id=booking.id).first()
        if settlement is None:
            if not LedgerService.has_open_entries(booking.id):
                raise SettlementNotEligible(
                    "Booking has no ledger entries awaiting settlement",
                    details=log_context,
                )
            settlement = Settlement.objects.create(
                booking_id=booking.id,
                owner_id=booking.owner_id,
                next_attempt_at=timezone.now(),
            )
        if not settlement.is_open:
            return settlement

        settlement.attempt_count += 1
        settlement.save(update_fields=["attempt_count", "updated_at"])
        log_context.update(settlement_id=str(settlement.id), attempt=settlement.attempt_count)

        try:
            if CancellationService.captured_payment(booking.id) is not None:
                cls._confirm_capture(booking)
            pending = RefundService.reconcile_pending_refunds(booking.id)
            if pending:
                raise ExternalPending(
                    f"Processor has not confirmed {pending} refund(s) yet",
                    reference_id=str(booking.id),
                )
            with cls.atomic():
                count = LedgerService.settle_entries(booking.id)
                settlement.settle()
                settlement.save()
        except BaseApplicationError as exc:
            if _is_retryable(exc):
                return cls._retry_or_fail(settlement, exc)
            return cls._fail(settlement, exc)

        cls.get_logger().info("Closed-out booking settled", extra={**log_context, "entry_count": count})
        return settlement

    @classmethod
    def _reconcile_refunds(cls, booking: Booking) -> None:
        pending = RefundService.reconcile_pending_refunds(booking.id)
        if pending:
            cls.get_logger().warning(
                "Settled booking still has unconfirmed refunds",
                extra={"booking_id": str(booking.id), "pending_refunds": pending},
            )

    @classmethod
    def _retry_or_fail(cls, settlement: Settlement, exc: BaseApplicationError) -> Settlement:
        if settlement.attempt_count >= settings.SETTLEMENT_MAX_ATTEMPTS:
            return cls._fail(settlement, exc)

        delay = cls.backoff_delay(settlement.attempt_count)
        settlement.schedule_retry(
            error=exc.message,
            error_code=_error_code(exc),
            next_attempt_at=timezone.now() + delay,
        )
        settlement.save()
        log = cls.get_logger().info if isinstance(exc, ExternalPending) else cls.get_logger().warning
        log(
            "Settlement attempt deferred",
            extra={
                "booking_id": str(settlement.booking_id),
                "settlement_id": str(settlement.id),
                "attempt": settlement.attempt_count,
                "error_code": settlement.last_error_code,
                "retry_in_seconds": int(delay.total_seconds()),
            },
        )
        return settlement

    @classmethod
    def _fail(cls, settlement: Settlement, exc: BaseApplicationError) -> Settlement:
        with cls.atomic():
            settlement.fail(error=exc.message, error_code=_error_code(exc))
            settlement.save()
            LedgerService.fail_entries(settlement.booking_id)

        cls.get_logger().error(
            "Settlement failed; operator action required",
            extra={
                "booking_id": str(settlement.booking_id),
                "settlement_id": str(settlement.id),
                "attempt": settlement.attempt_count,
                "error_code": settlement.last_error_code,
            },
        )
        return settlement

    @classmethod
    def requeue(cls, booking_id: uuid.UUID) -> Settlement:
        """
        Put a FAILED settlement back in the sweep with a fresh retry budget.

        Raises:
            SettlementNotFound: No settlement for the booking
            SettlementNotEligible: Settlement is not FAILED
        """
        with cls.atomic():
            settlement = Settlement.objects.select_for_update().filter(booking_id=booking_id).first()
            if settlement is None:
                raise SettlementNotFound(
                    f"No settlement for booking {booking_id}",
                    details={"booking_id": str(booking_id)},
                )
            if settlement.status != SettlementStatus.FAILED:
                raise SettlementNotEligible(
                    "Only failed settlements can be re-queued",
                    details={"booking_id": str(booking_id), "status": settlement.status},
                )
            settlement.requeue()
            settlement.save()
            reopened = LedgerService.reopen_failed_entries(booking_id)

        cls.get_logger().info(
            "Settlement re-queued",
            extra={"booking_id": str(booking_id), "settlement_id": str(settlement.id), "entry_count": reopened},
        )
        return settlement

    @classmethod
    def record_dispute_settlement(cls, booking_id: uuid.UUID) -> Settlement | None:
        """
        Close the settlement of a booking a dispute resolution moved to SETTLED.

        The resolution already posted and settled the ledger legs; only the
        bookkeeping and the owner's payout remain.
        """
        booking = BookingService.get_booking(booking_id)
        if booking.status != BookingStatus.SETTLED:
            return None

        with cls.atomic():
            settlement, created = Settlement.objects.select_for_update().get_or_create(
                booking_id=booking.id,
                defaults={
                    "owner_id": booking.owner_id,
                    "status": SettlementStatus.SETTLED,
                    "settled_at": timezone.now(),
                },
            )
            if not created and settlement.is_open:
                settlement.settle()
                settlement.save()

        cls.create_owner_payout(booking)
        return settlement

    # ==========================================================================
    # Payouts
    # ==========================================================================

    @classmethod
    def create_owner_payout(cls, booking: Booking) -> Payout | None:
        """
        Create the payout for what the booking owes its owner.

        The amount is the owner's receivable on the booking: earnings plus
        deposit deductions awarded to the owner plus payout adjustments.
        """
        existing = Payout.objects.filter(booking_id=booking.id).first()
        if existing is not None:
            return existing

        amount_cents = LedgerService.get_balance(booking.id, AccountType.RECEIVABLE, booking.currency).cents
        if amount_cents <= 0:
            cls.get_logger().info(
                "No owner earnings to pay out",
                extra={"booking_id": str(booking.id), "amount_cents": amount_cents},
            )
            return None

        payout = Payout.objects.create(
            owner_id=booking.owner_id,
            booking_id=booking.id,
            destination_account=booking.owner_payout_account,
            amount_cents=amount_cents,
            currency=booking.currency,
        )
        cls.get_logger().info(
            "Owner payout created",
            extra={
                "booking_id": str(booking.id),
                "payout_id": str(payout.id),
                "owner_id": str(booking.owner_id),
                "amount_cents": amount_cents,
            },
        )
        return payout

    @staticmethod
    def due_payouts() -> list[uuid.UUID]:
        """
        PENDING payouts of owners whose pending total reaches PAYOUT_MINIMUM_CENTS.

        Smaller amounts accumulate until the owner's next booking settles.
        """
        totals = (
            Payout.objects.filter(status=PayoutStatus.PENDING)
            .order_by()
            .values("owner_id", "currency")
            .annotate(total=Sum("amount_cents"))
        )
        payout_ids: list[uuid.UUID] = []
        for row in totals:
            if row["total"] < settings.PAYOUT_MINIMUM_CENTS:
                continue
            payout_ids.extend(
                Payout.objects.filter(
                    status=PayoutStatus.PENDING,
                    owner_id=row["owner_id"],
                    currency=row["currency"],
                )
                .order_by("created_at")
                .values_list("id", flat=True)
            )
        return payout_ids

    # ==========================================================================
    # Sweep
    # ==========================================================================

    @staticmethod
    def due_bookings(now: datetime | None = None) -> list[str]:
        """
        Bookings the sweep should attempt now.

        - open settlements whose next attempt is due
        - COMPLETED bookings past their filing window with stale PENDING
          ledger entries and no settlement record (missed completion event)
        - terminal bookings (CANCELLED, REFUNDED, SETTLED) with stale PENDING
          ledger entries and no scheduled settlement attempt (a settlement
          parked while the booking was disputed has none)
        """
        now = now or timezone.now()
        due = {
            str(booking_id)
            for booking_id in Settlement.objects.filter(
                status__in=OPEN_SETTLEMENT_STATUSES,
                next_attempt_at__lte=now,
            ).values_list("booking_id", flat=True)
        }

        stale = {
            entry.booking_id
            for entry in LedgerService.reconciliation_report(
                timedelta(hours=settings.SETTLEMENT_STALE_ENTRY_HOURS)
            )
        }
        if stale:
            window_start = now - timedelta(hours=settings.DISPUTE_FILING_WINDOW_HOURS)
            missed = (
                Booking.objects.filter(
                    pk__in=stale,
                    status=BookingStatus.COMPLETED,
                    completed_at__lte=window_start,
                )
                .exclude(pk__in=Settlement.objects.values("booking_id"))
                .values_list("id", flat=True)
            )
            due.update(str(booking_id) for booking_id in missed)

            unsettled_terminal = (
                Booking.objects.filter(
                    pk__in=stale,
                    status__in=[*CLOSE_OUT_STATUSES, BookingStatus.SETTLED],
                )
                .exclude(
                    pk__in=Settlement.objects.filter(
                        status__in=OPEN_SETTLEMENT_STATUSES,
                        next_attempt_at__isnull=False,
                    ).values("booking_id")
                )
                .values_list("id", flat=True)
            )
            due.update(str(booking_id) for booking_id in unsettled_terminal)
        return sorted(due)
