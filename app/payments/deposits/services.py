"""
Deposit Hold Manager.

Authorizes, releases and partially captures security deposits against the
payment processor, posting ledger legs for every money movement:

    authorize   DEPOSIT_HOLD     LIABILITY -> CASH       (full amount)
    release     DEPOSIT_RELEASE  CASH -> LIABILITY       (amount still held)
    deduct      DISPUTE          RECEIVABLE(owner) -> LIABILITY (deducted)
                DEPOSIT_RELEASE  CASH -> LIABILITY       (remainder)
    expire/fail DEPOSIT_RELEASE  CASH -> LIABILITY       (amount still held)

Processor calls reuse the same idempotency key on retry, so calling any
operation twice never double-captures or double-releases.

Usage:
    from payments.deposits import DepositHoldManager

    hold = DepositHoldManager.authorize(booking.id, 5000, "usd", "pm_card_visa")
    DepositHoldManager.deduct(hold.id, 1500, reason="Broken lamp")
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, ProcessorResult, get_processor
from payments.deposits.exceptions import (
    DeductionExceedsHold,
    DepositHoldNotFound,
    InvalidHoldState,
)
from payments.deposits.models import DepositHold
from payments.exceptions import ExternalFailed
from payments.ledger import AccountType, LedgerLeg, LedgerService, TransactionType
from payments.state_machines import ACTIVE_HOLD_STATUSES, DepositHoldStatus


class DepositHoldManager(BaseService):
    """Security deposit lifecycle against the processor and the ledger."""

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @staticmethod
    def _lock(hold_id: uuid.UUID) -> DepositHold:
        try:
            return DepositHold.objects.select_for_update().get(pk=hold_id)
        except DepositHold.DoesNotExist:
            raise DepositHoldNotFound(
                f"Deposit hold {hold_id} not found",
                details={"hold_id": str(hold_id)},
            ) from None

    @staticmethod
    def get_active_hold(booking_id: uuid.UUID) -> DepositHold | None:
        return DepositHold.objects.filter(booking_id=booking_id, status__in=ACTIVE_HOLD_STATUSES).first()

    @staticmethod
    def _expiry():
        hours = getattr(settings, "DEPOSIT_HOLD_VALIDITY_HOURS", 168)
        return timezone.now() + timedelta(hours=hours)

    # ==========================================================================
    # Ledger Legs
    # ==========================================================================

    @staticmethod
    def _post_hold(hold: DepositHold) -> None:
        LedgerService.post(
            LedgerLeg.pair(
                hold.booking_id,
                TransactionType.DEPOSIT_HOLD,
                debit=AccountType.LIABILITY,
                credit=AccountType.CASH,
                amount_cents=hold.amount_cents,
                currency=hold.currency,
            ),
            idempotency_key=LedgerService.posting_key(hold.booking_id, TransactionType.DEPOSIT_HOLD, hold.id),
            description="Security deposit authorized",
            metadata={"hold_id": str(hold.id)},
        )

    @staticmethod
    def _post_release(hold: DepositHold, amount_cents: int) -> None:
        if amount_cents <= 0:
            return
        LedgerService.post(
            LedgerLeg.pair(
                hold.booking_id,
                TransactionType.DEPOSIT_RELEASE,
                debit=AccountType.CASH,
                credit=AccountType.LIABILITY,
                amount_cents=amount_cents,
                currency=hold.currency,
            ),
            idempotency_key=LedgerService.posting_key(
                hold.booking_id, TransactionType.DEPOSIT_RELEASE, hold.id
            ),
            description=f"Security deposit released ({hold.status})",
            metadata={"hold_id": str(hold.id)},
        )

    @staticmethod
    def _post_deduction(hold: DepositHold, amount_cents: int, reason: str) -> None:
        LedgerService.post(
            LedgerLeg.pair(
                hold.booking_id,
                TransactionType.DISPUTE,
                debit=AccountType.RECEIVABLE,
                credit=AccountType.LIABILITY,
                amount_cents=amount_cents,
                currency=hold.currency,
                debit_owner_id=hold.owner_id,
            ),
            idempotency_key=LedgerService.posting_key(hold.booking_id, TransactionType.DISPUTE, hold.id),
            description=f"Deposit deduction: {reason}"[:255],
            metadata={"hold_id": str(hold.id)},
        )

    # ==========================================================================
    # Operations
    # ==========================================================================

    @classmethod
    def authorize(
        cls,
        booking_id: uuid.UUID,
        amount_cents: int,
        currency: str = "usd",
        payment_method: str = "",
        owner_id: uuid.UUID | None = None,
    ) -> DepositHold:
        """
        Place a deposit hold for a booking.

        Idempotent per booking: an existing PENDING/AUTHORIZED hold is
        returned as-is. A hold the processor has not confirmed yet is saved
        as PENDING and its ledger legs are posted on ``confirm``.

        Raises:
            ExternalFailed: Processor declined the authorization
        """
        existing = cls.get_active_hold(booking_id)
        if existing is not None:
            return existing

        result = cls.request_authorization(booking_id, amount_cents, currency, payment_method)
        with cls.atomic():
            return cls.record_hold(booking_id, result, amount_cents, currency=currency, owner_id=owner_id)

    @classmethod
    def request_authorization(
        cls,
        booking_id: uuid.UUID,
        amount_cents: int,
        currency: str = "usd",
        payment_method: str = "",
    ) -> ProcessorResult:
        """
        Ask the processor to authorize the deposit without writing anything.

        The idempotency key is derived from the booking, so repeating the
        request after a rolled-back ``record_hold`` returns the same
        authorization.

        Raises:
            ExternalFailed: Processor declined the authorization
        """
        result = get_processor().authorize(
            amount_cents=amount_cents,
            currency=currency,
            payment_method=payment_method,
            idempotency_key=cls._hold_key(booking_id),
            capture_method="manual",
            metadata={"booking_id": str(booking_id), "purpose": "deposit"},
        )

        if result.is_failed:
            cls.get_logger().warning(
                "Deposit authorization declined",
                extra={"booking_id": str(booking_id), "failure_code": result.failure_code},
            )
            raise ExternalFailed(
                "Security deposit authorization was declined",
                error_code="DEPOSIT_DECLINED",
                details={"booking_id": str(booking_id), "failure_code": result.failure_code},
            )
        return result

    @classmethod
    def record_hold(
        cls,
        booking_id: uuid.UUID,
        result: ProcessorResult,
        amount_cents: int,
        currency: str = "usd",
        owner_id: uuid.UUID | None = None,
    ) -> DepositHold:
        """
        Persist an authorization returned by ``request_authorization``.

        Must run inside the caller's transaction: the hold row and its
        DEPOSIT_HOLD legs commit or roll back with it.
        """
        existing = cls.get_active_hold(booking_id)
        if existing is not None:
            return existing

        hold = DepositHold.objects.create(
            booking_id=booking_id,
            owner_id=owner_id,
            amount_cents=amount_cents,
            currency=currency,
            processor_reference=result.reference_id,
            idempotency_key=cls._hold_key(booking_id),
        )
        if result.is_succeeded:
            hold.mark_authorized(expires_at=cls._expiry())
            hold.save()
            cls._post_hold(hold)

        cls.get_logger().info(
            "Deposit hold placed",
            extra={
                "booking_id": str(booking_id),
                "hold_id": str(hold.id),
                "status": hold.status,
                "amount_cents": amount_cents,
            },
        )
        return hold

    @classmethod
    def void_authorization(cls, booking_id: uuid.UUID, result: ProcessorResult) -> None:
        """Cancel an authorization that was never recorded as a hold."""
        get_processor().cancel_authorization(
            result.reference_id,
            idempotency_key=IdempotencyKeyGenerator.generate("deposit_void", booking_id),
        )
        cls.get_logger().info(
            "Unrecorded deposit authorization voided",
            extra={"booking_id": str(booking_id), "reference_id": result.reference_id},
        )

    @staticmethod
    def _hold_key(booking_id: uuid.UUID) -> str:
        return IdempotencyKeyGenerator.generate("deposit_hold", booking_id)

    @classmethod
    def confirm(cls, hold_id: uuid.UUID) -> DepositHold:
        """Resolve a PENDING hold once the processor confirms the authorization."""
        with cls.atomic():
            hold = cls._lock(hold_id)
            if hold.status == DepositHoldStatus.AUTHORIZED:
                return hold
            if hold.status != DepositHoldStatus.PENDING:
                raise InvalidHoldState(
                    f"Cannot confirm a {hold.status} hold",
                    details={"hold_id": str(hold.id), "status": hold.status},
                )
            hold.mark_authorized(expires_at=cls._expiry())
            hold.save()
            cls._post_hold(hold)

        cls.get_logger().info("Deposit hold confirmed", extra={"hold_id": str(hold.id)})
        return hold

    @classmethod
    def release(cls, hold_id: uuid.UUID, reason: str = "") -> DepositHold:
        """
        Void the authorization and return the full held amount.

        Releasing an already closed hold is a no-op.
        """
        with cls.atomic():
            hold = cls._lock(hold_id)
            if not hold.is_active:
                return hold

            was_authorized = hold.status == DepositHoldStatus.AUTHORIZED
            if hold.processor_reference:
                get_processor().cancel_authorization(
                    hold.processor_reference,
                    idempotency_key=IdempotencyKeyGenerator.generate("deposit_release", hold.id),
                )

            hold.release()
            hold.save()
            # A PENDING hold never posted legs, so there is nothing to unwind.
            if was_authorized:
                cls._post_release(hold, hold.released_cents)

        cls.get_logger().info(
            "Deposit hold released",
            extra={"hold_id": str(hold.id), "booking_id": str(hold.booking_id), "reason": reason},
        )
        return hold

    @classmethod
    def deduct(cls, hold_id: uuid.UUID, amount_cents: int, reason: str) -> DepositHold:
        """
        Capture part of the deposit for assessed damage and release the rest.

        Raises:
            DeductionExceedsHold: ``amount_cents`` is larger than the hold
            InvalidHoldState: Hold is not AUTHORIZED
            ExternalFailed: Processor rejected the capture
        """
        if amount_cents <= 0:
            return cls.release(hold_id, reason=reason)

        with cls.atomic():
            hold = cls._lock(hold_id)
            if hold.status != DepositHoldStatus.AUTHORIZED:
                raise InvalidHoldState(
                    f"Cannot deduct from a {hold.status} hold",
                    details={"hold_id": str(hold.id), "status": hold.status},
                )
            if amount_cents > hold.available_cents:
                cls.get_logger().warning(
                    "Deposit deduction exceeds hold",
                    extra={
                        "hold_id": str(hold.id),
                        "requested_cents": amount_cents,
                        "available_cents": hold.available_cents,
                    },
                )
                raise DeductionExceedsHold(amount_cents, hold.available_cents, hold_id=hold.id)

            result = get_processor().capture(
                hold.processor_reference,
                idempotency_key=IdempotencyKeyGenerator.generate("deposit_capture", hold.id),
                amount_cents=amount_cents,
            )
            if result.is_failed:
                raise ExternalFailed(
                    "Deposit capture was rejected by the processor",
                    error_code="DEPOSIT_CAPTURE_FAILED",
                    details={"hold_id": str(hold.id), "failure_code": result.failure_code},
                )

            hold.capture(amount_cents, reason)
            hold.save()
            cls._post_deduction(hold, amount_cents, reason)
            cls._post_release(hold, hold.released_cents)

        cls.get_logger().info(
            "Deposit deducted",
            extra={
                "hold_id": str(hold.id),
                "booking_id": str(hold.booking_id),
                "deducted_cents": hold.deducted_cents,
                "released_cents": hold.released_cents,
            },
        )
        return hold

    @classmethod
    def fail(cls, hold_id: uuid.UUID, reason: str = "") -> DepositHold:
        """Record that the processor dropped the authorization; the rest is forfeited."""
        with cls.atomic():
            hold = cls._lock(hold_id)
            if not hold.is_active:
                return hold
            was_authorized = hold.status == DepositHoldStatus.AUTHORIZED
            hold.fail()
            hold.save()
            if was_authorized:
                cls._post_release(hold, hold.forfeited_cents)

        cls.get_logger().warning(
            "Deposit hold failed",
            extra={"hold_id": str(hold.id), "booking_id": str(hold.booking_id), "reason": reason},
        )
        return hold

    @classmethod
    def expire_stale_holds(cls, now=None) -> int:
        """Mark lapsed authorizations EXPIRED and post their release legs."""
        now = now or timezone.now()
        expired = 0
        stale_ids = list(
            DepositHold.objects.filter(
                status=DepositHoldStatus.AUTHORIZED,
                expires_at__lte=now,
            ).values_list("id", flat=True)
        )
        for hold_id in stale_ids:
            with cls.atomic():
                hold = cls._lock(hold_id)
                if hold.status != DepositHoldStatus.AUTHORIZED:
                    continue
                hold.expire()
                hold.save()
                cls._post_release(hold, hold.released_cents)
                expired += 1

        if expired:
            cls.get_logger().info("Expired deposit holds", extra={"count": expired})
        return expired

    @staticmethod
    def get_hold(hold_id: uuid.UUID) -> DepositHold:
        try:
            return DepositHold.objects.get(pk=hold_id)
        except DepositHold.DoesNotExist:
            raise DepositHoldNotFound(
                f"Deposit hold {hold_id} not found",
                details={"hold_id": str(hold_id)},
            ) from None
