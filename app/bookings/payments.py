"""
Payment flow for bookings in PENDING_PAYMENT.

The processor is a suspension point: ``complete_payment`` either confirms
the booking, cancels it (decline), or leaves it in PENDING_PAYMENT and
raises ExternalPending until a webhook calls ``confirm_payment`` or
``fail_payment``.

    complete_payment
        authorize+capture (key: payment:<booking>)
          -> SUCCEEDED: deposit auth, COMPLETE_PAYMENT    -> CONFIRMED
          -> FAILED:    FAIL_PAYMENT                       -> CANCELLED
          -> PENDING:   ExternalPending                    (stays PENDING_PAYMENT)

A capture that arrives after the booking was cancelled is refunded in full
and both postings (PAYMENT, REFUND) are recorded, so no money is left on
the ledger without a booking to account for it.

Usage:
    from bookings.payments import PaymentService

    booking = PaymentService.complete_payment(booking.id, Actor.renter(renter_id), "pm_card_visa")
"""

from __future__ import annotations

import uuid

from bookings.exceptions import InvalidTransition
from bookings.models import Booking
from bookings.postings import post_payment
from bookings.services import BookingService, BookingStateMachine
from bookings.states import Actor, BookingAction, BookingStatus
from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, ProcessorResult, get_processor
from payments.deposits import DepositHoldManager
from payments.exceptions import ExternalFailed, ExternalPending, PaymentNotFoundError
from payments.models import Payment
from payments.services import RefundService
from payments.state_machines import PaymentStatus

PAYMENT_SYSTEM_ACTOR = Actor.system("payment_service")


class PaymentService(BaseService):
    """Collect, confirm and reconcile the renter payment of a booking."""

    @classmethod
    def complete_payment(cls, booking_id: uuid.UUID, actor: Actor, payment_method: str) -> Booking:
        """
        Charge the booking total and confirm the booking.

        Retrying after ExternalPending reuses the same processor key, so the
        renter is never charged twice.

        Raises:
            InvalidTransition: Booking is not awaiting payment
            TransitionNotPermitted: Actor may not pay for this booking
            ExternalPending: Processor has not confirmed the charge yet
            ExternalFailed: Charge or deposit declined; booking is CANCELLED
        """
        logger = cls.get_logger()
        booking = BookingService.get_booking(booking_id)
        BookingStateMachine.check(booking, BookingAction.COMPLETE_PAYMENT, actor)

        key = IdempotencyKeyGenerator.generate("payment", booking.id)
        try:
            result = get_processor().authorize(
                amount_cents=booking.total_cents,
                currency=booking.currency,
                payment_method=payment_method,
                idempotency_key=key,
                metadata={"booking_id": str(booking.id), "purpose": "booking_payment"},
            )
        except ExternalFailed as e:
            cls._fail_booking(booking.id, reason=f"Payment declined: {e.error_code}")
            raise

        payment = cls._record_payment(booking, result, key, payment_method)

        if result.is_failed:
            cls._fail_booking(booking.id, reason=f"Payment declined: {result.failure_code or 'unknown'}")
            raise ExternalFailed(
                "Payment was declined",
                error_code="PAYMENT_DECLINED",
                details={"booking_id": str(booking.id), "failure_code": result.failure_code},
            )

        if result.is_pending:
            logger.info(
                "Payment awaiting processor confirmation",
                extra={"booking_id": str(booking.id), "processor_reference": result.reference_id},
            )
            raise ExternalPending(
                "Payment is awaiting confirmation from the processor",
                reference_id=result.reference_id,
                details={"booking_id": str(booking.id)},
            )

        return cls._confirm(payment, actor)

    @classmethod
    def confirm_payment(cls, intent_id: str) -> Booking:
        """Resume a booking whose payment the processor confirmed later."""
        return cls._confirm(cls._get_payment(intent_id), PAYMENT_SYSTEM_ACTOR)

    @classmethod
    def fail_payment(cls, intent_id: str, reason: str = "") -> Booking:
        """Record a processor decline and cancel the booking if it still waits for payment."""
        with cls.atomic():
            payment = Payment.objects.select_for_update().filter(processor_reference=intent_id).first()
            if payment is None:
                raise PaymentNotFoundError(
                    f"Payment {intent_id} not found",
                    details={"processor_reference": intent_id},
                )
            if payment.status != PaymentStatus.PENDING:
                cls.get_logger().info(
                    "Ignoring failure for settled payment",
                    extra={"payment_id": str(payment.id), "status": payment.status},
                )
                return BookingService.get_booking(payment.booking_id)
            payment.fail(message=reason)
            payment.save()

        return cls._fail_booking(payment.booking_id, reason=reason or "Payment failed")

    # ==========================================================================
    # Internals
    # ==========================================================================

    @staticmethod
    def _get_payment(intent_id: str) -> Payment:
        try:
            return Payment.objects.get(processor_reference=intent_id)
        except Payment.DoesNotExist:
            raise PaymentNotFoundError(
                f"Payment {intent_id} not found",
                details={"processor_reference": intent_id},
            ) from None

    @classmethod
    def _record_payment(cls, booking: Booking, result: ProcessorResult, key: str, payment_method: str) -> Payment:
        with cls.atomic():
            payment, created = Payment.objects.select_for_update().get_or_create(
                processor_reference=result.reference_id,
                defaults={
                    "booking_id": booking.id,
                    "payer_id": booking.renter_id,
                    "amount_cents": booking.total_cents,
                    "currency": booking.currency,
                    "idempotency_key": key,
                    "payment_method": payment_method,
                },
            )
            if payment.status == PaymentStatus.PENDING:
                if result.is_succeeded:
                    payment.succeed()
                    payment.save()
                elif result.is_failed:
                    payment.fail(code=result.failure_code or "", message=result.failure_message or "")
                    payment.save()
        return payment

    @classmethod
    def _fail_booking(cls, booking_id: uuid.UUID, reason: str) -> Booking:
        try:
            return BookingStateMachine.transition(
                booking_id, BookingAction.FAIL_PAYMENT, PAYMENT_SYSTEM_ACTOR, reason=reason
            )
        except InvalidTransition:
            cls.get_logger().info(
                "Payment failure for booking no longer awaiting payment",
                extra={"booking_id": str(booking_id)},
            )
            return BookingService.get_booking(booking_id)

    @classmethod
    def _confirm(cls, payment: Payment, actor: Actor) -> Booking:
        logger = cls.get_logger()

        with cls.atomic():
            booking = Booking.objects.select_for_update().get(pk=payment.booking_id)
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status in (PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.CANCELED):
                payment.succeed()
                payment.save()

            if booking.status == BookingStatus.CANCELLED:
                cls._compensate_late_payment(booking, payment)
                return booking
            if booking.status != BookingStatus.PENDING_PAYMENT:
                logger.info(
                    "Payment already applied to booking",
                    extra={"booking_id": str(booking.id), "status": booking.status},
                )
                return booking

        authorization = None
        if booking.deposit_cents > 0 and DepositHoldManager.get_active_hold(booking.id) is None:
            try:
                authorization = DepositHoldManager.request_authorization(
                    booking.id,
                    booking.deposit_cents,
                    currency=booking.currency,
                    payment_method=payment.payment_method,
                )
            except ExternalFailed as e:
                # Payment is committed; FAIL_PAYMENT refunds it in full.
                cls._fail_booking(booking.id, reason=f"Security deposit declined: {e.error_code}")
                raise

        try:
            return BookingStateMachine.transition(
                booking.id,
                BookingAction.COMPLETE_PAYMENT,
                actor,
                reason="Payment captured",
                context={"payment": payment, "deposit_authorization": authorization},
            )
        except InvalidTransition:
            # Expired while the deposit was being authorized.
            with cls.atomic():
                booking = Booking.objects.select_for_update().get(pk=booking.id)
                if booking.status != BookingStatus.CANCELLED:
                    raise
                cls._compensate_late_payment(booking, Payment.objects.get(pk=payment.pk))
            if authorization is not None:
                DepositHoldManager.void_authorization(booking.id, authorization)
            return booking

    @classmethod
    def _compensate_late_payment(cls, booking: Booking, payment: Payment) -> None:
        post_payment(booking, payment)
        refundable = payment.refundable_cents
        if refundable > 0:
            RefundService.issue_refund(
                payment,
                refundable,
                reason="Payment captured after booking was cancelled",
                purpose="late_payment",
            )
        hold = DepositHoldManager.get_active_hold(booking.id)
        if hold is not None:
            DepositHoldManager.release(hold.id, reason="Booking cancelled")

        cls.get_logger().warning(
            "Late payment on cancelled booking refunded",
            extra={
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "refund_cents": refundable,
            },
        )
