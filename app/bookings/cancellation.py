"""
Money unwind for cancelled bookings.

Runs as the side effect of CANCEL, OWNER_REJECT, EXPIRE and FAIL_PAYMENT
inside the transition's unit of work:

1. Decide the refund fraction (policy evaluator for renter cancellations,
   full refund for everything else)
2. Refund ``round_half_up(total * fraction)`` of the captured payment
3. Release the deposit hold
4. Void any payment intent the processor has not confirmed yet
5. Record fraction, amount, actor, reason and time on the booking

The part of the payment that is not refunded stays on LIABILITY; nothing
is earned by the owner for a cancelled booking.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from bookings.policies import get_cancellation_policy
from bookings.postings import post_payment
from bookings.pricing import round_half_up
from bookings.states import ActorRole, BookingAction
from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, get_processor
from payments.deposits import DepositHoldManager
from payments.models import Payment
from payments.services import RefundService
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from datetime import datetime

    from bookings.models import Booking
    from bookings.states import Actor


class CancellationService(BaseService):
    """Refund, release and void on the way to CANCELLED."""

    @classmethod
    def refund_fraction(cls, booking: Booking, action: str, actor: Actor, cancelled_at: datetime) -> Decimal:
        if action != BookingAction.CANCEL or actor.role != ActorRole.RENTER:
            return Decimal("1")
        fraction = Decimal(get_cancellation_policy().refund_fraction(booking, cancelled_at))
        return min(max(fraction, Decimal("0")), Decimal("1"))

    @staticmethod
    def captured_payment(booking_id) -> Payment | None:
        return (
            Payment.objects.filter(
                booking_id=booking_id,
                status__in=[PaymentStatus.SUCCEEDED, PaymentStatus.PARTIALLY_REFUNDED],
            )
            .order_by("created_at")
            .first()
        )

    @classmethod
    def apply(cls, booking: Booking, action: str, actor: Actor, reason: str = "") -> int:
        """
        Unwind money for ``booking`` and stamp the cancellation fields.

        Returns:
            The refunded amount in cents
        """
        logger = cls.get_logger()
        now = timezone.now()
        fraction = cls.refund_fraction(booking, action, actor, now)

        refund_cents = 0
        payment = cls.captured_payment(booking.id)
        if payment is not None:
            # A payment captured without reaching CONFIRMED (deposit
            # declined) has not been posted yet.
            post_payment(booking, payment)
            refund_cents = min(round_half_up(Decimal(booking.total_cents) * fraction), payment.refundable_cents)
            if refund_cents > 0:
                RefundService.issue_refund(
                    payment,
                    refund_cents,
                    reason=reason or f"Booking {action}",
                    purpose="cancel",
                )

        hold = DepositHoldManager.get_active_hold(booking.id)
        if hold is not None:
            DepositHoldManager.release(hold.id, reason=f"Booking {action}")

        cls._void_pending_payments(booking)

        booking.cancelled_at = now
        booking.cancelled_by = actor.label
        booking.cancellation_reason = reason
        booking.refund_fraction = fraction
        booking.refund_amount_cents = refund_cents
        booking.expires_at = None

        logger.info(
            "Booking cancellation unwound",
            extra={
                "booking_id": str(booking.id),
                "action": str(action),
                "refund_fraction": str(fraction),
                "refund_cents": refund_cents,
                "hold_released": hold is not None,
            },
        )
        return refund_cents

    @classmethod
    def _void_pending_payments(cls, booking: Booking) -> None:
        processor = get_processor()
        for payment in Payment.objects.select_for_update().filter(
            booking_id=booking.id, status=PaymentStatus.PENDING
        ):
            result = processor.cancel_authorization(
                payment.processor_reference,
                idempotency_key=IdempotencyKeyGenerator.generate("payment_cancel", payment.id),
            )
            if result.is_failed:
                # Already captured on the processor side; the late success
                # webhook triggers the compensating refund.
                cls.get_logger().warning(
                    "Could not void pending payment",
                    extra={"booking_id": str(booking.id), "payment_id": str(payment.id)},
                )
                continue
            payment.cancel()
            payment.save()
