"""
Per-action guards and side effects run by BookingStateMachine.

Guards run before anything is written and reject the transition with
InvalidTransition. Side effects run inside the transition's unit of work;
anything they raise rolls the whole transition back and surfaces as
TransitionFailed.

Both receive ``(booking, action, actor, reason, context)``; the booking is
the row-locked instance about to be saved, so field changes made here are
written together with the new status.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from bookings.cancellation import CancellationService
from bookings.exceptions import BookingValidationError, InvalidTransition
from bookings.postings import post_payment
from bookings.states import CANCELLING_ACTIONS, BookingAction, BookingStatus
from payments.deposits import DepositHoldManager

if TYPE_CHECKING:
    from bookings.models import Booking
    from bookings.states import Actor

Hook = Callable[["Booking", str, "Actor", str, dict[str, Any]], None]


def _hours(name: str) -> timedelta:
    return timedelta(hours=getattr(settings, name))


# =============================================================================
# Guards
# =============================================================================


def dispute_window_open(booking, action, actor, reason, context) -> None:
    """A completed booking can only be disputed within the filing window."""
    if booking.status != BookingStatus.COMPLETED:
        return
    closes_at = (booking.completed_at or timezone.now()) + _hours("DISPUTE_FILING_WINDOW_HOURS")
    if timezone.now() > closes_at:
        raise InvalidTransition(
            booking.status,
            action,
            message="The dispute filing window for this booking has closed",
        )


GUARDS: dict[str, Hook] = {
    BookingAction.INITIATE_DISPUTE: dispute_window_open,
}


# =============================================================================
# Side Effects
# =============================================================================


def open_request_window(booking, action, actor, reason, context) -> None:
    if booking.is_instant:
        booking.expires_at = timezone.now() + _hours("BOOKING_PAYMENT_TIMEOUT_HOURS")
    else:
        booking.expires_at = timezone.now() + _hours("BOOKING_OWNER_APPROVAL_TIMEOUT_HOURS")


def open_payment_window(booking, action, actor, reason, context) -> None:
    booking.expires_at = timezone.now() + _hours("BOOKING_PAYMENT_TIMEOUT_HOURS")


def record_payment(booking, action, actor, reason, context) -> None:
    """Record the deposit hold, post the PAYMENT legs and link payment and hold."""
    payment = context.get("payment")
    if payment is None or not payment.is_captured:
        raise BookingValidationError(
            "Completing payment requires a captured payment",
            error_code="PAYMENT_NOT_CAPTURED",
            details={"booking_id": str(booking.id)},
        )
    if payment.amount_cents != booking.total_cents:
        raise BookingValidationError(
            "Captured amount does not match the booking total",
            error_code="PAYMENT_AMOUNT_MISMATCH",
            details={"captured_cents": payment.amount_cents, "total_cents": booking.total_cents},
        )
    hold = None
    authorization = context.get("deposit_authorization")
    if authorization is not None:
        hold = DepositHoldManager.record_hold(
            booking.id,
            authorization,
            booking.deposit_cents,
            currency=booking.currency,
            owner_id=booking.owner_id,
        )
    elif booking.deposit_cents > 0:
        hold = DepositHoldManager.get_active_hold(booking.id)
    post_payment(booking, payment)
    booking.payment_intent_id = payment.processor_reference
    booking.deposit_hold_id = hold.id if hold is not None else None
    booking.expires_at = None


def cancel(booking, action, actor, reason, context) -> None:
    CancellationService.apply(booking, action, actor, reason)


def open_inspection_window(booking, action, actor, reason, context) -> None:
    booking.inspection_due_at = timezone.now() + _hours("BOOKING_INSPECTION_GRACE_HOURS")


def mark_completed(booking, action, actor, reason, context) -> None:
    booking.completed_at = timezone.now()
    booking.inspection_due_at = None


SIDE_EFFECTS: dict[str, Hook] = {
    BookingAction.SUBMIT_REQUEST: open_request_window,
    BookingAction.OWNER_APPROVE: open_payment_window,
    BookingAction.COMPLETE_PAYMENT: record_payment,
    BookingAction.REQUEST_RETURN: open_inspection_window,
    BookingAction.APPROVE_RETURN: mark_completed,
    **{action: cancel for action in CANCELLING_ACTIONS},
}
