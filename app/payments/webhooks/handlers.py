"""
Webhook event handlers for processor events.

This module provides a handler registry and the handlers that resume
suspended work when the processor confirms (or gives up on) an operation:

    payment_intent.succeeded               booking payment confirmed
    payment_intent.payment_failed/canceled booking payment failed, or deposit hold lost
    payment_intent.amount_capturable_updated  deposit hold authorized
    charge.refunded / charge.refund.updated   refund confirmed or failed
    transfer.paid / payout.paid            owner payout completed
    transfer.failed / payout.failed        owner payout failed

Handlers return a ServiceResult; a failure marks the WebhookEvent FAILED
so ``retry_failed_webhooks`` picks it up again.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.deposits import DepositHold, DepositHoldManager
from payments.exceptions import PaymentNotFoundError
from payments.models import Payment, WebhookEvent
from payments.services import PayoutService, RefundService
from payments.state_machines import DepositHoldStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook handler for one or more event types.

    Usage:
        @register_handler("transfer.paid", "payout.paid")
        def handle_transfer_paid(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types succeed without doing anything, so the processor
    stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"event_id": webhook_event.event_id},
    )
    return handler(webhook_event)


def _object_id(webhook_event: WebhookEvent) -> str | None:
    return webhook_event.data_object.get("id")


def _invalid_payload(webhook_event: WebhookEvent) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: payload has no object id",
        extra={"event_id": webhook_event.event_id},
    )
    return ServiceResult.failure("Webhook payload has no object id", error_code="INVALID_WEBHOOK_PAYLOAD")


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Resume a booking sitting in PENDING_PAYMENT."""
    from bookings.payments import PaymentService

    intent_id = _object_id(webhook_event)
    if not intent_id:
        return _invalid_payload(webhook_event)

    if not Payment.objects.filter(processor_reference=intent_id).exists():
        # Deposit holds use manual capture and are confirmed by
        # amount_capturable_updated; anything else is not ours yet.
        if DepositHold.objects.filter(processor_reference=intent_id).exists():
            return ServiceResult.success(None)
        return ServiceResult.failure(
            f"Payment not found for intent: {intent_id}",
            error_code="PAYMENT_NOT_FOUND",
        )

    booking = PaymentService.confirm_payment(intent_id)
    return ServiceResult.success({"booking_id": str(booking.id), "status": booking.status})


@register_handler("payment_intent.payment_failed", "payment_intent.canceled")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Fail the booking payment, or the deposit hold the intent belongs to."""
    from bookings.payments import PaymentService

    intent_id = _object_id(webhook_event)
    if not intent_id:
        return _invalid_payload(webhook_event)

    error = webhook_event.data_object.get("last_payment_error") or {}
    reason = error.get("message") or webhook_event.event_type

    hold = DepositHold.objects.filter(processor_reference=intent_id).first()
    if hold is not None:
        DepositHoldManager.fail(hold.id, reason=reason)
        return ServiceResult.success({"hold_id": str(hold.id)})

    if not Payment.objects.filter(processor_reference=intent_id).exists():
        return ServiceResult.failure(
            f"Payment not found for intent: {intent_id}",
            error_code="PAYMENT_NOT_FOUND",
        )

    booking = PaymentService.fail_payment(intent_id, reason=reason)
    return ServiceResult.success({"booking_id": str(booking.id), "status": booking.status})


@register_handler("payment_intent.amount_capturable_updated")
def handle_amount_capturable_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """A PENDING deposit authorization went through."""
    intent_id = _object_id(webhook_event)
    if not intent_id:
        return _invalid_payload(webhook_event)

    hold = DepositHold.objects.filter(processor_reference=intent_id).first()
    if hold is None:
        return ServiceResult.success(None)
    if hold.status == DepositHoldStatus.PENDING:
        hold = DepositHoldManager.confirm(hold.id)
    return ServiceResult.success({"hold_id": str(hold.id), "status": hold.status})


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """Confirm every refund on the charge that the processor reports succeeded."""
    refunds = (webhook_event.data_object.get("refunds") or {}).get("data") or []
    confirmed = []
    for refund_data in refunds:
        if refund_data.get("status") != "succeeded":
            continue
        try:
            refund = RefundService.confirm_refund(refund_data["id"])
        except PaymentNotFoundError:
            continue
        confirmed.append(str(refund.id))
    return ServiceResult.success({"confirmed": confirmed})


@register_handler("charge.refund.updated")
def handle_refund_updated(webhook_event: WebhookEvent) -> ServiceResult:
    refund_id = _object_id(webhook_event)
    if not refund_id:
        return _invalid_payload(webhook_event)

    status = webhook_event.data_object.get("status")
    try:
        if status == "succeeded":
            refund = RefundService.confirm_refund(refund_id)
        elif status in ("failed", "canceled"):
            reason = webhook_event.data_object.get("failure_reason") or status
            refund = RefundService.fail_refund(refund_id, reason=reason)
        else:
            return ServiceResult.success(None)
    except PaymentNotFoundError as e:
        return ServiceResult.from_exception(e)
    return ServiceResult.success({"refund_id": str(refund.id), "status": refund.status})


# =============================================================================
# Payout Handlers
# =============================================================================


@register_handler("transfer.paid", "payout.paid")
def handle_transfer_paid(webhook_event: WebhookEvent) -> ServiceResult:
    transfer_id = _object_id(webhook_event)
    if not transfer_id:
        return _invalid_payload(webhook_event)

    payout = PayoutService.mark_paid(transfer_id)
    if payout is None:
        logger.info("No payout for transfer", extra={"transfer_id": transfer_id})
        return ServiceResult.success(None)
    return ServiceResult.success({"payout_id": str(payout.id), "status": payout.status})


@register_handler("transfer.failed", "payout.failed")
def handle_transfer_failed(webhook_event: WebhookEvent) -> ServiceResult:
    transfer_id = _object_id(webhook_event)
    if not transfer_id:
        return _invalid_payload(webhook_event)

    reason = webhook_event.data_object.get("failure_message") or "transfer failed"
    payout = PayoutService.mark_failed(transfer_id, reason=reason)
    if payout is None:
        return ServiceResult.success(None)
    return ServiceResult.success({"payout_id": str(payout.id), "status": payout.status})
