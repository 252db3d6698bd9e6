"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing processor webhook events
- Retrying failed webhook events
- Resetting webhooks stuck in PROCESSING
- Expiring lapsed deposit holds

Usage:
    from payments.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": getattr(settings, "WEBHOOK_MAX_RETRIES", 5)},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored webhook event.

    1. Loads the WebhookEvent (skips it if already processed)
    2. Marks it PROCESSING
    3. Dispatches to the registered handler inside one transaction
    4. Marks it PROCESSED or FAILED

    Raises:
        Exception: Re-raised to trigger Celery retry
    """
    from payments.webhooks.handlers import dispatch_webhook

    webhook_event_id = UUID(str(webhook_event_id))

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error("WebhookEvent not found", extra={"webhook_event_id": str(webhook_event_id)})
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    log_context = {
        "webhook_event_id": str(webhook_event_id),
        "event_id": webhook_event.event_id,
        "event_type": webhook_event.event_type,
        "retry_count": webhook_event.retry_count,
    }

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception("Webhook processing failed with exception", extra={**log_context, "error": error_msg})
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info("Webhook processed", extra=log_context)
        return {"status": "processed", "webhook_event_id": str(webhook_event_id)}

    error_msg = result.error or "Handler returned failure"
    webhook_event.mark_failed(error_msg)
    webhook_event.save()
    logger.warning(
        f"Webhook handler failed: {error_msg}",
        extra={**log_context, "error_code": result.error_code},
    )
    return {"status": "handler_failed", "webhook_event_id": str(webhook_event_id), "error": error_msg}


@shared_task
def retry_failed_webhooks() -> dict:
    """Re-queue FAILED webhooks that are still under the retry ceiling (celery-beat)."""
    max_retries = getattr(settings, "WEBHOOK_MAX_RETRIES", 5)
    failed = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=max_retries,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    if queued_count:
        logger.info(f"Queued {queued_count} failed webhooks for retry", extra={"queued_count": queued_count})
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """Reset webhooks stuck in PROCESSING after a worker crash so they can be retried."""
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    reset_count = 0
    for webhook in WebhookEvent.objects.filter(status=WebhookEventStatus.PROCESSING, updated_at__lt=threshold):
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={"webhook_event_id": str(webhook.id), "event_id": webhook.event_id},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Deposit Tasks
# =============================================================================


@shared_task
def expire_deposit_holds() -> dict:
    """Expire deposit authorizations past their processor validity (celery-beat)."""
    from payments.deposits import DepositHoldManager

    expired = DepositHoldManager.expire_stale_holds()
    return {"expired_count": expired}
