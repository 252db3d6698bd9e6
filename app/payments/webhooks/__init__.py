"""
Webhook intake for processor events.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery (payments.tasks.process_webhook_event).

Usage:
    from payments.webhooks import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
