"""
Pytest fixtures for webhook tests.

Provides a request factory helper and a builder for stored WebhookEvents.
"""

import json

import pytest
from django.test import RequestFactory

from payments.tests.factories import WebhookEventFactory


@pytest.fixture
def rf():
    return RequestFactory()


@pytest.fixture
def make_webhook_request(rf):
    """Build a signed POST to the webhook endpoint."""

    def make(payload: dict, signature: str | None = "t=1,v1=test"):
        headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
        return rf.post(
            "/api/v1/payments/webhooks/stripe/",
            data=json.dumps(payload),
            content_type="application/json",
            **headers,
        )

    return make


@pytest.fixture
def make_event(db):
    """Store a WebhookEvent whose ``data.object`` is ``obj``."""

    def make(event_type: str, obj: dict, **kwargs):
        return WebhookEventFactory(
            event_type=event_type,
            payload={"type": event_type, "data": {"object": obj}},
            **kwargs,
        )

    return make
