"""
Fixtures for Stripe adapter tests.

Stripe SDK resources are patched at the module level; responses are
plain attribute bags built from per-object defaults.
"""

import uuid
from functools import partial
from unittest.mock import patch

import pytest
import stripe

RESPONSE_DEFAULTS = {
    "payment_intent": {
        "id": "pi_test123456",
        "status": "requires_capture",
        "amount": 11500,
        "currency": "usd",
        "amount_received": 0,
        "last_payment_error": None,
    },
    "refund": {
        "id": "re_test123456",
        "status": "succeeded",
        "amount": 5750,
        "currency": "usd",
        "payment_intent": "pi_test123456",
    },
    "transfer": {
        "id": "tr_test123456",
        "amount": 8500,
        "currency": "usd",
        "destination": "acct_owner123",
    },
}


class StripeResponse:
    """Stand-in for a Stripe resource: attribute access plus ``to_dict``."""

    def __init__(self, data):
        self._data = data

    def __getattr__(self, name):
        return self._data.get(name)

    def __getitem__(self, key):
        return self._data[key]

    def to_dict(self):
        return dict(self._data)


def stripe_response(kind, **fields):
    return StripeResponse({"object": kind, "metadata": {}, **RESPONSE_DEFAULTS[kind], **fields})


@pytest.fixture
def booking_id():
    return uuid.uuid4()


@pytest.fixture
def mock_payment_intent():
    return partial(stripe_response, "payment_intent")


@pytest.fixture
def mock_refund():
    return partial(stripe_response, "refund")


@pytest.fixture
def card_error():
    def _create(message="Your card was declined.", decline_code="generic_decline"):
        error = stripe.CardError(message=message, param=None, code="card_declined")
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    def _create(message="No such payment_intent: 'pi_missing'", param="payment_intent"):
        return stripe.InvalidRequestError(message=message, param=param, code="resource_missing")

    return _create


@pytest.fixture
def api_connection_error():
    def _create(message="Could not connect to Stripe."):
        return stripe.APIConnectionError(message=message)

    return _create


@pytest.fixture
def mock_stripe_payment_intent():
    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = stripe_response("payment_intent")
        mock.capture.return_value = stripe_response("payment_intent", status="succeeded", amount_received=11500)
        mock.cancel.return_value = stripe_response("payment_intent", status="canceled")
        mock.retrieve.return_value = stripe_response("payment_intent", status="succeeded", amount_received=11500)
        yield mock


@pytest.fixture
def mock_stripe_transfer():
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = stripe_response("transfer")
        yield mock


@pytest.fixture
def mock_stripe_refund():
    with patch("stripe.Refund") as mock:
        mock.create.return_value = stripe_response("refund")
        mock.retrieve.return_value = stripe_response("refund")
        yield mock


@pytest.fixture
def mock_stripe_webhook():
    event = {
        "id": "evt_test123",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_test123", "object": "payment_intent"}},
    }
    with patch("stripe.Webhook") as mock:
        mock.construct_event.return_value = StripeResponse(event)
        yield mock


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """No test builds a real HTTP session."""
    with patch("stripe.RequestsClient") as mock:
        yield mock
