"""
Tests for the Stripe adapter.

Tests cover:
- Idempotency key generation
- Error translation for each exception type
- Status mapping onto ProcessorResult
- Webhook signature verification
- Helper functions (is_retryable, backoff_delay)
"""

import uuid

import pytest
import stripe
from django.test import override_settings

from payments.adapters import (
    IdempotencyKeyGenerator,
    PaymentProcessor,
    ProcessorStatus,
    StripeAdapter,
    backoff_delay,
    is_retryable_stripe_error,
)
from payments.exceptions import (
    ExternalFailed,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


def _authorize(**overrides):
    params = {
        "amount_cents": 11500,
        "currency": "usd",
        "payment_method": "pm_card_visa",
        "idempotency_key": "test-key",
        "capture_method": "manual",
    }
    params.update(overrides)
    return StripeAdapter.authorize(**params)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_generate_key_format(self, booking_id):
        key = IdempotencyKeyGenerator.generate("capture", booking_id, attempt=1)

        operation, entity, attempt, short_hash = key.split(":")
        assert operation == "capture"
        assert entity == str(booking_id)
        assert attempt == "1"
        assert len(short_hash) == 8

    def test_same_inputs_produce_same_key(self, booking_id):
        assert IdempotencyKeyGenerator.generate("refund", booking_id) == (
            IdempotencyKeyGenerator.generate("refund", booking_id)
        )

    def test_different_attempts_produce_different_keys(self, booking_id):
        assert IdempotencyKeyGenerator.generate("refund", booking_id, attempt=1) != (
            IdempotencyKeyGenerator.generate("refund", booking_id, attempt=2)
        )

    def test_accepts_string_entity_id(self):
        key = IdempotencyKeyGenerator.generate("transfer", "payout-1")

        assert key.startswith("transfer:payout-1:1:")


# =============================================================================
# Retry Helper Tests
# =============================================================================


class TestIsRetryableStripeError:
    def test_transient_errors_are_retryable(self):
        assert is_retryable_stripe_error(StripeRateLimitError("slow down"))
        assert is_retryable_stripe_error(StripeAPIUnavailableError("down"))
        assert is_retryable_stripe_error(StripeTimeoutError("timeout"))

    def test_declines_are_not_retryable(self):
        assert not is_retryable_stripe_error(StripeCardDeclinedError("declined"))
        assert not is_retryable_stripe_error(StripeInvalidRequestError("bad"))

    def test_non_stripe_errors(self):
        assert not is_retryable_stripe_error(ValueError("nope"))


class TestBackoffDelay:
    def test_exponential_growth(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 4.0 <= backoff_delay(2) <= 5.0

    def test_respects_max_delay(self):
        assert backoff_delay(20, max_delay=60.0) <= 75.0

    def test_custom_base(self):
        assert 60.0 <= backoff_delay(0, base=60.0, max_delay=3600.0) <= 75.0


# =============================================================================
# Protocol Conformance
# =============================================================================


class TestProcessorContract:
    def test_adapter_satisfies_protocol(self):
        assert isinstance(StripeAdapter(), PaymentProcessor)


# =============================================================================
# Error Translation Tests
# =============================================================================


class TestStripeAdapterErrorTranslation:
    """Stripe SDK exceptions become domain exceptions."""

    def test_card_declined_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            _authorize()

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False
        assert isinstance(exc_info.value, ExternalFailed)

    def test_insufficient_funds_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error(
            message="Your card has insufficient funds.",
            decline_code="insufficient_funds",
        )

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            _authorize()

        assert exc_info.value.decline_code == "insufficient_funds"

    def test_invalid_request_error(self, mock_stripe_payment_intent, invalid_request_error):
        mock_stripe_payment_intent.capture.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.capture("pi_missing", idempotency_key="k")

        assert exc_info.value.stripe_code == "resource_missing"

    def test_invalid_account_error(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such destination account: 'acct_bad'",
            param="destination",
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.transfer("acct_bad", 8500, "usd", idempotency_key="k")

    def test_rate_limit_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.RateLimitError(message="Too many requests")

        with pytest.raises(StripeRateLimitError) as exc_info:
            _authorize()

        assert exc_info.value.is_retryable is True

    def test_api_connection_error(self, mock_stripe_payment_intent, api_connection_error):
        mock_stripe_payment_intent.create.side_effect = api_connection_error()

        with pytest.raises(StripeAPIUnavailableError):
            _authorize()

    def test_timeout_error(self, mock_stripe_refund, api_connection_error):
        mock_stripe_refund.create.side_effect = api_connection_error(
            "Request to Stripe timed out"
        )

        with pytest.raises(StripeTimeoutError):
            StripeAdapter.refund("pi_test", 100, idempotency_key="k")

    def test_api_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.retrieve.side_effect = stripe.APIError(message="Something went wrong")

        with pytest.raises(StripeAPIUnavailableError):
            StripeAdapter.retrieve_payment("pi_test")

    def test_authentication_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.AuthenticationError(message="Invalid API Key provided.")

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            _authorize()

        assert exc_info.value.stripe_code == "authentication_error"

    def test_unknown_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = RuntimeError("boom")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            _authorize()

        assert exc_info.value.stripe_code == "unknown_error"


# =============================================================================
# Operation Tests
# =============================================================================


class TestStripeAdapterAuthorize:
    def test_manual_capture_authorization_succeeds(self, mock_stripe_payment_intent):
        result = _authorize()

        assert result.status == ProcessorStatus.SUCCEEDED
        assert result.reference_id == "pi_test123456"
        assert result.amount_cents == 11500

        call_kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert call_kwargs["capture_method"] == "manual"
        assert call_kwargs["confirm"] is True
        assert call_kwargs["idempotency_key"] == "test-key"

    def test_requires_action_is_pending(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.create.return_value = mock_payment_intent(
            status="requires_action"
        )

        assert _authorize().is_pending

    def test_failed_authorization_carries_reason(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        mock_stripe_payment_intent.create.return_value = mock_payment_intent(
            status="requires_payment_method",
            last_payment_error={"code": "card_declined", "message": "Declined"},
        )

        result = _authorize()

        assert result.is_failed
        assert result.failure_code == "card_declined"


class TestStripeAdapterCapture:
    def test_capture_success(self, mock_stripe_payment_intent):
        result = StripeAdapter.capture("pi_test123456", idempotency_key="cap-1")

        assert result.is_succeeded
        mock_stripe_payment_intent.capture.assert_called_once_with(
            "pi_test123456", idempotency_key="cap-1"
        )

    def test_partial_capture(self, mock_stripe_payment_intent):
        StripeAdapter.capture("pi_test123456", idempotency_key="cap-1", amount_cents=5000)

        call_kwargs = mock_stripe_payment_intent.capture.call_args.kwargs
        assert call_kwargs["amount_to_capture"] == 5000

    def test_processing_capture_is_pending(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.capture.return_value = mock_payment_intent(status="processing")

        assert StripeAdapter.capture("pi_test123456", idempotency_key="cap-1").is_pending


class TestStripeAdapterCancelAuthorization:
    def test_cancel_success(self, mock_stripe_payment_intent):
        result = StripeAdapter.cancel_authorization("pi_test123456", idempotency_key="void-1")

        assert result.is_succeeded
        mock_stripe_payment_intent.cancel.assert_called_once_with(
            "pi_test123456", idempotency_key="void-1"
        )


class TestStripeAdapterRefund:
    def test_refund_success(self, mock_stripe_refund):
        result = StripeAdapter.refund("pi_test123456", 5750, idempotency_key="ref-1")

        assert result.is_succeeded
        assert result.reference_id == "re_test123456"
        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["payment_intent"] == "pi_test123456"
        assert call_kwargs["amount"] == 5750

    def test_pending_refund(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.create.return_value = mock_refund(status="pending")

        assert StripeAdapter.refund("pi_test123456", 5750, idempotency_key="ref-1").is_pending

    def test_failed_refund(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.create.return_value = mock_refund(status="failed")

        assert StripeAdapter.refund("pi_test123456", 5750, idempotency_key="ref-1").is_failed

    def test_retrieve_refund_maps_status(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.retrieve.return_value = mock_refund(status="succeeded")

        result = StripeAdapter.retrieve_refund("re_test123456")

        assert result.is_succeeded
        mock_stripe_refund.retrieve.assert_called_once_with("re_test123456")

    def test_retrieve_canceled_refund_is_failed(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.retrieve.return_value = mock_refund(status="canceled")

        assert StripeAdapter.retrieve_refund("re_test123456").is_failed


class TestStripeAdapterTransfer:
    def test_transfer_success(self, mock_stripe_transfer):
        result = StripeAdapter.transfer(
            "acct_owner123", 8500, "usd", idempotency_key="tr-1", metadata={"payout": "p1"}
        )

        assert result.is_succeeded
        assert result.reference_id == "tr_test123456"
        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["destination"] == "acct_owner123"
        assert call_kwargs["metadata"] == {"payout": "p1"}


class TestStripeAdapterRetrievePayment:
    def test_captured_intent_succeeded(self, mock_stripe_payment_intent):
        assert StripeAdapter.retrieve_payment("pi_test123456").is_succeeded

    def test_uncaptured_intent_is_pending(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            status="requires_capture"
        )

        assert StripeAdapter.retrieve_payment("pi_test123456").is_pending


# =============================================================================
# Webhook Verification Tests
# =============================================================================


class TestStripeAdapterVerifyWebhookSignature:
    def test_verify_webhook_signature_success(self, mock_stripe_webhook):
        result = StripeAdapter.verify_webhook_signature(
            payload=b'{"id": "evt_test"}',
            signature="test_signature",
        )

        assert result["id"] == "evt_test123"
        assert result["type"] == "payment_intent.succeeded"

    def test_verify_webhook_signature_invalid(self, mock_stripe_webhook):
        mock_stripe_webhook.construct_event.side_effect = stripe.SignatureVerificationError(
            message="Unable to verify webhook signature.", sig_header="bad_signature"
        )

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(payload=b"tampered", signature="bad")

        assert "signature" in str(exc_info.value).lower()


# =============================================================================
# Configuration Tests
# =============================================================================


class TestStripeAdapterConfiguration:
    @override_settings(STRIPE_SECRET_KEY="sk_test_custom")
    def test_uses_settings_api_key(self, mock_stripe_payment_intent):
        _authorize()

        assert stripe.api_key == "sk_test_custom"

    @override_settings(STRIPE_API_TIMEOUT_SECONDS=30)
    def test_uses_settings_timeout(self, mock_stripe_payment_intent, mock_stripe_http_client):
        _authorize(idempotency_key=str(uuid.uuid4()))

        mock_stripe_http_client.assert_called_with(timeout=30)
