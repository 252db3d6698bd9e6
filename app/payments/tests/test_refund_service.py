"""
Tests for RefundService.
"""

import pytest

from payments.adapters import ProcessorStatus
from payments.exceptions import ExternalFailed, PaymentValidationError, RefundConflictError
from payments.ledger import AccountType, EntryStatus, LedgerEntry, LedgerService
from payments.models import Refund
from payments.services import RefundService
from payments.state_machines import PaymentStatus, RefundStatus


class TestEligibility:
    def test_captured_payment_is_refundable(self, captured_payment):
        eligibility = RefundService.check_refund_eligibility(captured_payment)

        assert eligibility.eligible
        assert eligibility.max_refundable_cents == 11500

    def test_uncaptured_payment_is_not_refundable(self, pending_payment):
        eligibility = RefundService.check_refund_eligibility(pending_payment)

        assert not eligibility.eligible
        assert "pending" in eligibility.block_reason

    def test_amount_above_remaining_is_blocked(self, captured_payment):
        eligibility = RefundService.check_refund_eligibility(captured_payment, 20000)

        assert not eligibility.eligible
        assert eligibility.max_refundable_cents == 11500


class TestIssueRefund:
    def test_partial_refund(self, captured_payment, booking_id, fake_processor):
        refund = RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.posting_id is not None
        assert fake_processor.operations("refund")[0]["intent_id"] == captured_payment.processor_reference

        captured_payment.refresh_from_db()
        assert captured_payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert captured_payment.refundable_cents == 5750
        assert LedgerService.get_balance(booking_id, AccountType.CASH).cents == 5750

    def test_full_refund_marks_payment_refunded(self, captured_payment):
        RefundService.issue_refund(captured_payment, 11500, reason="Owner rejected", purpose="cancel")

        captured_payment.refresh_from_db()
        assert captured_payment.status == PaymentStatus.REFUNDED

    def test_same_purpose_is_idempotent(self, captured_payment, fake_processor):
        first = RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")
        second = RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

        assert first.id == second.id
        assert len(fake_processor.operations("refund")) == 1
        assert Refund.objects.count() == 1

    def test_same_purpose_with_other_amount_conflicts(self, captured_payment, fake_processor):
        RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

        with pytest.raises(RefundConflictError) as exc_info:
            RefundService.issue_refund(captured_payment, 2000, reason="Cancelled", purpose="cancel")

        assert exc_info.value.http_status == 409
        assert exc_info.value.details["existing_amount_cents"] == 5750
        assert len(fake_processor.operations("refund")) == 1

    def test_exceeding_refundable_amount_is_rejected(self, captured_payment, fake_processor):
        RefundService.issue_refund(captured_payment, 10000, reason="First", purpose="first")

        with pytest.raises(PaymentValidationError) as exc_info:
            RefundService.issue_refund(captured_payment, 2000, reason="Second", purpose="second")

        assert exc_info.value.error_code == "REFUND_NOT_ALLOWED"
        assert len(fake_processor.operations("refund")) == 1

    def test_declined_refund_raises(self, captured_payment, fake_processor):
        fake_processor.script("refund", ProcessorStatus.FAILED)

        with pytest.raises(ExternalFailed):
            RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

        assert not Refund.objects.exists()


class TestPendingRefunds:
    @pytest.fixture
    def pending_refund(self, captured_payment, fake_processor):
        fake_processor.script("refund", ProcessorStatus.PENDING)
        return RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

    def test_pending_refund_posts_legs_but_keeps_payment(self, pending_refund, captured_payment, booking_id):
        assert pending_refund.status == RefundStatus.PENDING

        captured_payment.refresh_from_db()
        assert captured_payment.status == PaymentStatus.SUCCEEDED
        assert LedgerService.get_balance(booking_id, AccountType.CASH).cents == 5750

    def test_confirm_completes_refund(self, pending_refund, captured_payment):
        refund = RefundService.confirm_refund(pending_refund.processor_reference)

        assert refund.status == RefundStatus.SUCCEEDED
        captured_payment.refresh_from_db()
        assert captured_payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_failure_reverses_legs(self, pending_refund, booking_id):
        refund = RefundService.fail_refund(pending_refund.processor_reference, reason="account closed")

        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "account closed"
        assert LedgerService.get_balance(booking_id, AccountType.CASH).cents == 0
        assert LedgerService.find_unbalanced_postings() == []

    def test_confirm_settles_legs_once_nothing_else_is_open(self, pending_refund, booking_id):
        RefundService.confirm_refund(pending_refund.processor_reference)

        statuses = set(LedgerEntry.objects.filter(booking_id=booking_id).values_list("status", flat=True))
        assert statuses == {EntryStatus.SETTLED}

    def test_unconfirmed_postings(self, pending_refund, booking_id):
        assert RefundService.unconfirmed_postings(booking_id) == [pending_refund.posting_id]

        RefundService.confirm_refund(pending_refund.processor_reference)

        assert RefundService.unconfirmed_postings(booking_id) == []


class TestReconcilePendingRefunds:
    @pytest.fixture
    def pending_refund(self, captured_payment, fake_processor):
        fake_processor.script("refund", ProcessorStatus.PENDING)
        return RefundService.issue_refund(captured_payment, 5750, reason="Cancelled", purpose="cancel")

    def test_still_pending(self, pending_refund, booking_id, fake_processor):
        assert RefundService.reconcile_pending_refunds(booking_id) == 1
        assert fake_processor.operations("retrieve_refund") == [{"refund_id": pending_refund.processor_reference}]
        assert Refund.objects.get(pk=pending_refund.pk).status == RefundStatus.PENDING

    def test_confirmed_by_processor(self, pending_refund, booking_id, fake_processor):
        fake_processor.script("retrieve_refund", ProcessorStatus.SUCCEEDED)

        assert RefundService.reconcile_pending_refunds(booking_id) == 0
        assert Refund.objects.get(pk=pending_refund.pk).status == RefundStatus.SUCCEEDED

    def test_failed_at_processor(self, pending_refund, booking_id, fake_processor):
        fake_processor.script("retrieve_refund", ProcessorStatus.FAILED)

        assert RefundService.reconcile_pending_refunds(booking_id) == 0
        refund = Refund.objects.get(pk=pending_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "failed"
        assert LedgerService.get_balance(booking_id, AccountType.CASH).cents == 0

    def test_nothing_to_reconcile(self, captured_payment, booking_id, fake_processor):
        assert RefundService.reconcile_pending_refunds(booking_id) == 0
        assert fake_processor.operations("retrieve_refund") == []
