"""
Tests for BookingStateMachine.

Covers edge validation, actor checks, optimistic versioning, rollback of
failed side effects, forced dispute edges, the history trail and event
publication.
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.conf import settings
from django.utils import timezone
from freezegun import freeze_time

from bookings.events import booking_event
from bookings.exceptions import (
    BookingValidationError,
    HistoryImmutableError,
    InvalidTransition,
    TransitionFailed,
    TransitionNotPermitted,
)
from bookings.models import Booking, BookingStateHistory
from bookings.services import BookingService, BookingStateMachine
from bookings.side_effects import SIDE_EFFECTS
from bookings.states import Actor, BookingAction, BookingMode, BookingStatus, is_valid_walk
from bookings.tests.factories import BookingFactory
from payments.exceptions import StaleRecordError
from payments.ledger import AccountType, LedgerLeg, LedgerPosting, LedgerService, TransactionType


def _reload(booking):
    return Booking.objects.get(pk=booking.pk)


@pytest.mark.django_db
class TestSubmitRequest:
    def test_request_to_book_waits_for_owner(self, draft_booking, renter_id):
        booking = BookingStateMachine.transition(draft_booking.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id))

        assert booking.status == BookingStatus.PENDING_OWNER_APPROVAL
        assert booking.expires_at is not None
        assert booking.version == 2

    def test_instant_book_goes_straight_to_payment(self, make_booking, renter_id):
        draft = make_booking(booking_mode=BookingMode.INSTANT)

        booking = BookingStateMachine.transition(draft.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id))

        assert booking.status == BookingStatus.PENDING_PAYMENT
        expected = timezone.now() + timedelta(hours=settings.BOOKING_PAYMENT_TIMEOUT_HOURS)
        assert abs(booking.expires_at - expected) < timedelta(minutes=1)

    def test_history_row_is_written(self, draft_booking, renter_id):
        BookingStateMachine.transition(
            draft_booking.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id), reason="Weekend trip"
        )

        row = BookingStateHistory.objects.get(booking_id=draft_booking.id)
        assert row.sequence == 1
        assert row.from_status == BookingStatus.DRAFT
        assert row.to_status == BookingStatus.PENDING_OWNER_APPROVAL
        assert row.actor == f"renter:{renter_id}"
        assert row.reason == "Weekend trip"


@pytest.mark.django_db
class TestValidation:
    def test_edge_not_in_table(self, draft_booking):
        with pytest.raises(InvalidTransition) as exc_info:
            BookingStateMachine.transition(draft_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert exc_info.value.details == {"current_status": "draft", "action": "activate"}
        assert _reload(draft_booking).status == BookingStatus.DRAFT

    def test_unknown_action(self, draft_booking, renter_id):
        with pytest.raises(BookingValidationError) as exc_info:
            BookingStateMachine.transition(draft_booking.id, "teleport", Actor.renter(renter_id))

        assert exc_info.value.error_code == "UNKNOWN_ACTION"

    def test_role_not_allowed(self, pending_approval_booking, renter_id):
        with pytest.raises(TransitionNotPermitted):
            BookingStateMachine.transition(
                pending_approval_booking.id, BookingAction.OWNER_APPROVE, Actor.renter(renter_id)
            )

    def test_party_must_match_booking(self, pending_approval_booking):
        stranger = Actor.owner(uuid.uuid4())

        with pytest.raises(TransitionNotPermitted):
            BookingStateMachine.transition(pending_approval_booking.id, BookingAction.OWNER_APPROVE, stranger)

    def test_system_cannot_cancel(self, confirmed_booking):
        with pytest.raises(TransitionNotPermitted):
            BookingStateMachine.transition(confirmed_booking.id, BookingAction.CANCEL, Actor.system())

    def test_admin_may_approve(self, pending_approval_booking):
        booking = BookingStateMachine.transition(
            pending_approval_booking.id, BookingAction.OWNER_APPROVE, Actor.admin(uuid.uuid4())
        )

        assert booking.status == BookingStatus.PENDING_PAYMENT

    def test_check_does_not_write(self, pending_approval_booking, owner_id):
        rule = BookingStateMachine.check(pending_approval_booking, BookingAction.OWNER_APPROVE, Actor.owner(owner_id))

        assert rule.target == BookingStatus.PENDING_PAYMENT
        assert _reload(pending_approval_booking).status == BookingStatus.PENDING_OWNER_APPROVAL


@pytest.mark.django_db
class TestOptimisticVersion:
    def test_matching_version_applies(self, pending_approval_booking, owner_id):
        booking = BookingStateMachine.transition(
            pending_approval_booking.id,
            BookingAction.OWNER_APPROVE,
            Actor.owner(owner_id),
            expected_version=pending_approval_booking.version,
        )

        assert booking.version == pending_approval_booking.version + 1

    def test_stale_version_is_rejected(self, pending_approval_booking, owner_id):
        with pytest.raises(StaleRecordError):
            BookingStateMachine.transition(
                pending_approval_booking.id,
                BookingAction.OWNER_APPROVE,
                Actor.owner(owner_id),
                expected_version=pending_approval_booking.version - 1,
            )

        assert _reload(pending_approval_booking).status == BookingStatus.PENDING_OWNER_APPROVAL


@pytest.mark.django_db
class TestSideEffectFailure:
    def test_failure_rolls_back_everything(self, confirmed_booking):
        def post_then_fail(booking, action, actor, reason, context):
            LedgerService.post(
                LedgerLeg.pair(
                    booking.id,
                    TransactionType.PLATFORM_FEE,
                    debit=AccountType.REVENUE,
                    credit=AccountType.LIABILITY,
                    amount_cents=100,
                ),
                idempotency_key="rollback-check",
            )
            raise RuntimeError("processor unreachable")

        history_before = BookingStateHistory.objects.filter(booking_id=confirmed_booking.id).count()

        with patch.dict(SIDE_EFFECTS, {BookingAction.ACTIVATE: post_then_fail}):
            with pytest.raises(TransitionFailed) as exc_info:
                BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.details["cause"] == "RUNTIMEERROR"
        booking = _reload(confirmed_booking)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.version == confirmed_booking.version
        assert not LedgerPosting.objects.filter(idempotency_key="rollback-check").exists()
        assert BookingStateHistory.objects.filter(booking_id=booking.id).count() == history_before

    def test_retry_after_failure_succeeds(self, confirmed_booking):
        with patch.dict(SIDE_EFFECTS, {BookingAction.ACTIVATE: lambda *args: 1 / 0}):
            with pytest.raises(TransitionFailed):
                BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        booking = BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert booking.status == BookingStatus.ACTIVE

    def test_unexpected_error_message_is_not_exposed(self, confirmed_booking):
        def leak(booking, action, actor, reason, context):
            raise RuntimeError('duplicate key value violates unique constraint "payments_pkey" Key=(secret)')

        with patch.dict(SIDE_EFFECTS, {BookingAction.ACTIVATE: leak}):
            with pytest.raises(TransitionFailed) as exc_info:
                BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        error = exc_info.value
        assert "cause_message" not in error.details
        assert "secret" not in str(error.to_dict())

    def test_domain_error_message_is_exposed(self, confirmed_booking):
        def reject(booking, action, actor, reason, context):
            raise BookingValidationError("Captured amount does not match the booking total")

        with patch.dict(SIDE_EFFECTS, {BookingAction.ACTIVATE: reject}):
            with pytest.raises(TransitionFailed) as exc_info:
                BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert exc_info.value.details["cause"] == "BOOKING_VALIDATION_ERROR"
        assert exc_info.value.details["cause_message"] == "Captured amount does not match the booking total"

    def test_internal_error_message_is_not_exposed(self, confirmed_booking):
        def corrupt(booking, action, actor, reason, context):
            raise HistoryImmutableError("History row 3 of booking is immutable")

        with patch.dict(SIDE_EFFECTS, {BookingAction.ACTIVATE: corrupt}):
            with pytest.raises(TransitionFailed) as exc_info:
                BookingStateMachine.transition(confirmed_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert exc_info.value.details["cause"] == "HISTORY_IMMUTABLE"
        assert "cause_message" not in exc_info.value.details


@pytest.mark.django_db
class TestForcedTransitions:
    def test_forced_edge_cannot_be_requested(self):
        booking = BookingFactory(status=BookingStatus.DISPUTED)

        with pytest.raises(TransitionNotPermitted):
            BookingStateMachine.transition(booking.id, BookingAction.RESOLVE_DISPUTE, Actor.admin(uuid.uuid4()))

    def test_force_applies_dispute_outcome(self):
        booking = BookingFactory(status=BookingStatus.DISPUTED)
        admin_id = uuid.uuid4()

        booking = BookingStateMachine.force_transition(
            booking.id, BookingAction.REFUND, reason="Item never delivered", resolved_by=admin_id
        )

        assert booking.status == BookingStatus.REFUNDED
        row = BookingStateHistory.objects.get(booking_id=booking.id)
        assert row.actor == f"admin:{admin_id}"
        assert row.metadata == {"forced": True}

    def test_only_forced_edges_can_be_forced(self, confirmed_booking):
        with pytest.raises(TransitionNotPermitted):
            BookingStateMachine.force_transition(confirmed_booking.id, BookingAction.CANCEL)

    def test_forced_edge_still_needs_its_source(self, confirmed_booking):
        with pytest.raises(InvalidTransition):
            BookingStateMachine.force_transition(confirmed_booking.id, BookingAction.RESOLVE_DISPUTE)


@pytest.mark.django_db
class TestDisputeWindowGuard:
    def test_dispute_within_window(self, completed_booking):
        booking = BookingStateMachine.transition(
            completed_booking.id, BookingAction.INITIATE_DISPUTE, Actor.system("disputes")
        )

        assert booking.status == BookingStatus.DISPUTED

    def test_dispute_after_window(self, completed_booking):
        later = timezone.now() + timedelta(hours=settings.DISPUTE_FILING_WINDOW_HOURS + 1)

        with freeze_time(later), pytest.raises(InvalidTransition):
            BookingStateMachine.transition(
                completed_booking.id, BookingAction.INITIATE_DISPUTE, Actor.system("disputes")
            )


@pytest.mark.django_db
class TestHistory:
    def test_full_lifecycle_is_a_valid_walk(self, completed_booking):
        rows = BookingService.get_history(completed_booking.id)

        assert [row.sequence for row in rows] == list(range(1, len(rows) + 1))
        assert is_valid_walk([(row.from_status, row.to_status) for row in rows])
        assert rows[-1].to_status == BookingStatus.COMPLETED

    def test_cancelled_history_is_a_terminal_walk(self, confirmed_booking, renter_id):
        BookingStateMachine.transition(confirmed_booking.id, BookingAction.CANCEL, Actor.renter(renter_id))

        rows = BookingService.get_history(confirmed_booking.id)

        assert rows[-1].to_status == BookingStatus.CANCELLED
        assert is_valid_walk([(row.from_status, row.to_status) for row in rows], require_terminal=True)

    def test_refunded_history_is_a_terminal_walk(self, completed_booking):
        BookingStateMachine.transition(completed_booking.id, BookingAction.INITIATE_DISPUTE, Actor.system("disputes"))
        BookingStateMachine.force_transition(
            completed_booking.id, BookingAction.REFUND, reason="Item never delivered", resolved_by=uuid.uuid4()
        )

        rows = BookingService.get_history(completed_booking.id)

        assert rows[-1].to_status == BookingStatus.REFUNDED
        assert is_valid_walk([(row.from_status, row.to_status) for row in rows], require_terminal=True)

    def test_open_history_is_not_terminal(self, completed_booking):
        steps = [(row.from_status, row.to_status) for row in BookingService.get_history(completed_booking.id)]

        assert is_valid_walk(steps)
        assert not is_valid_walk(steps, require_terminal=True)

    def test_rows_cannot_be_edited(self, pending_approval_booking):
        row = BookingStateHistory.objects.get(booking_id=pending_approval_booking.id)
        row.reason = "rewritten"

        with pytest.raises(HistoryImmutableError):
            row.save()

    def test_rows_cannot_be_deleted(self, pending_approval_booking):
        row = BookingStateHistory.objects.get(booking_id=pending_approval_booking.id)

        with pytest.raises(HistoryImmutableError):
            row.delete()


@pytest.mark.django_db
class TestEvents:
    def test_event_published_after_commit(self, draft_booking, renter_id, capture_on_commit):
        received = []

        def on_event(sender, event, **kwargs):
            received.append(event)

        booking_event.connect(on_event)
        try:
            with capture_on_commit():
                BookingStateMachine.transition(
                    draft_booking.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id)
                )
        finally:
            booking_event.disconnect(on_event)

        assert len(received) == 1
        assert received[0].booking_id == draft_booking.id
        assert received[0].from_status == BookingStatus.DRAFT
        assert received[0].to_status == BookingStatus.PENDING_OWNER_APPROVAL
        assert received[0].actor == f"renter:{renter_id}"

    def test_rejected_transition_publishes_nothing(self, draft_booking, capture_on_commit):
        with capture_on_commit() as callbacks:
            with pytest.raises(InvalidTransition):
                BookingStateMachine.transition(draft_booking.id, BookingAction.ACTIVATE, Actor.system())

        assert callbacks == []

    def test_failing_receiver_does_not_break_delivery(self, draft_booking, renter_id, capture_on_commit):
        def broken(sender, event, **kwargs):
            raise RuntimeError("mail server down")

        booking_event.connect(broken)
        try:
            with capture_on_commit():
                booking = BookingStateMachine.transition(
                    draft_booking.id, BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id)
                )
        finally:
            booking_event.disconnect(broken)

        assert booking.status == BookingStatus.PENDING_OWNER_APPROVAL
