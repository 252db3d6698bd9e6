"""Tests for the booking timeout scan and scheduled transitions."""

from datetime import timedelta

import pytest
from freezegun import freeze_time

from bookings.events import BookingEvent, booking_event
from bookings.models import Booking
from bookings.states import BookingAction, BookingStatus
from bookings.tasks import apply_scheduled_transition, publish_booking_event, run_booking_timeouts
from bookings.tests.factories import BookingFactory
from payments.exceptions import LockAcquisitionError


def _status(booking):
    return Booking.objects.get(pk=booking.pk).status


@pytest.mark.django_db
class TestRunBookingTimeouts:
    def test_nothing_due(self, confirmed_booking):
        assert run_booking_timeouts() == {"queued_count": 0}

    def test_expires_unanswered_request(self, pending_approval_booking):
        with freeze_time(pending_approval_booking.expires_at + timedelta(minutes=1)):
            result = run_booking_timeouts()

        assert result == {"queued_count": 1}
        assert _status(pending_approval_booking) == BookingStatus.CANCELLED

    def test_expires_unpaid_booking(self, pending_payment_booking):
        with freeze_time(pending_payment_booking.expires_at + timedelta(minutes=1)):
            run_booking_timeouts()

        booking = Booking.objects.get(pk=pending_payment_booking.pk)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_by == "system:scheduler"

    def test_activates_at_check_in(self, confirmed_booking):
        with freeze_time(confirmed_booking.start_at + timedelta(minutes=1)):
            run_booking_timeouts()

        assert _status(confirmed_booking) == BookingStatus.ACTIVE

    def test_requests_return_at_checkout(self, in_progress_booking):
        with freeze_time(in_progress_booking.end_at + timedelta(minutes=1)):
            run_booking_timeouts()

        booking = Booking.objects.get(pk=in_progress_booking.pk)
        assert booking.status == BookingStatus.AWAITING_RETURN_INSPECTION
        assert booking.inspection_due_at is not None

    def test_approves_return_after_grace(self, awaiting_inspection_booking):
        with freeze_time(awaiting_inspection_booking.inspection_due_at + timedelta(minutes=1)):
            run_booking_timeouts()

        booking = Booking.objects.get(pk=awaiting_inspection_booking.pk)
        assert booking.status == BookingStatus.COMPLETED
        assert booking.completed_at is not None
        assert booking.inspection_due_at is None


@pytest.mark.django_db
class TestApplyScheduledTransition:
    def test_moved_on_booking_is_skipped(self):
        booking = BookingFactory(status=BookingStatus.SETTLED)

        result = apply_scheduled_transition(str(booking.id), BookingAction.ACTIVATE)

        assert result["status"] == "skipped"
        assert _status(booking) == BookingStatus.SETTLED

    def test_applied_result(self, confirmed_booking):
        result = apply_scheduled_transition(str(confirmed_booking.id), BookingAction.ACTIVATE)

        assert result["status"] == "applied"
        assert result["to_status"] == BookingStatus.ACTIVE

    def test_busy_booking_is_retried(self, confirmed_booking, redis_lock):
        redis_lock.set.return_value = False

        with pytest.raises(LockAcquisitionError):
            apply_scheduled_transition(str(confirmed_booking.id), BookingAction.ACTIVATE)

        assert _status(confirmed_booking) == BookingStatus.CONFIRMED


@pytest.mark.django_db
class TestPublishBookingEvent:
    def test_delivers_to_receivers(self, draft_booking):
        received = []

        def on_event(sender, event, **kwargs):
            received.append(event)

        event = BookingEvent(
            booking_id=draft_booking.id,
            action=BookingAction.SUBMIT_REQUEST,
            from_status=BookingStatus.DRAFT,
            to_status=BookingStatus.PENDING_OWNER_APPROVAL,
        )
        booking_event.connect(on_event)
        try:
            failures = publish_booking_event(event.to_dict())
        finally:
            booking_event.disconnect(on_event)

        assert failures == 0
        assert received[0].booking_id == draft_booking.id
        assert received[0].occurred_at == event.occurred_at
