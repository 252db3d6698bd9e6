"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.

Project-wide fixtures:
    fake_processor: Recording in-memory payment processor (autouse)
    redis_lock: DistributedLock backed by a MagicMock instead of Redis (autouse)
    capture_on_commit: Run ``transaction.on_commit`` callbacks inside ``db`` tests
    client_for: API client authenticated with a JWT for a given party id
    make_booking, *_booking: Bookings driven through the state machine to each state
"""

import os
import uuid
from datetime import timedelta
from unittest.mock import MagicMock, patch

import django
import pytest
from django.utils import timezone

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True

    from config.celery import app

    app.conf.task_always_eager = True
    app.conf.task_eager_propagates = True


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full booking journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_states.py, test_pricing.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_handlers.py",
        "test_payments.py",
        "test_cancellation.py",
        "test_orchestrator.py",
        "test_payouts.py",
        "test_refund_service.py",
        "test_payout_service.py",
        "test_state_machine.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_states.py",
        "test_pricing.py",
        "test_policies.py",
        "test_stripe_adapter.py",
        "test_locks.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# External Collaborators
# =============================================================================


@pytest.fixture(autouse=True)
def fake_processor():
    """Every test talks to an in-memory processor, never to Stripe."""
    from payments.adapters import use_processor
    from payments.tests.fakes import FakeProcessor

    with use_processor(FakeProcessor()) as processor:
        yield processor


@pytest.fixture(autouse=True)
def redis_lock():
    """Locks always succeed without a Redis server."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    with patch("payments.locks.get_redis_connection", return_value=redis):
        yield redis


@pytest.fixture
def capture_on_commit(django_capture_on_commit_callbacks):
    """Execute on_commit callbacks registered inside the block."""
    def runner():
        return django_capture_on_commit_callbacks(execute=True)

    return runner


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def client_for():
    """
    Build an API client authenticated as ``party_id``.

    Callers are not stored locally; the access token carries the id and
    the staff flag, as tokens issued by the identity service do.

    Usage:
        client = client_for(renter_id)
        admin = client_for(uuid.uuid4(), is_staff=True)
    """
    from rest_framework.test import APIClient
    from rest_framework_simplejwt.tokens import AccessToken

    def build(party_id, is_staff=False):
        token = AccessToken()
        token["user_id"] = str(party_id)
        token["is_staff"] = is_staff
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        return client

    return build


# =============================================================================
# Booking Lifecycle
# =============================================================================
# Bookings are driven through the real state machine so every fixture has
# the history rows and ledger legs the state implies.


@pytest.fixture
def renter_id():
    return uuid.uuid4()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def make_booking(db, renter_id, owner_id):
    """
    Create a DRAFT booking through BookingService.

    Defaults: $100 base, $10 service fee, $5 tax, $50 deposit (total $115),
    request-to-book, flexible policy, check-in in 10 days.
    """
    from bookings.models import CancellationPolicy
    from bookings.services import BookingService

    def build(**overrides):
        start_at = overrides.pop("start_at", timezone.now() + timedelta(days=10))
        params = {
            "listing_id": uuid.uuid4(),
            "renter_id": renter_id,
            "owner_id": owner_id,
            "start_at": start_at,
            "end_at": start_at + timedelta(days=3),
            "base_price_cents": 10000,
            "service_fee_cents": 1000,
            "tax_cents": 500,
            "deposit_cents": 5000,
            "cancellation_policy": CancellationPolicy.FLEXIBLE,
            "owner_payout_account": "acct_test_owner",
        }
        params.update(overrides)
        return BookingService.create_booking(**params)

    return build


@pytest.fixture
def advance():
    """Apply a list of (action, actor) steps and return the booking."""
    from bookings.services import BookingStateMachine

    def run(booking, *steps):
        for action, actor in steps:
            booking = BookingStateMachine.transition(booking.id, action, actor)
        return booking

    return run


@pytest.fixture
def draft_booking(make_booking):
    return make_booking()


@pytest.fixture
def pending_approval_booking(draft_booking, advance, renter_id):
    from bookings.states import Actor, BookingAction

    return advance(draft_booking, (BookingAction.SUBMIT_REQUEST, Actor.renter(renter_id)))


@pytest.fixture
def pending_payment_booking(pending_approval_booking, advance, owner_id):
    from bookings.states import Actor, BookingAction

    return advance(pending_approval_booking, (BookingAction.OWNER_APPROVE, Actor.owner(owner_id)))


@pytest.fixture
def confirmed_booking(pending_payment_booking, renter_id):
    """Paid $115 with an authorized $50 deposit hold."""
    from bookings.payments import PaymentService
    from bookings.states import Actor

    return PaymentService.complete_payment(pending_payment_booking.id, Actor.renter(renter_id), "pm_card_visa")


@pytest.fixture
def active_booking(confirmed_booking, advance):
    from bookings.states import Actor, BookingAction

    return advance(confirmed_booking, (BookingAction.ACTIVATE, Actor.system("scheduler")))


@pytest.fixture
def in_progress_booking(active_booking, advance, renter_id):
    from bookings.states import Actor, BookingAction

    return advance(active_booking, (BookingAction.START_RENTAL, Actor.renter(renter_id)))


@pytest.fixture
def awaiting_inspection_booking(in_progress_booking, advance, renter_id):
    from bookings.states import Actor, BookingAction

    return advance(in_progress_booking, (BookingAction.REQUEST_RETURN, Actor.renter(renter_id)))


@pytest.fixture
def completed_booking(awaiting_inspection_booking, advance, owner_id):
    from bookings.states import Actor, BookingAction

    return advance(awaiting_inspection_booking, (BookingAction.APPROVE_RETURN, Actor.owner(owner_id)))
