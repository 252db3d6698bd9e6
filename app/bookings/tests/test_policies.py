"""Tests for the tiered cancellation policy."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.models import Booking, CancellationPolicy
from bookings.policies import TieredCancellationPolicy, get_cancellation_policy


def _booking(policy, start_in):
    now = timezone.now()
    return Booking(cancellation_policy=policy, start_at=now + start_in, end_at=now + start_in + timedelta(days=1)), now


class TestTieredCancellationPolicy:
    @pytest.mark.parametrize(
        "policy,notice,expected",
        [
            (CancellationPolicy.FLEXIBLE, timedelta(hours=24), Decimal("1")),
            (CancellationPolicy.FLEXIBLE, timedelta(hours=23), Decimal("0.5")),
            (CancellationPolicy.FLEXIBLE, -timedelta(hours=5), Decimal("0.5")),
            (CancellationPolicy.MODERATE, timedelta(hours=72), Decimal("1")),
            (CancellationPolicy.MODERATE, timedelta(hours=30), Decimal("0.5")),
            (CancellationPolicy.MODERATE, timedelta(hours=2), Decimal("0")),
            (CancellationPolicy.STRICT, timedelta(days=8), Decimal("0.5")),
            (CancellationPolicy.STRICT, timedelta(days=6), Decimal("0")),
        ],
    )
    def test_tiers(self, policy, notice, expected):
        booking, now = _booking(policy, notice)

        assert TieredCancellationPolicy().refund_fraction(booking, now) == expected

    def test_unknown_policy_refunds_nothing(self):
        booking, now = _booking("custom", timedelta(days=30))

        assert TieredCancellationPolicy().refund_fraction(booking, now) == Decimal("0")


class TestPolicyLoading:
    def test_configured_class_is_loaded(self):
        assert isinstance(get_cancellation_policy(), TieredCancellationPolicy)
