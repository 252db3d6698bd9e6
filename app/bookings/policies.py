"""
Cancellation policy evaluation.

The state machine only consumes a refund fraction in [0, 1]; which
fraction applies is decided by the evaluator configured in
``BOOKING_CANCELLATION_POLICY_CLASS``.

Default tiers (hours before check-in when the renter cancels):

    FLEXIBLE  >= 24h: 100%   otherwise: 50%
    MODERATE  >= 48h: 100%   >= 24h: 50%   otherwise: 0%
    STRICT    >= 168h: 50%   otherwise: 0%

Owner- and admin-initiated cancellations, rejections, expiries and
payment failures always refund in full; that rule lives in
bookings.cancellation, not in the evaluator.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from functools import lru_cache
from typing import TYPE_CHECKING, Protocol

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from bookings.models import Booking


class CancellationPolicyEvaluator(Protocol):
    def refund_fraction(self, booking: Booking, cancelled_at: datetime) -> Decimal:
        """Share of the booking total returned to the renter."""
        ...


class TieredCancellationPolicy:
    """Refund tiers keyed by the booking's ``cancellation_policy``."""

    # (minimum notice, fraction), most generous first
    TIERS: dict[str, list[tuple[timedelta, Decimal]]] = {
        "flexible": [
            (timedelta(hours=24), Decimal("1")),
            (timedelta.min, Decimal("0.5")),
        ],
        "moderate": [
            (timedelta(hours=48), Decimal("1")),
            (timedelta(hours=24), Decimal("0.5")),
        ],
        "strict": [
            (timedelta(hours=168), Decimal("0.5")),
        ],
    }

    def refund_fraction(self, booking: Booking, cancelled_at: datetime) -> Decimal:
        notice = booking.start_at - cancelled_at
        for minimum_notice, fraction in self.TIERS.get(booking.cancellation_policy, []):
            if notice >= minimum_notice:
                return fraction
        return Decimal("0")


@lru_cache(maxsize=None)
def _load_policy(path: str) -> CancellationPolicyEvaluator:
    return import_string(path)()


def get_cancellation_policy() -> CancellationPolicyEvaluator:
    return _load_policy(settings.BOOKING_CANCELLATION_POLICY_CLASS)
