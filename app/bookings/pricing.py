"""
Price breakdown for a booking.

Amounts arrive already computed by the listing side (base price for the
date range, tax, deposit, discount); this module only derives the fee
split and checks the two invariants every booking carries:

    total == base_price + service_fee + tax - discount
    owner_earnings + platform_fee == base_price

Usage:
    breakdown = compute_price(
        base_price_cents=10000, service_fee_cents=1000, tax_cents=500, deposit_cents=5000
    )
    breakdown.total_cents  # 11500
    breakdown.platform_fee_cents  # 1500 with PLATFORM_FEE_PERCENT=15
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from bookings.exceptions import BookingValidationError


def round_half_up(value: Decimal | int | float) -> int:
    """Round to a whole number of cents, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, percent: Decimal | int) -> int:
    return round_half_up(Decimal(amount_cents) * Decimal(str(percent)) / Decimal(100))


@dataclass(frozen=True)
class PriceBreakdown:
    base_price_cents: int
    service_fee_cents: int
    tax_cents: int
    deposit_cents: int
    discount_cents: int
    total_cents: int
    owner_earnings_cents: int
    platform_fee_cents: int

    def as_model_fields(self) -> dict[str, int]:
        return asdict(self)


def compute_price(
    base_price_cents: int,
    tax_cents: int = 0,
    deposit_cents: int = 0,
    discount_cents: int = 0,
    service_fee_cents: int | None = None,
    platform_fee_percent: Decimal | int | None = None,
    service_fee_percent: Decimal | int | None = None,
) -> PriceBreakdown:
    """
    Build a validated PriceBreakdown.

    The service fee defaults to ``SERVICE_FEE_PERCENT`` of the base price;
    the platform keeps ``PLATFORM_FEE_PERCENT`` of the base price and the
    owner earns the rest.

    Raises:
        BookingValidationError: Negative amounts or a discount larger than the charge
    """
    if platform_fee_percent is None:
        platform_fee_percent = settings.PLATFORM_FEE_PERCENT
    if service_fee_percent is None:
        service_fee_percent = settings.SERVICE_FEE_PERCENT
    if service_fee_cents is None:
        service_fee_cents = percent_of(base_price_cents, service_fee_percent)

    platform_fee_cents = percent_of(base_price_cents, platform_fee_percent)
    breakdown = PriceBreakdown(
        base_price_cents=base_price_cents,
        service_fee_cents=service_fee_cents,
        tax_cents=tax_cents,
        deposit_cents=deposit_cents,
        discount_cents=discount_cents,
        total_cents=base_price_cents + service_fee_cents + tax_cents - discount_cents,
        owner_earnings_cents=base_price_cents - platform_fee_cents,
        platform_fee_cents=platform_fee_cents,
    )
    validate_breakdown(breakdown)
    return breakdown


def validate_breakdown(breakdown: PriceBreakdown) -> None:
    """
    Check amounts and the price invariants.

    Raises:
        BookingValidationError: With the offending fields in ``details``
    """
    errors: dict[str, str] = {}
    for name, value in breakdown.as_model_fields().items():
        if value < 0:
            errors[name] = "must not be negative"
    if breakdown.base_price_cents <= 0:
        errors["base_price_cents"] = "must be positive"
    if breakdown.total_cents <= 0:
        errors["discount_cents"] = "discount must leave a positive total"
    if breakdown.total_cents != (
        breakdown.base_price_cents + breakdown.service_fee_cents + breakdown.tax_cents - breakdown.discount_cents
    ):
        errors["total_cents"] = "does not match base + service fee + tax - discount"
    if breakdown.owner_earnings_cents + breakdown.platform_fee_cents != breakdown.base_price_cents:
        errors["owner_earnings_cents"] = "owner earnings + platform fee must equal base price"

    if errors:
        raise BookingValidationError(
            "Invalid price breakdown",
            error_code="INVALID_PRICE_BREAKDOWN",
            details=errors,
        )
