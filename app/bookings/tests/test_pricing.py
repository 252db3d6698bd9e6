"""Tests for price breakdown computation and validation."""

from decimal import Decimal

import pytest

from bookings.exceptions import BookingValidationError
from bookings.pricing import PriceBreakdown, compute_price, percent_of, round_half_up, validate_breakdown


class TestRounding:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("5750"), 5750),
            (Decimal("5749.5"), 5750),
            (Decimal("5749.49"), 5749),
            (Decimal("0.5"), 1),
            (Decimal("-0.5"), -1),
        ],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_percent_of(self):
        assert percent_of(10000, 15) == 1500
        assert percent_of(333, Decimal("12.5")) == 42


class TestComputePrice:
    def test_explicit_breakdown(self):
        breakdown = compute_price(
            base_price_cents=10000,
            tax_cents=500,
            deposit_cents=5000,
            service_fee_cents=1000,
            platform_fee_percent=15,
        )

        assert breakdown.total_cents == 11500
        assert breakdown.platform_fee_cents == 1500
        assert breakdown.owner_earnings_cents == 8500
        assert breakdown.deposit_cents == 5000

    def test_service_fee_defaults_to_percentage(self):
        breakdown = compute_price(base_price_cents=20000, service_fee_percent=10, platform_fee_percent=15)

        assert breakdown.service_fee_cents == 2000
        assert breakdown.total_cents == 22000

    def test_discount_reduces_total_only(self):
        breakdown = compute_price(
            base_price_cents=10000,
            discount_cents=2500,
            service_fee_cents=0,
            platform_fee_percent=15,
        )

        assert breakdown.total_cents == 7500
        assert breakdown.owner_earnings_cents + breakdown.platform_fee_cents == 10000

    def test_deposit_is_not_part_of_total(self):
        breakdown = compute_price(base_price_cents=10000, deposit_cents=90000, service_fee_cents=0)

        assert breakdown.total_cents == 10000

    def test_negative_amount_rejected(self):
        with pytest.raises(BookingValidationError) as exc_info:
            compute_price(base_price_cents=10000, tax_cents=-1)

        assert "tax_cents" in exc_info.value.details

    def test_discount_larger_than_charge_rejected(self):
        with pytest.raises(BookingValidationError) as exc_info:
            compute_price(base_price_cents=1000, service_fee_cents=0, discount_cents=1000)

        assert "discount_cents" in exc_info.value.details

    def test_zero_base_price_rejected(self):
        with pytest.raises(BookingValidationError):
            compute_price(base_price_cents=0, service_fee_cents=100)


class TestValidateBreakdown:
    def test_inconsistent_total(self):
        breakdown = PriceBreakdown(
            base_price_cents=10000,
            service_fee_cents=1000,
            tax_cents=500,
            deposit_cents=0,
            discount_cents=0,
            total_cents=11000,
            owner_earnings_cents=8500,
            platform_fee_cents=1500,
        )

        with pytest.raises(BookingValidationError) as exc_info:
            validate_breakdown(breakdown)

        assert exc_info.value.error_code == "INVALID_PRICE_BREAKDOWN"
        assert "total_cents" in exc_info.value.details

    def test_inconsistent_fee_split(self):
        breakdown = PriceBreakdown(
            base_price_cents=10000,
            service_fee_cents=0,
            tax_cents=0,
            deposit_cents=0,
            discount_cents=0,
            total_cents=10000,
            owner_earnings_cents=9000,
            platform_fee_cents=1500,
        )

        with pytest.raises(BookingValidationError) as exc_info:
            validate_breakdown(breakdown)

        assert "owner_earnings_cents" in exc_info.value.details
