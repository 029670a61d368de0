"""
Price table lookups and coupon arithmetic
"""
from datetime import datetime

import pytest

from app.domain.catalog.pricing import (
    PricingError,
    get_booking_total_cents,
    get_product_price_cents,
    get_room_key,
)
from app.domain.coupons.rules import (
    STATIC_COUPONS,
    apply_discount,
    create_coupon_snapshot,
    get_static_coupon,
    is_valid_coupon,
)
from app.models import Room

# 10:00 local on a Monday / Saturday
MONDAY_10H = datetime(2026, 3, 9, 13, 0)
SATURDAY_10H = datetime(2026, 3, 14, 13, 0)


def make_room(slug: str, name: str = "") -> Room:
    return Room(slug=slug, name=name or slug, hourly_rate=0, tier=1)


class TestPricing:

    def test_room_key_from_slug_and_name(self):
        assert get_room_key(make_room("sala-a")) == "SALA_A"
        assert get_room_key(slug="SALA-C") == "SALA_C"
        assert get_room_key(make_room("consultorio-b", name="Sala B")) == "SALA_B"

    def test_unknown_room(self):
        with pytest.raises(PricingError):
            get_room_key(make_room("sala-z"))

    def test_product_prices_in_cents(self):
        assert get_product_price_cents("SALA_A", "HOURLY_RATE") == 5999
        assert get_product_price_cents("SALA_A", "PACKAGE_10H") == 55990
        assert get_product_price_cents("SALA_A", "PACKAGE_20H") == 103980
        with pytest.raises(PricingError):
            get_product_price_cents("SALA_A", "UNKNOWN")

    def test_weekday_booking_total(self):
        assert get_booking_total_cents(make_room("sala-a"), MONDAY_10H, 2) == 11998
        assert get_booking_total_cents(make_room("sala-c"), MONDAY_10H, 3) == 11997

    def test_saturday_uses_saturday_rate(self):
        assert get_booking_total_cents(make_room("sala-a"), SATURDAY_10H, 1) == 6499
        assert get_booking_total_cents(make_room("sala-b"), SATURDAY_10H, 1) == 5399

    def test_duration_must_be_positive(self):
        with pytest.raises(PricingError):
            get_booking_total_cents(make_room("sala-a"), MONDAY_10H, 0)


class TestCouponRules:
    """apply_discount keeps final + discount == original"""

    def test_percent(self):
        result = apply_discount(5999, "ARTHEMI10")
        assert result == {"final_amount": 5399, "discount_amount": 600, "coupon_code": "ARTHEMI10"}

    def test_code_is_case_insensitive(self):
        assert apply_discount(10000, " primeiracompra ")["final_amount"] == 8500

    def test_fixed_respects_minimum(self):
        result = apply_discount(550, "TESTE50")
        assert result["final_amount"] == 100
        assert result["discount_amount"] == 450

    def test_amount_already_below_minimum(self):
        result = apply_discount(50, "TESTE50")
        assert result["final_amount"] == 0
        assert result["discount_amount"] == 50

    def test_price_override_never_raises_price(self):
        assert apply_discount(5999, "TESTE5")["final_amount"] == 500
        assert apply_discount(300, "TESTE5") == {"final_amount": 300, "discount_amount": 0, "coupon_code": "TESTE5"}

    def test_unknown_coupon_leaves_amount(self):
        assert apply_discount(5999, "NOPE") == {"final_amount": 5999, "discount_amount": 0, "coupon_code": None}
        assert is_valid_coupon("NOPE") is False

    def test_static_registry(self):
        coupon = get_static_coupon("devtest")
        assert coupon["code"] == "DEVTEST"
        assert coupon["is_dev_coupon"] is True
        assert get_static_coupon("PRIMEIRACOMPRA")["single_use_per_user"] is True

    def test_devtest_is_the_only_dev_coupon(self):
        dev_codes = [code for code in STATIC_COUPONS if get_static_coupon(code)["is_dev_coupon"]]
        assert dev_codes == ["DEVTEST"]

    def test_snapshot(self):
        snapshot = create_coupon_snapshot(get_static_coupon("ARTHEMI10"))
        assert snapshot["code"] == "ARTHEMI10"
        assert snapshot["discountType"] == "PERCENT"
        assert snapshot["value"] == 10
        assert snapshot["appliedAt"].endswith("Z")
