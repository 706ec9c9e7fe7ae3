"""Tests for coupon validation and discount arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_item
from fotofacil.cart import CartStore
from fotofacil.clients import BackendError
from fotofacil.coupons import (
    CouponCalculator,
    CouponRejected,
    CouponRejection,
    compute_discount,
    final_total,
)
from fotofacil.models import AppliedCoupon, Coupon, DiscountType
from fotofacil.storage import MemoryStorage

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def applied(discount_type, value):
    return AppliedCoupon(id="c1", code="X", discount_type=discount_type, discount_value=value)


def coupon(**overrides):
    fields = dict(
        id="c1", code="FOTO10", discount_type="percentage", discount_value=10,
        valid_from=NOW - timedelta(days=1), is_active=True,
    )
    fields.update(overrides)
    return Coupon(**fields)


class FakeRepository:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def fetch_active_coupon(self, code):
        self.calls.append(code)
        if self.error:
            raise self.error
        return self.result


def calculator(result=None, error=None):
    return CouponCalculator(FakeRepository(result, error), clock=lambda: NOW)


def cart_with(cart, *prices):
    for n, price in enumerate(prices):
        cart.add_item(make_item(f"p{n}", price))
    return cart


class TestDiscountArithmetic:
    def test_percentage(self):
        c = applied(DiscountType.PERCENTAGE, 10)
        assert compute_discount(c, 1000) == 100
        assert final_total(c, 1000) == 900

    def test_percentage_rounds_half_up(self):
        c = applied(DiscountType.PERCENTAGE, 15)
        assert compute_discount(c, 1010) == 152  # 151.5
        assert compute_discount(c, 1003) == 150  # 150.45

    def test_fixed_never_goes_negative(self):
        c = applied(DiscountType.FIXED, 5000)
        assert compute_discount(c, 3000) == 5000
        assert final_total(c, 3000) == 0

    def test_no_coupon(self):
        assert compute_discount(None, 1234) == 0
        assert final_total(None, 1234) == 1234

    @pytest.mark.parametrize("discount", [
        applied(DiscountType.PERCENTAGE, 0),
        applied(DiscountType.PERCENTAGE, 33.3),
        applied(DiscountType.PERCENTAGE, 100),
        applied(DiscountType.FIXED, 1),
        applied(DiscountType.FIXED, 99999),
    ])
    @pytest.mark.parametrize("total", [0, 1, 999, 2500, 123457])
    def test_final_total_bounds(self, discount, total):
        assert 0 <= final_total(discount, total) <= total


class TestValidateAndApply:
    def test_empty_input_is_ignored_without_lookup(self, cart):
        calc = calculator(coupon())
        assert calc.validate_and_apply("   ", cart) is None
        assert calc.client.calls == []
        assert calc.applied is None

    def test_code_is_normalized(self, cart):
        calc = calculator(coupon())
        calc.validate_and_apply("  foto10 ", cart_with(cart, 1000))
        assert calc.client.calls == ["FOTO10"]

    def test_success_keeps_coupon_and_clears_input(self, cart):
        calc = calculator(coupon())
        result = calc.validate_and_apply("foto10", cart_with(cart, 1000))
        assert result == AppliedCoupon(id="c1", code="FOTO10", discount_type="percentage", discount_value=10)
        assert calc.applied == result
        assert calc.code_input == ""
        assert calc.discount_cents(1000) == 100

    @pytest.mark.parametrize("record", [None, coupon(is_active=False)])
    def test_unknown_or_inactive(self, cart, record):
        with pytest.raises(CouponRejected) as exc:
            calculator(record).validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.INVALID
        assert exc.value.message == "Cupom inválido ou expirado"

    def test_not_yet_active(self, cart):
        with pytest.raises(CouponRejected) as exc:
            calculator(coupon(valid_from=NOW + timedelta(hours=1))).validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.NOT_YET_ACTIVE

    def test_expired(self, cart):
        with pytest.raises(CouponRejected) as exc:
            calculator(coupon(valid_until=NOW - timedelta(seconds=1))).validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.EXPIRED

    def test_naive_dates_are_utc(self, cart):
        record = coupon(valid_from=datetime(2024, 1, 1), valid_until=datetime(2024, 12, 31))
        assert calculator(record).validate_and_apply("FOTO10", cart_with(cart, 1000)) is not None

    def test_minimum_order_boundary(self):
        below = cart_with(CartStore(MemoryStorage()), 4999)
        with pytest.raises(CouponRejected) as exc:
            calculator(coupon(min_order_cents=5000)).validate_and_apply("FOTO10", below)
        assert exc.value.reason == CouponRejection.MIN_ORDER
        assert "R$ 50,00" in exc.value.message

        exact = cart_with(CartStore(MemoryStorage()), 5000)
        assert calculator(coupon(min_order_cents=5000)).validate_and_apply("FOTO10", exact) is not None

    def test_minimum_photos(self, cart):
        with pytest.raises(CouponRejected) as exc:
            calculator(coupon(min_photos=3)).validate_and_apply("FOTO10", cart_with(cart, 1000, 1000))
        assert exc.value.reason == CouponRejection.MIN_PHOTOS

    def test_exhausted(self, cart):
        with pytest.raises(CouponRejected) as exc:
            calculator(coupon(max_uses=5, current_uses=5)).validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.EXHAUSTED

    def test_rule_order_expired_before_minimum(self, cart):
        record = coupon(valid_until=NOW - timedelta(days=1), min_order_cents=10**6, max_uses=0)
        with pytest.raises(CouponRejected) as exc:
            calculator(record).validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.EXPIRED

    def test_lookup_failure(self, cart):
        calc = calculator(error=BackendError("boom"))
        with pytest.raises(CouponRejected) as exc:
            calc.validate_and_apply("FOTO10", cart_with(cart, 1000))
        assert exc.value.reason == CouponRejection.UNAVAILABLE

    def test_rejection_keeps_previous_coupon(self, cart):
        calc = calculator(coupon())
        calc.validate_and_apply("FOTO10", cart_with(cart, 1000))
        calc.client.result = None
        with pytest.raises(CouponRejected):
            calc.validate_and_apply("OUTRO", cart)
        assert calc.applied.code == "FOTO10"

    def test_remove_does_not_touch_cart(self, cart):
        calc = calculator(coupon())
        calc.validate_and_apply("FOTO10", cart_with(cart, 1000, 500))
        calc.remove_coupon()
        assert calc.applied is None
        assert cart.total_cents == 1500
        assert calc.final_total_cents(cart.total_cents) == 1500


def test_fetch_through_mock_backend(client, backend, cart):
    backend.add_coupon(code="VERAO20", discount_type="percentage", discount_value=20)
    backend.add_coupon(code="OFF", discount_type="fixed", discount_value=100, is_active=False)
    calc = CouponCalculator(client)
    result = calc.validate_and_apply("verao20", cart_with(cart, 1000, 1500))
    assert result.code == "VERAO20"
    assert calc.discount_cents(cart.total_cents) == 500

    with pytest.raises(CouponRejected) as exc:
        calc.validate_and_apply("OFF", cart)
    assert exc.value.reason == CouponRejection.INVALID
