"""
coupons.py — Coupon Validation and Discount Arithmetic

Two layers:

    compute_discount / final_total
        Pure functions of an AppliedCoupon and a cart total (centavos).

    CouponCalculator
        Holds the coupon input and the currently applied coupon for a
        checkout session. validate_and_apply() fetches the coupon, runs the
        acceptance rules in a fixed order and either keeps the coupon or
        raises CouponRejected with the first failing reason.

The amounts computed here are for display only; the order service
re-validates the coupon and re-prices the order on its side.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from .clients import BackendError
from .formatting import format_price
from .models import AppliedCoupon, DiscountType

log = logging.getLogger(__name__)


class CouponRejection(str, Enum):
    INVALID = "invalid"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    MIN_ORDER = "min_order"
    MIN_PHOTOS = "min_photos"
    EXHAUSTED = "exhausted"
    UNAVAILABLE = "unavailable"  # lookup failed, the customer may retry


class CouponRejected(Exception):
    """A coupon failed one of the acceptance rules."""

    def __init__(self, reason: CouponRejection, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


def compute_discount(applied, total_cents: int) -> int:
    """
    Discount in centavos for a cart total.

    percentage: round(total * value / 100), halves rounded up
    fixed:      value (already centavos)
    """
    if applied is None:
        return 0
    if applied.discount_type == DiscountType.PERCENTAGE:
        raw = Decimal(total_cents) * Decimal(str(applied.discount_value)) / Decimal(100)
        return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return int(applied.discount_value)


def final_total(applied, total_cents: int) -> int:
    """Cart total after the discount, never below zero."""
    return max(0, total_cents - compute_discount(applied, total_cents))


def _aware(moment):
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def check_coupon(coupon, total_cents: int, item_count: int, now: datetime):
    """
    Runs the acceptance rules against a fetched coupon.

    Raises:
        CouponRejected: With the first failing rule, in this order: inactive,
            not yet valid, expired, minimum order, minimum photos, usage cap.
    """
    if coupon is None or not coupon.is_active:
        raise CouponRejected(CouponRejection.INVALID, "Cupom inválido ou expirado")

    valid_from = _aware(coupon.valid_from)
    if valid_from is not None and now < valid_from:
        raise CouponRejected(CouponRejection.NOT_YET_ACTIVE, "Este cupom ainda não está válido")

    valid_until = _aware(coupon.valid_until)
    if valid_until is not None and now > valid_until:
        raise CouponRejected(CouponRejection.EXPIRED, "Este cupom expirou")

    if coupon.min_order_cents and total_cents < coupon.min_order_cents:
        raise CouponRejected(
            CouponRejection.MIN_ORDER,
            f"Pedido mínimo de {format_price(coupon.min_order_cents)} para este cupom",
        )

    if coupon.min_photos and item_count < coupon.min_photos:
        raise CouponRejected(
            CouponRejection.MIN_PHOTOS,
            f"Este cupom requer no mínimo {coupon.min_photos} fotos",
        )

    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        raise CouponRejected(CouponRejection.EXHAUSTED, "Este cupom atingiu o limite de usos")


class CouponCalculator:
    """
    Coupon state of one checkout session.

    Attributes:
        code_input (str): What the customer typed; cleared on acceptance.
        applied (AppliedCoupon | None): The accepted coupon, if any.
    """

    def __init__(self, client, clock=None):
        self.client = client
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.code_input = ""
        self.applied = None

    def validate_and_apply(self, code, cart):
        """
        Validates a coupon code against the current cart and keeps it.

        Args:
            code (str): Raw input; trimmed and uppercased before lookup.
            cart (CartStore): Source of total_cents and item_count.
        Returns:
            AppliedCoupon | None: The applied coupon, or None for empty input
                (rejected silently, without a lookup).
        Raises:
            CouponRejected: If the coupon does not exist or fails a rule.
        """
        self.code_input = code or ""
        normalized = self.code_input.strip().upper()
        if not normalized:
            return None

        try:
            coupon = self.client.fetch_active_coupon(normalized)
        except BackendError as e:
            log.warning(f"[Coupon: {normalized}] Lookup failed: {e}")
            raise CouponRejected(CouponRejection.UNAVAILABLE, "Erro ao validar cupom. Tente novamente.") from e

        try:
            check_coupon(coupon, cart.total_cents, cart.item_count, self.clock())
        except CouponRejected as e:
            log.info(f"[Coupon: {normalized}] Rejected ({e.reason.value}).")
            raise

        self.applied = AppliedCoupon(
            id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
        )
        self.code_input = ""
        log.info(f"[Coupon: {normalized}] Applied ({coupon.discount_type.value} {coupon.discount_value}).")
        return self.applied

    def remove_coupon(self):
        """Forgets the applied coupon. The cart is not touched."""
        self.applied = None

    def discount_cents(self, total_cents: int) -> int:
        return compute_discount(self.applied, total_cents)

    def final_total_cents(self, total_cents: int) -> int:
        return final_total(self.applied, total_cents)
