"""
checkout.py — Checkout Orchestration for a Storefront Session

This module contains the checkout flow of one customer session. It drives the
customer from the cart to the PIX payment and hands over to the delivery
page once the payment is confirmed.

Flow Overview:
1. CART      Review the selected photos and apply a coupon.
2. CHECKOUT  Capture name, e-mail and CPF; create the order.
3. PAYMENT   Show the PIX QR code and wait for confirmation (Payment Poller).
             On confirmation: clear the cart and navigate to
             /fotofacil/entrega/<order_id>/<delivery_token>.

CHECKOUT -> CART is possible through back(); PAYMENT is only left by
restarting the session. Validation and backend failures never raise: they
are reported through the Notifier and leave the session in a step the
customer can retry from.
"""

import logging
import threading
from enum import Enum

from .clients import BackendError
from .coupons import CouponCalculator, CouponRejected
from .cpf import only_digits, validate_cpf
from .formatting import format_price
from .models import CheckoutFormData, CreateOrderRequest, CustomerPayload, OrderItemPayload
from .poller import POLL_INTERVAL, POLL_TIMEOUT, PaymentPoller

log = logging.getLogger(__name__)

DELIVERY_ROUTE = "/fotofacil/entrega/{order_id}/{token}"


class CheckoutStep(str, Enum):
    CART = "cart"
    CHECKOUT = "checkout"
    PAYMENT = "payment"


class CheckoutError(RuntimeError):
    """An operation was called in a step where it is not allowed."""


def validate_checkout_form(form: CheckoutFormData):
    """
    Checks the customer data in display order.

    Returns:
        str | None: The message for the first failing field, or None if valid.
    """
    if not form.name.strip():
        return "Por favor, informe seu nome completo"
    email = form.email.strip()
    if not email or "@" not in email:
        return "Por favor, informe um e-mail válido"
    if not validate_cpf(form.cpf):
        return "Por favor, informe um CPF válido"
    return None


def build_order_request(form: CheckoutFormData, items, applied_coupon=None) -> CreateOrderRequest:
    return CreateOrderRequest(
        customer=CustomerPayload(
            name=form.name.strip(),
            email=form.email.strip().lower(),
            cpf=only_digits(form.cpf),
        ),
        items=[
            OrderItemPayload(photo_id=i.photo_id, title=i.title, price_cents=i.price_cents)
            for i in items
        ],
        coupon_id=applied_coupon.id if applied_coupon else None,
    )


class CheckoutOrchestrator:
    """
    State machine CART -> CHECKOUT -> PAYMENT for one session.

    Args:
        cart (CartStore): The session's shared cart.
        client (BackendClient): Order, payment and coupon endpoints.
        notifier (Notifier): Receives every user-facing message.
        navigate (callable): Called once with the delivery route after payment.
        coupons (CouponCalculator, optional): Defaults to one bound to `client`.
        poller_factory (callable, optional): Builds the PaymentPoller.
    """

    def __init__(self, cart, client, notifier, navigate, coupons=None,
                 poll_interval=POLL_INTERVAL, poll_timeout=POLL_TIMEOUT, poller_factory=PaymentPoller):
        self.cart = cart
        self.client = client
        self.notifier = notifier
        self.navigate = navigate
        self.coupons = coupons or CouponCalculator(client)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.poller_factory = poller_factory

        self.step = CheckoutStep.CART
        self.form = CheckoutFormData()
        self.loading = False
        self.last_failure = None  # "validation" | "backend" after a failed submit
        self.payment = None
        self.payment_total_cents = None
        self.delivery_path = None
        self.pending_expired = False
        self._poller = None
        self._lock = threading.RLock()

    # --- derived totals ---

    def summary(self):
        total = self.cart.total_cents
        applied = self.coupons.applied
        return {
            "item_count": self.cart.item_count,
            "total_cents": total,
            "discount_cents": self.coupons.discount_cents(total),
            "final_total_cents": self.coupons.final_total_cents(total),
            "coupon": applied.model_dump(mode="json", by_alias=True) if applied else None,
        }

    # --- coupon widget ---

    def apply_coupon(self, code) -> bool:
        try:
            applied = self.coupons.validate_and_apply(code, self.cart)
        except CouponRejected as e:
            self.notifier.error(e.message)
            return False
        if applied is None:
            return False
        self.notifier.success(f"Cupom {applied.code} aplicado!")
        return True

    def remove_coupon(self):
        self.coupons.remove_coupon()
        self.notifier.info("Cupom removido")

    # --- transitions ---

    def proceed(self) -> bool:
        """CART -> CHECKOUT. Blocked on an empty cart."""
        with self._lock:
            if self.step != CheckoutStep.CART:
                raise CheckoutError(f"Cannot continue from step '{self.step.value}'")
            if self.cart.item_count == 0:
                self.notifier.error("Seu carrinho está vazio")
                return False
            self.step = CheckoutStep.CHECKOUT
            return True

    def back(self):
        """CHECKOUT -> CART."""
        with self._lock:
            if self.step != CheckoutStep.CHECKOUT:
                raise CheckoutError(f"Cannot go back from step '{self.step.value}'")
            self.step = CheckoutStep.CART

    def submit(self, form: CheckoutFormData) -> bool:
        """
        Validates the customer data and creates the order.

        On success the session enters PAYMENT and the payment confirmation
        starts. On any failure the session stays in CHECKOUT.

        Returns:
            bool: True if the order was created.
        """
        with self._lock:
            if self.step != CheckoutStep.CHECKOUT:
                raise CheckoutError(f"Cannot submit from step '{self.step.value}'")
            if self.loading:
                return False
            self.form = form
            self.last_failure = None

            message = validate_checkout_form(form)
            if message:
                self.last_failure = "validation"
                self.notifier.error(message)
                return False
            if self.cart.item_count == 0:
                self.last_failure = "validation"
                self.notifier.error("Seu carrinho está vazio")
                return False

            items = self.cart.items
            applied = self.coupons.applied
            request = build_order_request(form, items, applied)
            total = sum(i.price_cents for i in items)
            self.loading = True

        try:
            payment = self.client.create_order(request)
        except BackendError as e:
            log.error(f"[Checkout] Order creation failed: {e}")
            self.last_failure = "backend"
            self.notifier.error(e.server_message or "Erro ao processar pagamento. Tente novamente.")
            return False
        finally:
            self.loading = False

        with self._lock:
            self.payment = payment
            self.payment_total_cents = self.coupons.final_total_cents(total)
            self.step = CheckoutStep.PAYMENT
        log.info(
            f"[Order: {payment.order_id}] Awaiting payment of {format_price(self.payment_total_cents)}."
        )
        self._start_confirmation()
        return True

    # --- payment confirmation ---

    def _start_confirmation(self):
        poller = self.poller_factory(
            self.client,
            self.payment.order_id,
            on_paid=self._on_paid,
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            on_timeout=self._on_poll_timeout,
        )
        with self._lock:
            self._poller = poller

        if self.payment_total_cents == 0:
            if poller.confirm_once():
                return
            log.warning(f"[Order: {self.payment.order_id}] Free order not confirmed yet, falling back to polling.")
        poller.start()

    def _on_paid(self, delivery_token):
        with self._lock:
            if self.delivery_path is not None or self.payment is None:
                return
            self.delivery_path = DELIVERY_ROUTE.format(order_id=self.payment.order_id, token=delivery_token)
            self.cart.clear_cart()
            self.coupons.remove_coupon()
        self.notifier.success("Pagamento confirmado!")
        self.navigate(self.delivery_path)

    def _on_poll_timeout(self):
        self.pending_expired = True
        self.notifier.info(
            "Ainda não recebemos a confirmação do pagamento. "
            "Você receberá o link por e-mail assim que ele for aprovado."
        )

    # --- lifecycle ---

    def restart(self):
        """Starts a new checkout: back to CART, coupon cleared, polling cancelled."""
        self.close()
        with self._lock:
            self.step = CheckoutStep.CART
            self.form = CheckoutFormData()
            self.payment = None
            self.payment_total_cents = None
            self.delivery_path = None
            self.pending_expired = False
            self.coupons.remove_coupon()

    def close(self):
        """Tears down background polling (the session is going away)."""
        with self._lock:
            poller, self._poller = self._poller, None
        if poller is not None:
            poller.stop()

    @property
    def poller(self):
        return self._poller

    @property
    def polling(self):
        poller = self._poller
        return bool(poller and poller.running)
