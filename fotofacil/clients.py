"""
This module provides the communication client for the backend-as-a-service
that owns all FotoFácil data:
- Data store (REST, table queries) for coupon records
- Edge functions (REST) for order creation, payment status, delivery
  validation and order lookup
- Plain HTTP GET for downloading purchased assets
All protocol and error handling lives here; callers only see models or a
BackendError.
"""

import logging
import os

import httpx
from pydantic import ValidationError

from .cpf import mask_cpf
from .models import (
    Coupon,
    CreateOrderRequest,
    DeliveryBundle,
    OrderSummary,
    PaymentData,
    PaymentStatus,
)

# Service address and public key (normally from env vars)
BACKEND_URL = os.environ.get("FOTOFACIL_BACKEND_URL", "http://localhost:54321")
ANON_KEY = os.environ.get("FOTOFACIL_ANON_KEY", "")

log = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """
    Any failure talking to the backend.

    Attributes:
        server_message (str | None): The `error` text sent by the backend, if any.
            It is written for end users and can be shown as-is.
        status_code (int | None): HTTP status, when a response was received.
    """

    def __init__(self, message, server_message=None, status_code=None):
        super().__init__(message)
        self.server_message = server_message
        self.status_code = status_code


def _error_field(response):
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None


class BackendClient:
    """
    Client for the FotoFácil backend (data store + edge functions).

    An existing httpx.Client may be injected (tests pass the mock backend's
    TestClient); otherwise one is created against BACKEND_URL.
    """

    def __init__(self, client=None, base_url=None, anon_key=None):
        """
        Initializes the HTTP client with timeout configuration and API key headers.
        """
        key = ANON_KEY if anon_key is None else anon_key
        if client is None:
            timeout_config = httpx.Timeout(5.0, read=8.0)
            client = httpx.Client(base_url=base_url or BACKEND_URL, timeout=timeout_config)
        if key:
            client.headers.update({"apikey": key, "Authorization": f"Bearer {key}"})
        self.client = client

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # --- transport ---

    def _send(self, method, url, context, **kwargs):
        """
        Sends one request and returns the decoded JSON body.

        Raises:
            BackendError: On timeouts, connection errors, 4xx/5xx responses,
                undecodable bodies and bodies carrying an `error` field.
        """
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            log.error(f"{context} Backend timeout ({type(e).__name__}).")
            raise BackendError(f"{context} timed out") from e
        except httpx.HTTPStatusError as e:
            server_message = _error_field(e.response)
            log.warning(f"{context} HTTP {e.response.status_code}: {server_message or e}")
            raise BackendError(
                f"{context} failed with HTTP {e.response.status_code}",
                server_message=server_message,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            log.error(f"{context} Backend unreachable: {e}")
            raise BackendError(f"{context} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            log.error(f"{context} Backend returned a non-JSON body.")
            raise BackendError(f"{context} returned an invalid body", status_code=response.status_code) from e

        if isinstance(data, dict) and data.get("error"):
            log.warning(f"{context} Backend reported an error: {data['error']}")
            raise BackendError(
                f"{context} rejected: {data['error']}",
                server_message=str(data["error"]),
                status_code=response.status_code,
            )
        return data

    def _invoke(self, function, payload, context):
        return self._send("POST", f"/functions/v1/{function}", context, json=payload)

    def _parse(self, model, data, context):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            log.error(f"{context} Unexpected response shape: {e}")
            raise BackendError(f"{context} returned an unexpected response") from e

    # --- data store ---

    def fetch_active_coupon(self, code: str):
        """
        Looks up an active coupon by its (already normalized) code.

        Returns:
            Coupon | None: The coupon, or None when no active row matches.
        """
        context = f"[Coupon: {code}]"
        data = self._send(
            "GET",
            "/rest/v1/fotofacil_coupons",
            context,
            params={"select": "*", "code": f"eq.{code}", "is_active": "eq.true", "limit": "1"},
        )
        if not isinstance(data, list):
            raise BackendError(f"{context} returned an unexpected response")
        if not data:
            return None
        return self._parse(Coupon, data[0], context)

    # --- edge functions ---

    def create_order(self, request: CreateOrderRequest) -> PaymentData:
        """
        Creates an order and its PIX charge.

        Args:
            request (CreateOrderRequest): Customer, item snapshots and optional coupon id.
        Returns:
            PaymentData: Order id plus QR code / copy-paste payment string.
        Raises:
            BackendError: If the order could not be created.
        """
        context = f"[Checkout: {request.customer.email}]"
        log.info(
            f"{context} Creating order with {len(request.items)} item(s), "
            f"cpf={mask_cpf(request.customer.cpf)}, coupon={request.coupon_id}."
        )
        data = self._invoke(
            "fotofacil-create-order",
            request.model_dump(mode="json", by_alias=True),
            context,
        )
        payment = self._parse(PaymentData, data, context)
        log.info(f"[Order: {payment.order_id}] Order created, awaiting PIX payment.")
        return payment

    def check_payment(self, order_id: str) -> PaymentStatus:
        context = f"[Order: {order_id}]"
        data = self._invoke("fotofacil-check-payment", {"orderId": order_id}, context)
        return self._parse(PaymentStatus, data, context)

    def validate_delivery(self, order_id: str, token: str) -> DeliveryBundle:
        context = f"[Order: {order_id}]"
        data = self._invoke("fotofacil-validate-delivery", {"orderId": order_id, "token": token}, context)
        return self._parse(DeliveryBundle, data, context)

    def lookup_orders(self, kind: str, value: str):
        context = f"[Lookup: {kind}]"
        data = self._invoke("fotofacil-lookup-orders", {"type": kind, "value": value}, context)
        orders = data.get("orders") if isinstance(data, dict) else None
        if not isinstance(orders, list):
            raise BackendError(f"{context} returned an unexpected response")
        return [self._parse(OrderSummary, o, context) for o in orders]

    # --- assets ---

    def fetch_asset(self, url: str) -> bytes:
        """Downloads a purchased asset (absolute URL, signed by the backend)."""
        context = f"[Asset: {url}]"
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"{context} Download failed: {e}")
            raise BackendError(f"{context} download failed: {e}") from e
        return response.content
