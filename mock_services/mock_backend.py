"""
mock_backend.py — Mock Implementation of the FotoFácil Backend (REST API)

This module provides a simulated backend-as-a-service for local runs and
tests. It exposes a FastAPI application with the same routes and payloads as
the hosted data store and edge functions, keeping all data in memory.

Simulation Scenarios:
    • Coupon lookup by code (data-store style filters: code=eq.X)
    • Order creation with server-side re-pricing and coupon re-validation
    • PIX payment pending until approved via /mock/orders/{id}/approve
    • Free orders (final total 0) marked paid immediately
    • Delivery links that expire 24 hours after payment
    • Customer lookup by CPF (stored only as a salted hash) or e-mail

Endpoints:
    GET  /rest/v1/fotofacil_coupons
    POST /functions/v1/fotofacil-create-order
    POST /functions/v1/fotofacil-check-payment
    POST /functions/v1/fotofacil-validate-delivery
    POST /functions/v1/fotofacil-lookup-orders
    POST /mock/orders/{order_id}/approve
    GET  /mock/assets/{photo_id}.jpg

Port:
    Default: 54321 (HTTP)
"""

import hashlib
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from fotofacil.coupons import CouponRejected, check_coupon, final_total
from fotofacil.cpf import only_digits
from fotofacil.models import AppliedCoupon, Coupon

app = FastAPI(title="Mock FotoFácil Backend")
log = logging.getLogger("mock_backend")

CPF_SALT = "fotofacil_salt_2024"
DELIVERY_TTL = timedelta(hours=24)
TOKEN_ALPHABET = string.ascii_letters + string.digits

# In-memory tables
COUPONS = {}      # id -> Coupon
PHOTOS = {}       # id -> {"url", "thumb_url", "price_cents"}
CUSTOMERS = {}    # id -> {"name", "email", "cpf_hash"}
ORDERS = {}       # id -> order dict
ORDER_ITEMS = {}  # order id -> [item dict]


def reset_state():
    """Empties every table (used between tests)."""
    for table in (COUPONS, PHOTOS, CUSTOMERS, ORDERS, ORDER_ITEMS):
        table.clear()


def add_coupon(**fields) -> Coupon:
    fields.setdefault("id", str(uuid.uuid4()))
    coupon = Coupon(**fields)
    COUPONS[coupon.id] = coupon
    return coupon


def add_photo(photo_id, price_cents, url=None, thumb_url=None):
    PHOTOS[photo_id] = {
        "url": url or f"http://testserver/mock/assets/{photo_id}.jpg",
        "thumb_url": thumb_url,
        "price_cents": price_cents,
    }


def hash_cpf(cpf_digits):
    return hashlib.sha256((cpf_digits + CPF_SALT).encode()).hexdigest()


def generate_token(length=64):
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def _now():
    return datetime.now(timezone.utc)


def _error(status_code, message):
    return JSONResponse(status_code=status_code, content={"error": message})


def _strip_eq(value):
    if value and value.startswith("eq."):
        return value[3:]
    return value


class CustomerIn(BaseModel):
    name: str = ""
    email: str = ""
    cpf: str = ""


class ItemIn(BaseModel):
    photo_id: str
    title: Optional[str] = None
    price_cents: int = 0


class CreateOrderIn(BaseModel):
    customer: CustomerIn
    items: List[ItemIn] = []
    couponId: Optional[str] = None


class OrderIdIn(BaseModel):
    orderId: str = ""


class DeliveryIn(BaseModel):
    orderId: str = ""
    token: str = ""


class LookupIn(BaseModel):
    type: str = ""
    value: str = ""


@app.get("/rest/v1/fotofacil_coupons")
def list_coupons(request: Request):
    """Filters coupons the way the data store does: ?code=eq.X&is_active=eq.true."""
    code = _strip_eq(request.query_params.get("code"))
    is_active = _strip_eq(request.query_params.get("is_active"))
    rows = []
    for coupon in COUPONS.values():
        if code is not None and coupon.code != code:
            continue
        if is_active is not None and coupon.is_active != (is_active == "true"):
            continue
        rows.append(coupon.model_dump(mode="json"))
    limit = request.query_params.get("limit")
    if limit:
        rows = rows[: int(limit)]
    return rows


@app.post("/functions/v1/fotofacil-create-order", status_code=201)
def create_order(body: CreateOrderIn):
    """
    Creates customer, order and order items, then a (simulated) PIX charge.

    Prices are taken from the photo catalogue when the photo is known; the
    client's price snapshot is only used for unknown photos. The coupon is
    re-validated against the re-priced order.
    """
    customer = body.customer
    if not customer.name or not customer.email or not customer.cpf:
        return _error(400, "Dados do cliente incompletos")
    if not body.items:
        return _error(400, "Nenhum item no pedido")
    cpf_digits = only_digits(customer.cpf)
    if len(cpf_digits) != 11:
        return _error(400, "CPF inválido")

    priced = []
    for item in body.items:
        photo = PHOTOS.get(item.photo_id)
        price = photo["price_cents"] if photo else item.price_cents
        priced.append((item, price))
    total_cents = sum(price for _, price in priced)
    if total_cents <= 0:
        return _error(400, "Valor do pedido inválido")

    applied = None
    if body.couponId:
        coupon = COUPONS.get(body.couponId)
        try:
            check_coupon(coupon, total_cents, len(priced), _now())
        except CouponRejected as e:
            return _error(400, e.message)
        coupon.current_uses += 1
        applied = AppliedCoupon(
            id=coupon.id, code=coupon.code,
            discount_type=coupon.discount_type, discount_value=coupon.discount_value,
        )
    charge_cents = final_total(applied, total_cents)

    cpf_hash = hash_cpf(cpf_digits)
    customer_id = next((cid for cid, c in CUSTOMERS.items() if c["cpf_hash"] == cpf_hash), None)
    if customer_id is None:
        customer_id = str(uuid.uuid4())
        CUSTOMERS[customer_id] = {
            "name": customer.name,
            "email": customer.email.lower(),
            "cpf_hash": cpf_hash,
        }

    order_id = str(uuid.uuid4())
    paid = charge_cents == 0
    ORDERS[order_id] = {
        "id": order_id,
        "customer_id": customer_id,
        "total_cents": charge_cents,
        "currency": "BRL",
        "status": "paid" if paid else "pending",
        "coupon_id": applied.id if applied else None,
        "delivery_token": generate_token(),
        "delivery_expires_at": _now() + DELIVERY_TTL,
        "delivered_at": None,
        "created_at": _now(),
    }
    ORDER_ITEMS[order_id] = [
        {
            "id": str(uuid.uuid4()),
            "photo_id": item.photo_id,
            "title_snapshot": item.title or "Foto",
            "price_cents_snapshot": price,
        }
        for item, price in priced
    ]
    log.info(f"[MOCK] Order {order_id} created, charge {charge_cents} cents, paid={paid}.")

    pix = "" if paid else f"00020126580014br.gov.bcb.pix0136{order_id}5204000053039865802BR"
    return {
        "success": True,
        "orderId": order_id,
        "qrCode": pix,
        "qrCodeBase64": "",
        "pixCopiaCola": pix,
        "expiresAt": None if paid else (_now() + timedelta(minutes=30)).isoformat(),
    }


@app.post("/functions/v1/fotofacil-check-payment")
def check_payment(body: OrderIdIn):
    if not body.orderId:
        return _error(400, "orderId é obrigatório")
    order = ORDERS.get(body.orderId)
    if order is None:
        return _error(404, "Pedido não encontrado")
    if order["status"] == "paid":
        return {"status": "paid", "deliveryToken": order["delivery_token"]}
    return {"status": order["status"]}


@app.post("/mock/orders/{order_id}/approve")
def approve_payment(order_id: str):
    """Simulates the PIX settlement notification."""
    order = ORDERS.get(order_id)
    if order is None:
        return _error(404, "Pedido não encontrado")
    order["status"] = "paid"
    order["delivery_expires_at"] = _now() + DELIVERY_TTL
    return {"status": "paid"}


@app.post("/functions/v1/fotofacil-validate-delivery")
def validate_delivery(body: DeliveryIn):
    if not body.orderId or not body.token:
        return _error(400, "Link inválido")
    order = ORDERS.get(body.orderId)
    if order is None:
        return _error(404, "Pedido não encontrado")
    if not secrets.compare_digest(order["delivery_token"], body.token):
        return _error(403, "Link inválido")
    if order["status"] != "paid":
        return _error(403, "Pagamento não confirmado")
    expires = order["delivery_expires_at"]
    if expires is not None and _now() > expires:
        return _error(403, "Este link expirou. Entre em contato com o suporte para solicitar um novo link.")

    delivered_at = order["delivered_at"]
    if delivered_at is None:
        order["delivered_at"] = _now()

    items = []
    for item in ORDER_ITEMS.get(order["id"], []):
        photo = PHOTOS.get(item["photo_id"])
        items.append({
            "id": item["id"],
            "title_snapshot": item["title_snapshot"],
            "photo": {"id": item["photo_id"], "url": photo["url"], "thumb_url": photo["thumb_url"]}
            if photo else None,
        })
    return {
        "success": True,
        "order": {
            "id": order["id"],
            "status": order["status"],
            "delivery_expires_at": expires.isoformat() if expires else None,
            "delivered_at": delivered_at.isoformat() if delivered_at else None,
        },
        "items": items,
    }


@app.post("/functions/v1/fotofacil-lookup-orders")
def lookup_orders(body: LookupIn):
    if not body.type or not body.value:
        return _error(400, "Tipo e valor são obrigatórios")
    if body.type == "cpf":
        digits = only_digits(body.value)
        if len(digits) != 11:
            return _error(400, "CPF inválido")
        field, expected = "cpf_hash", hash_cpf(digits)
    elif body.type == "email":
        field, expected = "email", body.value.lower()
    else:
        return _error(400, 'Tipo inválido. Use "cpf" ou "email"')

    customer_id = next((cid for cid, c in CUSTOMERS.items() if c[field] == expected), None)
    if customer_id is None:
        return {"orders": []}

    orders = sorted(
        (o for o in ORDERS.values() if o["customer_id"] == customer_id),
        key=lambda o: o["created_at"],
        reverse=True,
    )
    return {
        "orders": [
            {
                "id": o["id"],
                "status": o["status"],
                "total_cents": o["total_cents"],
                "created_at": o["created_at"].isoformat(),
                "delivery_token": o["delivery_token"],
                "delivery_expires_at": o["delivery_expires_at"].isoformat(),
                "items_count": len(ORDER_ITEMS.get(o["id"], [])),
            }
            for o in orders
        ]
    }


@app.get("/mock/assets/{photo_id}.jpg")
def get_asset(photo_id: str):
    if photo_id not in PHOTOS:
        return Response(status_code=404)
    return Response(content=f"JPEG:{photo_id}".encode(), media_type="image/jpeg")


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=54321)
