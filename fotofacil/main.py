"""
main.py — FastAPI Entry Point for the FotoFácil Storefront

This module provides the HTTP interface of a storefront session. It is a thin
layer over the cart, coupon, checkout and delivery components: every
endpoint forwards to one operation and answers with the session state plus
the notifications produced along the way.

Responsibilities:
    • Cart operations (add / remove / clear / coupon)
    • Checkout transitions (continue / back / submit / restart)
    • Delivery link validation and downloads
    • Order lookup by CPF or e-mail
    • Health information

One process serves one storefront session (one customer, like one browser
tab). All components share a single CartStore instance.
"""

import os
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .cart import CartStore
from .checkout import CheckoutError, CheckoutOrchestrator
from .clients import BackendClient
from .delivery import DeliveryGate, DeliveryState
from .logging_config import get_logger, setup_logging
from .models import CartItem, CheckoutFormData
from .notifications import Notifier
from .orders import OrderLookup, delivery_path
from .storage import JsonFileStorage

CART_PATH = os.environ.get("FOTOFACIL_CART_PATH", ".fotofacil_cart.json")
DOWNLOAD_DIR = os.environ.get("FOTOFACIL_DOWNLOAD_DIR", "downloads")

log = get_logger(__name__)


class StorefrontSession:
    """Wires the components of one customer session together."""

    def __init__(self, client=None, storage=None, poll_interval=None, sleep=None):
        self.client = client or BackendClient()
        self.notifier = Notifier()
        self.cart = CartStore(storage if storage is not None else JsonFileStorage(CART_PATH))
        self.location = "/fotofacil/carrinho"

        kwargs = {}
        if poll_interval is not None:
            kwargs["poll_interval"] = poll_interval
        self.checkout = CheckoutOrchestrator(
            self.cart, self.client, self.notifier, navigate=self.navigate, **kwargs
        )
        gate_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.delivery = DeliveryGate(self.client, self.notifier, **gate_kwargs)
        self.lookup = OrderLookup(self.client, self.notifier)

    def navigate(self, path):
        log.info(f"Navigating to {path}")
        self.location = path

    def close(self):
        self.checkout.close()
        self.client.close()

    def state(self):
        checkout = self.checkout
        payment = checkout.payment
        return {
            "step": checkout.step.value,
            "location": self.location,
            "items": [i.model_dump(by_alias=True) for i in self.cart.items],
            "groups": {
                event_id: [i.photo_id for i in items]
                for event_id, items in self.cart.grouped_by_event().items()
            },
            "summary": checkout.summary(),
            "payment": payment.model_dump(mode="json", by_alias=True) if payment else None,
            "paymentTotalCents": checkout.payment_total_cents,
            "polling": checkout.polling,
            "deliveryPath": checkout.delivery_path,
            "notifications": [n.to_dict() for n in self.notifier.drain()],
        }


class CouponRequest(BaseModel):
    code: str = ""


class LookupRequest(BaseModel):
    type: str
    value: str


class DownloadRequest(BaseModel):
    directory: Optional[str] = None  # relative to DOWNLOAD_DIR


def download_dir(subdir=None):
    """
    Resolves the folder downloads are written to.

    `subdir` is relative to DOWNLOAD_DIR. Returns None when it would
    escape DOWNLOAD_DIR (absolute paths, "..").
    """
    base = Path(DOWNLOAD_DIR).resolve()
    target = (base / (subdir or "")).resolve()
    if target != base and base not in target.parents:
        return None
    return target


def get_session(request: Request) -> StorefrontSession:
    return request.app.state.session


def create_app(session: Optional[StorefrontSession] = None) -> FastAPI:
    """
    Builds the storefront application.

    Args:
        session (StorefrontSession, optional): Injected in tests; created
            from environment configuration on startup otherwise.
    """
    app = FastAPI(title="FotoFácil Storefront")
    app.state.session = session

    @app.on_event("startup")
    def on_startup():
        if app.state.session is None:
            app.state.session = StorefrontSession()
        log.info("Storefront session started.")

    @app.on_event("shutdown")
    def on_shutdown():
        if app.state.session is not None:
            app.state.session.close()
        log.info("Storefront session closed.")

    # --- cart ---

    @app.get("/cart")
    def get_cart(session: StorefrontSession = Depends(get_session)):
        return session.state()

    @app.post("/cart/items")
    def add_item(item: CartItem, session: StorefrontSession = Depends(get_session)):
        session.cart.add_item(item)
        return session.state()

    @app.delete("/cart/items/{photo_id}")
    def remove_item(photo_id: str, session: StorefrontSession = Depends(get_session)):
        session.cart.remove_item(photo_id)
        return session.state()

    @app.delete("/cart")
    def clear_cart(session: StorefrontSession = Depends(get_session)):
        session.cart.clear_cart()
        return session.state()

    @app.post("/cart/coupon")
    def apply_coupon(body: CouponRequest, session: StorefrontSession = Depends(get_session)):
        if not session.checkout.apply_coupon(body.code) and body.code.strip():
            return JSONResponse(status_code=400, content=session.state())
        return session.state()

    @app.delete("/cart/coupon")
    def remove_coupon(session: StorefrontSession = Depends(get_session)):
        session.checkout.remove_coupon()
        return session.state()

    # --- checkout ---

    def _transition(operation, *args):
        try:
            return operation(*args)
        except CheckoutError as e:
            raise HTTPException(status_code=409, detail=str(e))

    @app.get("/checkout")
    def get_checkout(session: StorefrontSession = Depends(get_session)):
        return session.state()

    @app.post("/checkout/continue")
    def continue_checkout(session: StorefrontSession = Depends(get_session)):
        if not _transition(session.checkout.proceed):
            return JSONResponse(status_code=400, content=session.state())
        return session.state()

    @app.post("/checkout/back")
    def back_to_cart(session: StorefrontSession = Depends(get_session)):
        _transition(session.checkout.back)
        return session.state()

    @app.post("/checkout/submit")
    def submit_checkout(form: CheckoutFormData, session: StorefrontSession = Depends(get_session)):
        if not _transition(session.checkout.submit, form):
            status = 502 if session.checkout.last_failure == "backend" else 400
            return JSONResponse(status_code=status, content=session.state())
        return session.state()

    @app.post("/checkout/restart")
    def restart_checkout(session: StorefrontSession = Depends(get_session)):
        session.checkout.restart()
        session.location = "/fotofacil/carrinho"
        return session.state()

    # --- delivery ---

    def _delivery_body(session, view):
        return {
            "state": view.state.value,
            "title": view.title,
            "error": view.error,
            "order": view.order.model_dump(mode="json") if view.order else None,
            "items": [i.model_dump(mode="json") for i in view.items],
            "notifications": [n.to_dict() for n in session.notifier.drain()],
        }

    @app.get("/delivery/{order_id}/{token}")
    def open_delivery(order_id: str, token: str, session: StorefrontSession = Depends(get_session)):
        view = session.delivery.open(order_id, token)
        status = 200 if view.state == DeliveryState.READY else 403
        return JSONResponse(status_code=status, content=_delivery_body(session, view))

    @app.post("/delivery/{order_id}/{token}/download")
    def download_all(order_id: str, token: str, body: DownloadRequest,
                     session: StorefrontSession = Depends(get_session)):
        target = download_dir(body.directory)
        if target is None:
            raise HTTPException(status_code=400, detail=f"directory must stay inside {DOWNLOAD_DIR}")
        # The link is re-validated on every request; it may have expired since it was opened.
        view = session.delivery.open(order_id, token)
        if view.state != DeliveryState.READY:
            return JSONResponse(status_code=403, content=_delivery_body(session, view))
        saved = session.delivery.download_all(target)
        content = _delivery_body(session, view)
        content["saved"] = [str(p) for p in saved]
        return content

    # --- order lookup ---

    @app.post("/orders/lookup")
    def lookup_orders(body: LookupRequest, session: StorefrontSession = Depends(get_session)):
        try:
            orders = session.lookup.lookup(body.type, body.value)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "orders": [
                {**o.model_dump(mode="json"), "deliveryPath": delivery_path(o)}
                for o in orders
            ],
            "notifications": [n.to_dict() for n in session.notifier.drain()],
        }

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint for monitoring systems and container
        orchestrators.
        """
        return {"status": "ok"}

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
