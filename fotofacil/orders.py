"""Order lookup by CPF or e-mail ("Minhas Fotos")."""

import logging
from datetime import datetime, timezone

from .checkout import DELIVERY_ROUTE
from .clients import BackendError
from .cpf import only_digits

log = logging.getLogger(__name__)

LOOKUP_TYPES = ("cpf", "email")


def delivery_path(order, now=None):
    """Delivery route of a paid order whose link has not expired, else None."""
    if order.status != "paid" or not order.delivery_token:
        return None
    expires = order.delivery_expires_at
    if expires is not None:
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        if expires < (now or datetime.now(timezone.utc)):
            return None
    return DELIVERY_ROUTE.format(order_id=order.id, token=order.delivery_token)


class OrderLookup:
    def __init__(self, client, notifier):
        self.client = client
        self.notifier = notifier

    def lookup(self, kind, value):
        """
        Finds the orders of a customer.

        Returns:
            list[OrderSummary]: Possibly empty; errors are notified, not raised.
        """
        if kind not in LOOKUP_TYPES:
            raise ValueError(f"Unknown lookup type: {kind!r}")
        if not (value or "").strip():
            self.notifier.error("Por favor, informe o CPF ou e-mail")
            return []

        if kind == "cpf":
            value = only_digits(value)
            if len(value) != 11:
                self.notifier.error("CPF inválido")
                return []
        else:
            value = value.strip().lower()

        try:
            orders = self.client.lookup_orders(kind, value)
        except BackendError as e:
            log.warning(f"[Lookup: {kind}] Failed: {e}")
            self.notifier.error(e.server_message or "Erro ao buscar pedidos. Tente novamente.")
            return []

        if not orders:
            self.notifier.info("Nenhum pedido encontrado")
        return orders
