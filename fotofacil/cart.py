"""
cart.py — Cart Store

Holds the photos a customer selected, shared by every view of the storefront
(photo grid, floating cart button, cart page, checkout). One CartStore
instance is created per session and handed to whoever needs it.

Persistence:
    Every mutation writes the full item list under CART_STORAGE_KEY.
    The document is versioned: {"version": 1, "items": [...]}. A bare list,
    the unversioned layout written by earlier releases, is still accepted.
    Anything unreadable degrades to an empty cart; storage errors are logged
    and never raised to the caller.
"""

import json
import logging
import threading
from collections import OrderedDict

from pydantic import ValidationError

from .models import CartItem

log = logging.getLogger(__name__)

CART_STORAGE_KEY = "fotofacil_cart"
CART_SCHEMA_VERSION = 1


class CartStore:
    """
    Ordered collection of CartItem, at most one per photo_id.

    Mutations may come from request handlers and from the payment poller
    thread (clearing the cart once an order is paid), so they are serialized
    with a lock. Reads return snapshots.
    """

    def __init__(self, storage):
        self._storage = storage
        self._lock = threading.RLock()
        self._items = self._load()

    # --- persistence ---

    def _load(self):
        try:
            raw = self._storage.get_item(CART_STORAGE_KEY)
        except (OSError, ValueError) as e:
            log.warning(f"Could not read persisted cart, starting empty: {e}")
            return []
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("Persisted cart is not valid JSON, starting empty.")
            return []

        if isinstance(data, dict):
            records = data.get("items")
        else:
            records = data  # legacy unversioned list
        if not isinstance(records, list):
            log.warning("Persisted cart has an unexpected shape, starting empty.")
            return []

        items = OrderedDict()
        for record in records:
            try:
                item = CartItem.model_validate(record)
            except ValidationError:
                log.warning(f"Dropping unreadable cart entry: {record!r}")
                continue
            items.setdefault(item.photo_id, item)
        return list(items.values())

    def _persist(self):
        document = {
            "version": CART_SCHEMA_VERSION,
            "items": [item.model_dump(by_alias=True) for item in self._items],
        }
        try:
            self._storage.set_item(CART_STORAGE_KEY, json.dumps(document, ensure_ascii=False))
        except (OSError, ValueError) as e:
            log.error(f"Could not persist cart ({len(self._items)} items): {e}")

    # --- mutations ---

    def add_item(self, item: CartItem) -> bool:
        """
        Adds the item unless a CartItem with the same photo_id is present.

        Returns:
            bool: True if the item was added, False if it was already there.
        """
        with self._lock:
            if self._contains(item.photo_id):
                return False
            self._items.append(item)
            self._persist()
        log.debug(f"Added photo {item.photo_id} to cart.")
        return True

    def remove_item(self, photo_id: str) -> bool:
        """Removes the matching item. Absent ids are ignored."""
        with self._lock:
            remaining = [i for i in self._items if i.photo_id != photo_id]
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
            self._persist()
        log.debug(f"Removed photo {photo_id} from cart.")
        return True

    def clear_cart(self):
        with self._lock:
            self._items = []
            self._persist()
        log.info("Cart cleared.")

    # --- queries ---

    def _contains(self, photo_id):
        return any(i.photo_id == photo_id for i in self._items)

    def is_in_cart(self, photo_id: str) -> bool:
        with self._lock:
            return self._contains(photo_id)

    @property
    def items(self):
        with self._lock:
            return list(self._items)

    @property
    def item_count(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def total_cents(self) -> int:
        with self._lock:
            return sum(i.price_cents for i in self._items)

    def grouped_by_event(self):
        """Returns an ordered mapping event_id -> items, in first-seen order."""
        groups = OrderedDict()
        for item in self.items:
            groups.setdefault(item.event_id, []).append(item)
        return groups
