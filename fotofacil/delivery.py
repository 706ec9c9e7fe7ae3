"""
delivery.py — Delivery Gate for Purchased Photos

A paid order is delivered through a link carrying the order id and a
time-limited delivery token. The gate validates the pair with the backend
and only then exposes the order's photos for download.

An invalid or expired link is terminal: the token cannot be re-derived on
this side, so there is no retry.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .clients import BackendError
from .models import DeliveryItem, DeliveryOrder

log = logging.getLogger(__name__)

DOWNLOAD_DELAY = 0.5  # seconds between bulk downloads
EXPIRED_TITLE = "Link Expirado ou Inválido"
GENERIC_ERROR = "Erro ao carregar pedido. Por favor, entre em contato com o suporte."

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


class DeliveryState(str, Enum):
    READY = "ready"
    EXPIRED = "expired"


@dataclass
class DeliveryView:
    state: DeliveryState
    order: Optional[DeliveryOrder] = None
    items: List[DeliveryItem] = field(default_factory=list)
    title: Optional[str] = None
    error: Optional[str] = None

    @property
    def downloadable(self):
        return [i for i in self.items if i.photo and i.photo.url]


def download_filename(title):
    name = _UNSAFE_FILENAME.sub("_", title or "").strip(" ._")
    return f"{name or 'foto'}.jpg"


def unique_target(directory, filename) -> Path:
    """Returns directory/filename, or "name (1).jpg", "name (2).jpg"... if taken."""
    target = Path(directory) / filename
    n = 1
    while target.exists():
        target = target.with_name(f"{Path(filename).stem} ({n}){target.suffix}")
        n += 1
    return target


class DeliveryGate:
    def __init__(self, client, notifier, sleep=time.sleep, delay=DOWNLOAD_DELAY):
        self.client = client
        self.notifier = notifier
        self.sleep = sleep
        self.delay = delay
        self.view = None

    def open(self, order_id, token) -> DeliveryView:
        """
        Validates the delivery link and loads the order's items.

        Returns:
            DeliveryView: READY with the order and items, or EXPIRED with the
                reason to show. Never raises for backend failures.
        """
        if not order_id or not token:
            self.view = DeliveryView(DeliveryState.EXPIRED, title=EXPIRED_TITLE, error="Link inválido")
            return self.view

        try:
            bundle = self.client.validate_delivery(order_id, token)
        except BackendError as e:
            log.warning(f"[Order: {order_id}] Delivery link rejected: {e}")
            self.view = DeliveryView(
                DeliveryState.EXPIRED, title=EXPIRED_TITLE, error=e.server_message or GENERIC_ERROR
            )
            return self.view

        log.info(f"[Order: {order_id}] Delivery link valid, {len(bundle.items)} item(s).")
        self.view = DeliveryView(DeliveryState.READY, order=bundle.order, items=list(bundle.items))
        return self.view

    def _require_ready(self):
        if self.view is None or self.view.state != DeliveryState.READY:
            raise RuntimeError("Delivery link has not been validated")

    def download(self, item: DeliveryItem, directory) -> Optional[Path]:
        """
        Saves one item as <title>.jpg in `directory`. An existing file is never
        overwritten; the new one gets a numeric suffix instead.

        Returns:
            Path | None: The written file, or None if the download failed
                (a per-item error notification is emitted instead).
        """
        self._require_ready()
        if not item.photo or not item.photo.url:
            self.notifier.error("Erro ao baixar arquivo")
            return None

        try:
            content = self.client.fetch_asset(item.photo.url)
            Path(directory).mkdir(parents=True, exist_ok=True)
            target = unique_target(directory, download_filename(item.title_snapshot))
            with open(target, "xb") as fh:
                fh.write(content)
        except (BackendError, OSError) as e:
            log.error(f"[Order: {self.view.order.id}] Download of item {item.id} failed: {e}")
            self.notifier.error("Erro ao baixar arquivo")
            return None

        self.notifier.success("Download iniciado!")
        return target

    def download_all(self, directory):
        """
        Downloads every item with a URL, one after the other.

        A fixed delay separates downloads. Failures are reported per item and
        do not stop the remaining downloads; one completion notice is emitted
        at the end.

        Returns:
            list[Path]: The files that were written.
        """
        self._require_ready()
        self.notifier.info("Iniciando downloads...")
        saved = []
        for item in self.view.downloadable:
            path = self.download(item, directory)
            if path is not None:
                saved.append(path)
            self.sleep(self.delay)
        self.notifier.success("Todos os downloads concluídos!")
        return saved
