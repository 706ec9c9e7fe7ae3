"""
notifications.py — Transient User-Visible Notifications

Validation and remote errors are never raised to the page; they are queued
here as short messages (the storefront returns and drains them with each
response). Every notification is also logged.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str  # "success" | "info" | "error"
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"level": self.level, "message": self.message}


class Notifier:
    def __init__(self):
        self._pending = []
        self._lock = threading.Lock()

    def _push(self, level, message):
        with self._lock:
            self._pending.append(Notification(level, message))
        log.info(f"[Notify:{level}] {message}")

    def success(self, message):
        self._push("success", message)

    def info(self, message):
        self._push("info", message)

    def error(self, message):
        self._push("error", message)

    @property
    def pending(self):
        with self._lock:
            return list(self._pending)

    def drain(self):
        """Returns and forgets all pending notifications."""
        with self._lock:
            pending, self._pending = self._pending, []
        return pending
