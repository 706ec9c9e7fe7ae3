"""
poller.py — Payment Confirmation Poller

After an order is created the customer pays the PIX charge outside the
storefront. The poller asks the payment-status endpoint every few seconds
until the order is reported as paid, then hands the delivery token to its
completion callback exactly once.

Behavior:
    • One daemon thread per poller; stop() cancels it (used when the
      checkout session is closed or restarted).
    • Failed ticks are logged and ignored; the next tick simply retries.
      Unexpected errors (including from the callback) are logged with a
      traceback and never end the thread silently.
    • Without a timeout the poller runs until paid or stopped. With one,
      it ends in TIMED_OUT and calls on_timeout.
    • confirm_once() is the single confirmation call used for free orders.
"""

import logging
import os
import threading
import time
from enum import Enum

from .clients import BackendError

POLL_INTERVAL = float(os.environ.get("FOTOFACIL_POLL_INTERVAL", "5"))
_timeout_env = os.environ.get("FOTOFACIL_POLL_TIMEOUT")
POLL_TIMEOUT = float(_timeout_env) if _timeout_env else None

log = logging.getLogger(__name__)


class PollState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAID = "paid"
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"


class PaymentPoller:
    """
    Polls the payment status of one order.

    Args:
        client (BackendClient): Used for check_payment().
        order_id (str): The order to watch.
        on_paid (callable): Called once with the delivery token.
        interval (float): Seconds between ticks.
        timeout (float | None): Give up after this many seconds; None polls indefinitely.
        on_timeout (callable | None): Called once when the timeout is reached.
    """

    def __init__(self, client, order_id, on_paid, interval=POLL_INTERVAL, timeout=POLL_TIMEOUT,
                 on_timeout=None, clock=time.monotonic):
        self.client = client
        self.order_id = order_id
        self.on_paid = on_paid
        self.on_timeout = on_timeout
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.state = PollState.IDLE
        self.ticks = 0
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread = None
        self._log_prefix = f"[Order: {order_id}]"

    def start(self):
        with self._lock:
            if self.state != PollState.IDLE:
                return
            self.state = PollState.RUNNING
        self._thread = threading.Thread(
            target=self._run, name=f"payment-poller-{self.order_id}", daemon=True
        )
        self._thread.start()
        log.info(f"{self._log_prefix} Payment polling started (every {self.interval}s).")

    def stop(self):
        """Cancels polling. Safe to call at any time, from any thread."""
        with self._lock:
            if self.state in (PollState.IDLE, PollState.RUNNING):
                self.state = PollState.STOPPED
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)

    @property
    def running(self):
        return self.state == PollState.RUNNING

    def _run(self):
        started = self.clock()
        while not self._stop.wait(self.interval):
            try:
                if self.poll_once():
                    return
            except Exception:
                # on_paid runs at most once; a later tick sees PAID and exits.
                log.exception(f"{self._log_prefix} Payment poll tick raised unexpectedly.")
            if self.timeout is not None and self.clock() - started >= self.timeout:
                self._expire()
                return

    def poll_once(self) -> bool:
        """
        Performs one status check.

        Returns:
            bool: True once the order is paid and the callback has fired.
        """
        self.ticks += 1
        try:
            status = self.client.check_payment(self.order_id)
        except BackendError as e:
            log.warning(f"{self._log_prefix} Payment status check failed, retrying next tick: {e}")
            return False

        if not status.is_paid:
            log.debug(f"{self._log_prefix} Payment still {status.status}.")
            return False
        if not status.delivery_token:
            log.error(f"{self._log_prefix} Order reported paid without a delivery token.")
            return False
        return self._finish(status.delivery_token)

    def confirm_once(self) -> bool:
        """Single confirmation call for orders with nothing to pay."""
        log.info(f"{self._log_prefix} Free order, confirming without polling.")
        return self.poll_once()

    def _finish(self, delivery_token):
        with self._lock:
            if self.state in (PollState.PAID, PollState.STOPPED, PollState.TIMED_OUT):
                return self.state == PollState.PAID
            self.state = PollState.PAID
        self._stop.set()
        log.info(f"{self._log_prefix} Payment confirmed after {self.ticks} check(s).")
        self.on_paid(delivery_token)
        return True

    def _expire(self):
        with self._lock:
            if self.state != PollState.RUNNING:
                return
            self.state = PollState.TIMED_OUT
        self._stop.set()
        log.warning(f"{self._log_prefix} Payment still pending after {self.timeout}s, polling stopped.")
        if self.on_timeout:
            self.on_timeout()
