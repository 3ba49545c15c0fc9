from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

from packages.shared.schemas.order_v1 import DispatchEventV1
from services.delivery.app.services.analytics_base import AnalyticsSink, PurchaseEvent
from services.delivery.app.services.errors import DispatchFailure
from services.delivery.app.services.ledger import EventDispatchLedger
from services.delivery.app.services.store_base import OrderRecord

logger = logging.getLogger(__name__)

_STOP = object()


class PurchaseNotifier(Protocol):
    def submit(self, order: OrderRecord) -> bool: ...


class AnalyticsDispatcher:
    """Sends purchase events for paid orders, at most once per order.

    ``submit`` is the fire-and-forget entry point used by request handlers and the
    lifecycle: it enqueues onto a bounded queue drained by a small worker pool and never
    waits on the network. ``dispatch_purchase`` is the synchronous unit of work.
    """

    def __init__(
        self,
        ledger: EventDispatchLedger,
        sinks: list[AnalyticsSink],
        *,
        event_name: str = DispatchEventV1.ORDER_PAID.value,
        workers: int = 2,
        queue_size: int = 256,
        currency: str | None = None,
    ) -> None:
        self._ledger = ledger
        self._sinks = list(sinks)
        self._event_name = event_name
        self._workers = max(1, workers)
        self._currency = currency
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._in_flight: set[tuple[str, str]] = set()
        self._in_flight_lock = threading.Lock()

    @classmethod
    def from_env(
        cls, ledger: EventDispatchLedger, sinks: list[AnalyticsSink]
    ) -> AnalyticsDispatcher:
        return cls(
            ledger,
            sinks,
            workers=int(os.getenv("MEALROUTE_DISPATCH_WORKERS", "2")),
            queue_size=int(os.getenv("MEALROUTE_DISPATCH_QUEUE_SIZE", "256")),
        )

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._threads = [
                threading.Thread(target=self._work, daemon=True, name=f"mealroute-dispatch-{i}")
                for i in range(self._workers)
            ]
            for t in self._threads:
                t.start()
        logger.info(
            "Analytics dispatcher started (workers=%s, sinks=%s)", self._workers, self.sink_names
        )

    def stop(self, *, drain: bool = True, timeout_s: float = 10.0) -> None:
        """Stop the workers. With ``drain`` queued events are sent first, otherwise dropped."""

        with self._lock:
            if not self._threads:
                return

            if not drain:
                dropped = 0
                while True:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        break
                    self._queue.task_done()
                    dropped += 1
                if dropped:
                    logger.warning("Dropped %s queued analytics events on shutdown", dropped)

            for _ in self._threads:
                try:
                    self._queue.put(_STOP, timeout=timeout_s)
                except queue.Full:
                    logger.warning("Analytics queue still full after %ss; not waiting", timeout_s)
                    break
            for t in self._threads:
                t.join(timeout=timeout_s)
                if t.is_alive():
                    logger.warning("Dispatch worker %s did not stop cleanly", t.name)
            self._threads = []

        logger.info("Analytics dispatcher stopped")

    @property
    def sink_names(self) -> list[str]:
        return [s.name for s in self._sinks]

    def submit(self, order: OrderRecord) -> bool:
        try:
            self._queue.put_nowait(order)
        except queue.Full:
            logger.warning(
                "Analytics queue full, dropping %s for order %s", self._event_name, order.id
            )
            return False
        return True

    def wait_idle(self) -> None:
        """Block until every queued event has been processed."""
        self._queue.join()

    def dispatch_purchase(self, order: OrderRecord) -> bool:
        """Send the purchase event for ``order`` unless the ledger already has it.

        Returns True when an attempt was made. The order is marked as dispatched after
        every sink has been tried, whether or not each one succeeded.
        """

        key = (order.id, self._event_name)
        with self._in_flight_lock:
            if key in self._in_flight:
                logger.debug(
                    "Skipping %s for order %s: already in flight", self._event_name, order.id
                )
                return False
            self._in_flight.add(key)

        try:
            return self._dispatch_once(order)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(key)

    def _dispatch_once(self, order: OrderRecord) -> bool:
        if self._ledger.has_dispatched(order.id, self._event_name):
            logger.debug("Skipping %s for order %s: already dispatched", self._event_name, order.id)
            return False

        event = PurchaseEvent.from_order(order, currency=self._currency)

        if self._sinks:
            with ThreadPoolExecutor(
                max_workers=len(self._sinks), thread_name_prefix="mealroute-sink"
            ) as pool:
                futures = {pool.submit(sink.send_purchase, event): sink for sink in self._sinks}
                for future in as_completed(futures):
                    sink = futures[future]
                    try:
                        future.result()
                    except DispatchFailure as e:
                        logger.warning("Analytics dispatch failed for order %s: %s", order.id, e)
                    except Exception:
                        logger.exception(
                            "Analytics sink %s raised for order %s", sink.name, order.id
                        )

        self._ledger.mark_dispatched(order.id, self._event_name)
        logger.info("Dispatched %s for order #%s", self._event_name, order.order_number)
        return True

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.dispatch_purchase(item)  # type: ignore[arg-type]
            except Exception:
                logger.exception("Analytics dispatch worker failed")
            finally:
                self._queue.task_done()
