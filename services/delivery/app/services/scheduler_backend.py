"""Background thread that runs a synchronous tick on a fixed interval."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Any]


class ThreadSchedulerBackend:
    """Calls ``tick`` once after ``initial_delay_seconds`` and then every ``interval_seconds``.

    A failing tick is logged and the loop keeps going. Ticks never overlap since they
    run on the single loop thread.
    """

    name = "thread"

    def __init__(self, *, thread_name: str = "mealroute-scheduler") -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._thread_name = thread_name
        self._tick_count = 0
        self._failed_ticks = 0
        self._last_tick: datetime | None = None
        self._interval: float = 3600.0
        self._started = False
        self._lock = threading.Lock()

    def start(
        self,
        tick: TickCallback,
        *,
        interval_seconds: float = 3600.0,
        initial_delay_seconds: float = 10.0,
    ) -> None:
        if self._started:
            logger.warning("Scheduler backend already started")
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info(
                "Scheduler backend started (initial_delay=%ss, interval=%ss)",
                initial_delay_seconds,
                interval_seconds,
            )
            delay = initial_delay_seconds
            while not self._stop_event.wait(delay):
                delay = interval_seconds
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)

                try:
                    tick()
                except Exception:
                    with self._lock:
                        self._failed_ticks += 1
                    logger.exception("Scheduler tick failed")

            logger.info("Scheduler backend stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name=self._thread_name)
        self._thread.start()
        self._started = True

    def stop(self, *, timeout_s: float = 5.0) -> None:
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout_s)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly")

        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def health(self) -> dict[str, Any]:
        with self._lock:
            return {
                "healthy": self.is_running,
                "backend": self.name,
                "tick_count": self._tick_count,
                "failed_ticks": self._failed_ticks,
                "last_tick": self._last_tick.isoformat() if self._last_tick else None,
                "interval_seconds": self._interval,
            }
