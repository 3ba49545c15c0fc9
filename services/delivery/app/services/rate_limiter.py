"""Per-client sliding-window rate limiting.

Each client identifier keeps the timestamps of its admitted requests inside the
trailing window. A request is admitted while fewer than ``max_requests``
timestamps survive the window; a denial reports when the oldest one expires.

State is process-local. All reads and writes go through one lock; if the lock
cannot be taken in time the limiter denies (fail closed).
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field

from services.delivery.app.services.clock import MillisClock, epoch_ms

logger = logging.getLogger(__name__)

_FIFTEEN_MINUTES_MS = 15 * 60 * 1000


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int
    message: str = "Too many requests. Please try again later."


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at_ms: int


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    count: int
    reset_at_ms: int


@dataclass
class _WindowRecord:
    reset_at_ms: int
    timestamps: deque[int] = field(default_factory=deque)


_DEFAULTS: dict[str, RateLimitConfig] = {
    "auth": RateLimitConfig(
        5, _FIFTEEN_MINUTES_MS, "Too many authentication attempts. Please try again later."
    ),
    "api": RateLimitConfig(100, _FIFTEEN_MINUTES_MS, "Too many requests. Please try again later."),
    "admin": RateLimitConfig(
        50, _FIFTEEN_MINUTES_MS, "Too many admin operations. Please try again later."
    ),
}


def rate_limit_config(kind: str) -> RateLimitConfig:
    """Return the named config, with MEALROUTE_RATE_LIMIT_<KIND>_MAX/_WINDOW_MS overrides."""

    try:
        default = _DEFAULTS[kind]
    except KeyError:
        raise ValueError(
            f"Unknown rate limit kind {kind!r}. Expected one of {sorted(_DEFAULTS)}."
        ) from None

    prefix = f"MEALROUTE_RATE_LIMIT_{kind.upper()}"
    return RateLimitConfig(
        max_requests=int(os.getenv(f"{prefix}_MAX", str(default.max_requests))),
        window_ms=int(os.getenv(f"{prefix}_WINDOW_MS", str(default.window_ms))),
        message=default.message,
    )


def client_identifier(headers: Mapping[str, str], peer_host: str | None = None) -> str:
    """Best-effort client identity, respecting the usual proxy headers."""

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value:
            return value.strip()

    return peer_host or "unknown"


class SlidingWindowRateLimiter:
    def __init__(
        self,
        clock: MillisClock = epoch_ms,
        *,
        lock_timeout_s: float = 1.0,
        sweep_interval_s: float = 300.0,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._lock_timeout_s = lock_timeout_s
        self._records: dict[str, _WindowRecord] = {}

        self._sweep_interval_s = sweep_interval_s
        self._sweep_stop = threading.Event()
        self._sweep_thread: threading.Thread | None = None

    def admit(self, client_id: str, config: RateLimitConfig) -> RateLimitDecision:
        now = self._clock()

        if not self._lock.acquire(timeout=self._lock_timeout_s):
            logger.warning("Rate limiter state unavailable; denying client=%s", client_id)
            return RateLimitDecision(allowed=False, remaining=0, reset_at_ms=now + config.window_ms)

        try:
            record = self._records.get(client_id)
            if record is None or record.reset_at_ms < now:
                record = _WindowRecord(reset_at_ms=now + config.window_ms)
                self._records[client_id] = record

            window_start = now - config.window_ms
            timestamps = record.timestamps
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= config.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_at_ms=timestamps[0] + config.window_ms,
                )

            timestamps.append(now)
            # Bookkeeping never expires while a counted request is still inside the window.
            record.reset_at_ms = now + config.window_ms
            return RateLimitDecision(
                allowed=True,
                remaining=config.max_requests - len(timestamps),
                reset_at_ms=timestamps[0] + config.window_ms,
            )
        finally:
            self._lock.release()

    def now_ms(self) -> int:
        return self._clock()

    def sweep(self) -> int:
        """Drop clients whose window has fully elapsed. Returns how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [key for key, record in self._records.items() if record.reset_at_ms < now]
            for key in expired:
                del self._records[key]

        if expired:
            logger.debug("Rate limiter swept %s expired clients", len(expired))
        return len(expired)

    def status(self, client_id: str) -> RateLimitStatus | None:
        with self._lock:
            record = self._records.get(client_id)
            if record is None:
                return None
            return RateLimitStatus(count=len(record.timestamps), reset_at_ms=record.reset_at_ms)

    def clear(self, client_id: str) -> None:
        with self._lock:
            self._records.pop(client_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._records.clear()

    def start_sweeper(self) -> None:
        if self._sweep_thread is not None and self._sweep_thread.is_alive():
            return

        self._sweep_stop.clear()

        def _loop() -> None:
            while not self._sweep_stop.wait(self._sweep_interval_s):
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Rate limiter sweep failed")

        self._sweep_thread = threading.Thread(
            target=_loop, daemon=True, name="mealroute-ratelimit-sweep"
        )
        self._sweep_thread.start()

    def stop_sweeper(self) -> None:
        self._sweep_stop.set()
        if self._sweep_thread is not None:
            self._sweep_thread.join(timeout=5.0)
            self._sweep_thread = None


def limiter_from_env() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        sweep_interval_s=float(os.getenv("MEALROUTE_RATE_LIMIT_SWEEP_S", "300")),
    )
