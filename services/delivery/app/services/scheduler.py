"""Recurring auto-order scheduler.

Each run loads active customers, keeps those whose eligibility window has elapsed,
resolves their weekly delivery pattern and materializes one PENDING order per selected
weekday over the horizon. The customer's last-check timestamp is then moved to the run
time, which re-arms the window.

Runs do not deduplicate against orders materialized by earlier runs for the same
(customer, date). The eligibility window is what bounds repeats.
"""

from __future__ import annotations

import logging
import os
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from packages.shared.schemas.order_v1 import (
    OrderPatternV1,
    OrderStatusV1,
    PaymentMethodV1,
    PaymentStatusV1,
)
from services.delivery.app.services.clock import Clock, utcnow
from services.delivery.app.services.store_base import (
    AdminStore,
    CustomerRecord,
    CustomerStore,
    NewOrder,
    OrderStore,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_PATTERN_DAYS: dict[str, frozenset[str]] = {
    OrderPatternV1.DAILY.value: frozenset(WEEKDAYS),
    # Even/odd refer to the ISO weekday number (Monday=1 .. Sunday=7).
    OrderPatternV1.EVERY_OTHER_DAY_EVEN.value: frozenset({"tuesday", "thursday", "saturday"}),
    OrderPatternV1.EVERY_OTHER_DAY_ODD.value: frozenset(
        {"monday", "wednesday", "friday", "sunday"}
    ),
}


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    interval_seconds: float = 3600.0
    initial_delay_seconds: float = 10.0
    horizon_days: int = 30
    eligibility_days: int = 30
    workers: int = 1

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        return cls(
            interval_seconds=float(os.getenv("MEALROUTE_SCHEDULER_INTERVAL_S", "3600")),
            initial_delay_seconds=float(os.getenv("MEALROUTE_SCHEDULER_INITIAL_DELAY_S", "10")),
            horizon_days=int(os.getenv("MEALROUTE_SCHEDULER_HORIZON_DAYS", "30")),
            eligibility_days=int(os.getenv("MEALROUTE_SCHEDULER_ELIGIBILITY_DAYS", "30")),
            workers=int(os.getenv("MEALROUTE_SCHEDULER_WORKERS", "1")),
        )


@dataclass
class SchedulerRunReport:
    started_at: datetime
    customers_scanned: int = 0
    customers_eligible: int = 0
    orders_created: int = 0
    failed_customers: list[str] = field(default_factory=list)
    skipped_reason: str | None = None


def resolve_delivery_days(
    order_pattern: str | None, delivery_days: dict[str, bool] | None = None
) -> dict[str, bool]:
    """Resolve a customer's weekly pattern to seven weekday flags.

    Explicit per-weekday flags win over a named pattern. No pattern selects no days.
    """

    if delivery_days:
        return {day: bool(delivery_days.get(day, False)) for day in WEEKDAYS}

    selected = _PATTERN_DAYS.get(order_pattern or "", frozenset())
    if order_pattern and order_pattern not in _PATTERN_DAYS:
        logger.warning("Unknown order pattern %r, selecting no delivery days", order_pattern)
    return {day: day in selected for day in WEEKDAYS}


def days_since(moment: datetime, now: datetime) -> int:
    return int((now - moment).total_seconds() // 86400)


def is_eligible(customer: CustomerRecord, now: datetime, *, window_days: int = 30) -> bool:
    """Creation age or last-check age reaching the window, measured from the more recent one.

    A never-checked customer qualifies by creation age alone. Once checked, the last
    check re-arms the window, so a customer is scheduled at most once per window.
    """

    reference = customer.created_at
    if customer.last_auto_order_check is not None:
        reference = max(reference, customer.last_auto_order_check)
    return days_since(reference, now) >= window_days


def random_delivery_time(rng: random.Random) -> str:
    hour = 11 + rng.randrange(3)
    minute = rng.randrange(60)
    return f"{hour:02d}:{minute:02d}"


def delivery_dates(start: date, horizon_days: int, days: dict[str, bool]) -> list[date]:
    out: list[date] = []
    for offset in range(horizon_days):
        current = start + timedelta(days=offset)
        if days[WEEKDAYS[current.weekday()]]:
            out.append(current)
    return out


class AutoOrderScheduler:
    def __init__(
        self,
        orders: OrderStore,
        customers: CustomerStore,
        admins: AdminStore,
        *,
        config: SchedulerConfig | None = None,
        clock: Clock = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._orders = orders
        self._customers = customers
        self._admins = admins
        self._config = config or SchedulerConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._run_lock = threading.Lock()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    def run_once(self) -> SchedulerRunReport:
        """Run one pass. A call made while another pass is in progress is skipped."""

        if not self._run_lock.acquire(blocking=False):
            logger.warning("Auto order scheduler run already in progress; skipping")
            return SchedulerRunReport(started_at=self._clock(), skipped_reason="already_running")

        try:
            return self._run()
        finally:
            self._run_lock.release()

    def _run(self) -> SchedulerRunReport:
        now = self._clock()
        report = SchedulerRunReport(started_at=now)
        logger.info("Auto order scheduler run started")

        owner_id = self._admins.find_default_owner()
        if owner_id is None:
            # Leave every customer's window untouched so the next run can retry.
            logger.error("No active SUPER_ADMIN found; skipping auto order run")
            report.skipped_reason = "no_default_owner"
            return report

        active = self._customers.list_active()
        eligible = [
            c for c in active if is_eligible(c, now, window_days=self._config.eligibility_days)
        ]
        report.customers_scanned = len(active)
        report.customers_eligible = len(eligible)
        logger.info("Found %s eligible of %s active customers", len(eligible), len(active))

        if self._config.workers > 1 and len(eligible) > 1:
            with ThreadPoolExecutor(
                max_workers=self._config.workers, thread_name_prefix="mealroute-autoorder"
            ) as pool:
                results = list(
                    pool.map(lambda c: self._process_customer(c, owner_id, now), eligible)
                )
        else:
            results = [self._process_customer(c, owner_id, now) for c in eligible]

        for customer, created in zip(eligible, results):
            if created is None:
                report.failed_customers.append(customer.id)
            else:
                report.orders_created += created

        logger.info(
            "Auto order scheduler run finished: %s orders created, %s customers failed",
            report.orders_created,
            len(report.failed_customers),
        )
        return report

    def _process_customer(
        self, customer: CustomerRecord, owner_id: str, now: datetime
    ) -> int | None:
        """Generate one customer's horizon. Returns orders created, or None on failure."""

        try:
            created = self.generate_orders(customer, owner_id, now.date())
            self._customers.touch_last_check(customer.id, now)
        except Exception:
            logger.exception("Auto order generation failed for customer %s", customer.id)
            return None

        logger.info("Created %s orders for customer %s", created, customer.id)
        return created

    def generate_orders(self, customer: CustomerRecord, owner_id: str, start: date) -> int:
        days = resolve_delivery_days(customer.order_pattern, customer.delivery_days)
        created = 0

        for delivery_date in delivery_dates(start, self._config.horizon_days, days):
            try:
                order = self._orders.create_order(
                    NewOrder(
                        customer_id=customer.id,
                        admin_id=owner_id,
                        delivery_address=customer.address,
                        delivery_date=delivery_date,
                        delivery_time=random_delivery_time(self._rng),
                        calories=customer.calories,
                        quantity=1,
                        special_features=customer.preferences,
                        payment_status=PaymentStatusV1.UNPAID.value,
                        payment_method=PaymentMethodV1.CASH.value,
                        is_prepaid=False,
                        order_status=OrderStatusV1.PENDING.value,
                    )
                )
            except Exception:
                logger.exception(
                    "Could not create auto order for customer %s on %s",
                    customer.id,
                    delivery_date.isoformat(),
                )
                continue

            created += 1
            logger.debug(
                "Created order #%s for customer %s (delivery %s)",
                order.order_number,
                customer.id,
                delivery_date.isoformat(),
            )

        return created
