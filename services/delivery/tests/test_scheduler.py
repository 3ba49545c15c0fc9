from __future__ import annotations

import random
import threading
from datetime import UTC, date, datetime, timedelta

import pytest
from services.delivery.app.services.scheduler import (
    AutoOrderScheduler,
    SchedulerConfig,
    is_eligible,
    random_delivery_time,
    resolve_delivery_days,
)
from services.delivery.app.services.scheduler_backend import ThreadSchedulerBackend
from services.delivery.app.services.store import (
    InMemoryAdminStore,
    InMemoryCustomerStore,
    InMemoryOrderStore,
)
from services.delivery.app.services.store_base import CustomerRecord, NewOrder, OrderRecord

# Monday.
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


def _customer(
    customer_id: str = "cust-1",
    *,
    pattern: str | None = "daily",
    delivery_days: dict[str, bool] | None = None,
    age_days: int = 31,
    last_check: datetime | None = None,
) -> CustomerRecord:
    return CustomerRecord(
        id=customer_id,
        name="Dilnoza",
        phone=f"+99890{customer_id}",
        address="Chilonzor 7",
        calories=1800,
        preferences="vegetarian",
        order_pattern=pattern,
        delivery_days=delivery_days,
        is_active=True,
        created_at=NOW - timedelta(days=age_days),
        last_auto_order_check=last_check,
    )


def _scheduler(
    orders: InMemoryOrderStore,
    customers: InMemoryCustomerStore,
    *,
    owner: str | None = "admin-1",
    workers: int = 1,
) -> AutoOrderScheduler:
    return AutoOrderScheduler(
        orders,
        customers,
        InMemoryAdminStore(owner),
        config=SchedulerConfig(workers=workers),
        clock=lambda: NOW,
        rng=random.Random(7),
    )


def _seed_existing_orders(orders: InMemoryOrderStore, count: int) -> None:
    for _ in range(count):
        orders.create_order(
            NewOrder(
                customer_id="someone",
                admin_id="admin-1",
                delivery_address="x",
                delivery_date=None,
                delivery_time="12:00",
                calories=2000,
            )
        )


def test_daily_customer_gets_thirty_consecutive_orders() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    _seed_existing_orders(orders, 4)
    customers.create_customer(_customer())

    report = _scheduler(orders, customers).run_once()

    assert report.orders_created == 30
    assert report.failed_customers == []

    created = [o for o in orders.all_orders() if o.customer_id == "cust-1"]
    assert [o.order_number for o in created] == list(range(5, 35))
    assert [o.delivery_date for o in created] == [
        NOW.date() + timedelta(days=i) for i in range(30)
    ]
    for order in created:
        assert order.order_status == "PENDING"
        assert order.payment_status == "UNPAID"
        assert order.payment_method == "CASH"
        assert order.is_prepaid is False
        assert order.admin_id == "admin-1"
        assert order.calories == 1800
        assert order.delivery_address == "Chilonzor 7"
        assert order.special_features == "vegetarian"


def test_even_pattern_counts_qualifying_weekdays_only() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer(pattern="every_other_day_even"))

    report = _scheduler(orders, customers).run_once()

    # Mon 2026-03-02 .. Tue 2026-03-31: four full weeks plus Mon and Tue.
    assert report.orders_created == 13
    weekdays = {o.delivery_date.weekday() for o in orders.all_orders()}
    assert weekdays == {1, 3, 5}


def test_odd_pattern_counts_qualifying_weekdays_only() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer(pattern="every_other_day_odd"))

    assert _scheduler(orders, customers).run_once().orders_created == 17


def test_explicit_delivery_days_win_over_pattern() -> None:
    days = resolve_delivery_days("daily", {"monday": True, "friday": True})

    assert [d for d, on in days.items() if on] == ["monday", "friday"]


def test_unset_pattern_selects_no_days() -> None:
    assert not any(resolve_delivery_days(None, None).values())
    assert not any(resolve_delivery_days("fortnightly", None).values())


def test_customer_without_days_is_still_checked() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer(pattern=None))

    report = _scheduler(orders, customers).run_once()

    assert report.orders_created == 0
    assert customers.find_by_id("cust-1").last_auto_order_check == NOW


@pytest.mark.parametrize(
    ("age_days", "last_check_days_ago", "expected"),
    [
        (31, None, True),
        (30, None, True),
        (29, None, False),
        (90, 40, True),
        (90, 5, False),
        (5, None, False),
    ],
)
def test_eligibility_window(age_days: int, last_check_days_ago: int | None, expected: bool) -> None:
    last_check = None
    if last_check_days_ago is not None:
        last_check = NOW - timedelta(days=last_check_days_ago)
    customer = _customer(age_days=age_days, last_check=last_check)

    assert is_eligible(customer, NOW, window_days=30) is expected


def test_second_run_in_same_window_creates_nothing() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer())
    scheduler = _scheduler(orders, customers)

    assert scheduler.run_once().orders_created == 30
    second = scheduler.run_once()

    assert second.customers_eligible == 0
    assert second.orders_created == 0


def test_missing_owner_skips_run_without_touching_customers() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer())

    report = _scheduler(orders, customers, owner=None).run_once()

    assert report.skipped_reason == "no_default_owner"
    assert orders.count_orders() == 0
    assert customers.find_by_id("cust-1").last_auto_order_check is None


def test_overlapping_run_is_skipped() -> None:
    class GatedOrderStore(InMemoryOrderStore):
        def __init__(self) -> None:
            super().__init__()
            self.entered = threading.Event()
            self.release = threading.Event()

        def create_order(self, order: NewOrder) -> OrderRecord:
            self.entered.set()
            assert self.release.wait(timeout=5.0)
            return super().create_order(order)

    orders, customers = GatedOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer())
    scheduler = _scheduler(orders, customers)
    reports = []

    first = threading.Thread(target=lambda: reports.append(scheduler.run_once()))
    first.start()
    try:
        assert orders.entered.wait(timeout=5.0)
        second = scheduler.run_once()
    finally:
        orders.release.set()
        first.join(timeout=5.0)

    assert second.skipped_reason == "already_running"
    assert second.orders_created == 0
    assert reports[0].orders_created == 30
    assert orders.count_orders(customer_id="cust-1") == 30


def test_runs_after_a_finished_run_are_not_skipped() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    scheduler = _scheduler(orders, customers)

    assert scheduler.run_once().skipped_reason is None
    assert scheduler.run_once().skipped_reason is None


def test_failing_customer_does_not_abort_run() -> None:
    class FlakyOrderStore(InMemoryOrderStore):
        def create_order(self, order: NewOrder) -> OrderRecord:
            if order.customer_id == "bad":
                raise RuntimeError("constraint violated")
            return super().create_order(order)

    class FlakyCustomerStore(InMemoryCustomerStore):
        def touch_last_check(self, customer_id: str, timestamp: datetime) -> None:
            if customer_id == "broken":
                raise RuntimeError("connection reset")
            super().touch_last_check(customer_id, timestamp)

    orders, customers = FlakyOrderStore(), FlakyCustomerStore()
    for cid in ("bad", "broken", "good"):
        customers.create_customer(_customer(cid))

    report = _scheduler(orders, customers).run_once()

    # Per-order failures are skipped; a customer-level failure is reported.
    assert report.failed_customers == ["broken"]
    assert orders.count_orders(customer_id="good") == 30
    assert orders.count_orders(customer_id="bad") == 0
    assert customers.find_by_id("good").last_auto_order_check == NOW
    assert customers.find_by_id("bad").last_auto_order_check == NOW


def test_parallel_customers_get_unique_order_numbers() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    for i in range(8):
        customers.create_customer(_customer(f"c{i}"))

    report = _scheduler(orders, customers, workers=4).run_once()

    numbers = [o.order_number for o in orders.all_orders()]
    assert report.orders_created == 240
    assert len(set(numbers)) == 240
    assert sorted(numbers) == list(range(1, 241))


def test_random_delivery_time_stays_in_band() -> None:
    rng = random.Random(0)
    for _ in range(500):
        hh, mm = random_delivery_time(rng).split(":")
        assert 11 <= int(hh) <= 13
        assert 0 <= int(mm) <= 59


def test_scheduler_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEALROUTE_SCHEDULER_HORIZON_DAYS", "14")
    monkeypatch.setenv("MEALROUTE_SCHEDULER_WORKERS", "3")

    cfg = SchedulerConfig.from_env()

    assert cfg.horizon_days == 14
    assert cfg.workers == 3
    assert cfg.eligibility_days == 30


def test_thread_backend_ticks_and_survives_failures() -> None:
    ticks: list[int] = []
    done = threading.Event()

    def _tick() -> None:
        ticks.append(len(ticks))
        if len(ticks) == 1:
            raise RuntimeError("first tick fails")
        if len(ticks) >= 3:
            done.set()

    backend = ThreadSchedulerBackend()
    backend.start(_tick, interval_seconds=0.01, initial_delay_seconds=0.0)
    try:
        assert done.wait(timeout=5.0)
        health = backend.health()
        assert health["healthy"] is True
        assert health["failed_ticks"] == 1
    finally:
        backend.stop()

    assert not backend.is_running
    assert backend.tick_count >= 3


def test_start_date_is_today_in_utc() -> None:
    orders, customers = InMemoryOrderStore(), InMemoryCustomerStore()
    customers.create_customer(_customer())
    _scheduler(orders, customers).run_once()

    first = orders.all_orders()[0]
    assert first.delivery_date == date(2026, 3, 2)
