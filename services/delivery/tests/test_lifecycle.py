from __future__ import annotations

import threading
from datetime import UTC, date, datetime

import pytest
from services.delivery.app.services.errors import ForbiddenError, InvalidStateError, NotFoundError
from services.delivery.app.services.lifecycle import Actor, OrderLifecycle, should_dispatch_purchase
from services.delivery.app.services.store import InMemoryOrderStore
from services.delivery.app.services.store_base import NewOrder, OrderRecord

COURIER = Actor(id="courier-1", role="COURIER")
ADMIN = Actor(id="admin-1", role="MIDDLE_ADMIN")
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class RecordingNotifier:
    def __init__(self) -> None:
        self.orders: list[OrderRecord] = []

    def submit(self, order: OrderRecord) -> bool:
        self.orders.append(order)
        return True


def _new_order(**overrides) -> NewOrder:
    fields = {
        "customer_id": "cust-1",
        "admin_id": "admin-1",
        "delivery_address": "Street 1",
        "delivery_date": date(2026, 3, 2),
        "delivery_time": "12:30",
        "calories": 2000,
    }
    fields.update(overrides)
    return NewOrder(**fields)


@pytest.fixture()
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


def test_full_delivery_flow(store: InMemoryOrderStore) -> None:
    lifecycle = OrderLifecycle(store, clock=lambda: NOW)
    order = store.create_order(_new_order())

    started = lifecycle.apply(order.id, "start_delivery", COURIER)
    assert started.order_status == "IN_DELIVERY"
    assert started.courier_id == "courier-1"
    assert started.updated_at == NOW

    paused = lifecycle.apply(order.id, "pause_delivery", COURIER)
    assert paused.order_status == "PAUSED"

    resumed = lifecycle.apply(order.id, "resume_delivery", COURIER)
    assert resumed.order_status == "IN_DELIVERY"

    done = lifecycle.apply(order.id, "complete_delivery", COURIER)
    assert done.order_status == "DELIVERED"
    assert done.delivered_at == NOW


def test_complete_from_paused_is_configurable(store: InMemoryOrderStore) -> None:
    order = store.create_order(_new_order())
    OrderLifecycle(store).apply(order.id, "start_delivery", COURIER)
    OrderLifecycle(store).apply(order.id, "pause_delivery", COURIER)

    strict = OrderLifecycle(store, allow_complete_from_paused=False)
    with pytest.raises(InvalidStateError):
        strict.apply(order.id, "complete_delivery", COURIER)

    assert OrderLifecycle(store).apply(order.id, "complete_delivery", COURIER).order_status == (
        "DELIVERED"
    )


@pytest.mark.parametrize(
    ("action", "status"),
    [
        ("start_delivery", "IN_DELIVERY"),
        ("pause_delivery", "PENDING"),
        ("resume_delivery", "IN_DELIVERY"),
        ("complete_delivery", "PENDING"),
    ],
)
def test_out_of_order_actions_are_rejected(
    store: InMemoryOrderStore, action: str, status: str
) -> None:
    order = store.create_order(_new_order(order_status=status))

    with pytest.raises(InvalidStateError):
        OrderLifecycle(store).apply(order.id, action, COURIER)

    assert store.find_order(order.id).order_status == status


@pytest.mark.parametrize("terminal", ["DELIVERED", "FAILED"])
def test_terminal_orders_accept_no_action(store: InMemoryOrderStore, terminal: str) -> None:
    order = store.create_order(_new_order(order_status=terminal))
    lifecycle = OrderLifecycle(store)

    for action in (
        "start_delivery",
        "pause_delivery",
        "resume_delivery",
        "complete_delivery",
        "fail_delivery",
    ):
        with pytest.raises(InvalidStateError):
            lifecycle.apply(order.id, action, COURIER)


def test_admins_cannot_drive_courier_actions(store: InMemoryOrderStore) -> None:
    # Role is checked before state.
    order = store.create_order(_new_order(order_status="DELIVERED"))

    with pytest.raises(ForbiddenError):
        OrderLifecycle(store).apply(order.id, "start_delivery", ADMIN)


def test_fail_delivery_allowed_for_admins(store: InMemoryOrderStore) -> None:
    lifecycle = OrderLifecycle(store)
    pending = store.create_order(_new_order())
    in_delivery = store.create_order(_new_order(order_status="IN_DELIVERY"))
    paused = store.create_order(_new_order(order_status="PAUSED"))

    assert lifecycle.apply(pending.id, "fail_delivery", ADMIN).order_status == "FAILED"
    assert lifecycle.apply(in_delivery.id, "fail_delivery", COURIER).order_status == "FAILED"
    with pytest.raises(InvalidStateError):
        lifecycle.apply(paused.id, "fail_delivery", ADMIN)


def test_unknown_order_raises_not_found(store: InMemoryOrderStore) -> None:
    with pytest.raises(NotFoundError, match="Order not found"):
        OrderLifecycle(store).apply("missing", "start_delivery", COURIER)


def test_unknown_action_is_rejected(store: InMemoryOrderStore) -> None:
    order = store.create_order(_new_order())
    with pytest.raises(ValueError, match="Unknown delivery action"):
        OrderLifecycle(store).apply(order.id, "teleport", COURIER)


def test_concurrent_starts_only_one_wins(store: InMemoryOrderStore) -> None:
    order = store.create_order(_new_order())
    lifecycle = OrderLifecycle(store)
    barrier = threading.Barrier(5)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _start(i: int) -> None:
        barrier.wait()
        try:
            lifecycle.apply(order.id, "start_delivery", Actor(id=f"courier-{i}", role="COURIER"))
            result = "ok"
        except InvalidStateError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_start, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 4


def test_cash_delivery_notifies_purchase(store: InMemoryOrderStore) -> None:
    notifier = RecordingNotifier()
    lifecycle = OrderLifecycle(store, notifier)
    order = store.create_order(_new_order(payment_method="CASH", payment_status="UNPAID"))

    lifecycle.apply(order.id, "start_delivery", COURIER)
    assert notifier.orders == []

    lifecycle.apply(order.id, "complete_delivery", COURIER)
    assert [o.id for o in notifier.orders] == [order.id]


def test_paid_card_order_notifies_on_transition(store: InMemoryOrderStore) -> None:
    notifier = RecordingNotifier()
    lifecycle = OrderLifecycle(store, notifier)
    order = store.create_order(_new_order(payment_method="CARD", payment_status="PAID"))

    lifecycle.apply(order.id, "start_delivery", COURIER)
    assert [o.id for o in notifier.orders] == [order.id]


def test_notifier_errors_do_not_fail_the_transition(store: InMemoryOrderStore) -> None:
    class ExplodingNotifier:
        def submit(self, order: OrderRecord) -> bool:
            raise RuntimeError("queue gone")

    lifecycle = OrderLifecycle(store, ExplodingNotifier())
    order = store.create_order(_new_order(payment_status="PAID"))

    assert lifecycle.apply(order.id, "start_delivery", COURIER).order_status == "IN_DELIVERY"


def test_should_dispatch_purchase_rules(store: InMemoryOrderStore) -> None:
    paid = store.create_order(_new_order(payment_status="PAID", payment_method="CARD"))
    unpaid_card = store.create_order(
        _new_order(payment_status="UNPAID", payment_method="CARD", order_status="DELIVERED")
    )
    cash_delivered = store.create_order(
        _new_order(payment_status="UNPAID", payment_method="CASH", order_status="DELIVERED")
    )

    assert should_dispatch_purchase(paid)
    assert not should_dispatch_purchase(unpaid_card)
    assert should_dispatch_purchase(cash_delivered)
