from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class CustomerRecord:
    id: str
    name: str
    phone: str
    address: str
    calories: int
    preferences: str
    order_pattern: str | None
    delivery_days: dict[str, bool] | None
    is_active: bool
    created_at: datetime
    last_auto_order_check: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewOrder:
    customer_id: str
    admin_id: str
    delivery_address: str
    delivery_date: date | None
    delivery_time: str
    calories: int
    quantity: int = 1
    special_features: str = ""
    payment_status: str = "UNPAID"
    payment_method: str = "CASH"
    is_prepaid: bool = False
    order_status: str = "PENDING"


@dataclass(frozen=True, slots=True)
class OrderRecord:
    id: str
    order_number: int
    customer_id: str
    admin_id: str
    courier_id: str | None
    delivery_address: str
    delivery_date: date | None
    delivery_time: str
    quantity: int
    calories: int
    special_features: str
    payment_status: str
    payment_method: str
    is_prepaid: bool
    order_status: str
    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None = None


class OrderStore(Protocol):
    def find_max_order_number(self) -> int: ...

    def create_order(self, order: NewOrder) -> OrderRecord:
        """Insert an order under the next order number.

        Implementations must serialize "max + 1" with the insert so concurrent creators
        never share a number.
        """
        ...

    def update_order(
        self,
        order_id: str,
        fields: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> OrderRecord | None:
        """Apply ``fields`` atomically.

        Returns None when ``expected_status`` is given and no longer matches.
        """
        ...

    def find_order(self, order_id: str) -> OrderRecord | None: ...

    def count_orders(
        self,
        *,
        customer_id: str | None = None,
        status: str | None = None,
        delivery_date: date | None = None,
    ) -> int: ...

    def next_pending(self, for_date: date) -> OrderRecord | None: ...


class CustomerStore(Protocol):
    def list_active(self) -> list[CustomerRecord]: ...

    def find_by_id(self, customer_id: str) -> CustomerRecord | None: ...

    def touch_last_check(self, customer_id: str, timestamp: datetime) -> None: ...

    def create_customer(self, customer: CustomerRecord) -> CustomerRecord: ...


class AdminStore(Protocol):
    def find_default_owner(self) -> str | None: ...


class LedgerStore(Protocol):
    def exists(self, entity_id: str, event_name: str) -> bool: ...

    def insert(self, entity_id: str, event_name: str) -> bool:
        """Return True if this call created the record, False if it already existed."""
        ...


def new_order_fields(order: NewOrder) -> dict[str, Any]:
    return {
        "customer_id": order.customer_id,
        "admin_id": order.admin_id,
        "delivery_address": order.delivery_address,
        "delivery_date": order.delivery_date,
        "delivery_time": order.delivery_time,
        "quantity": order.quantity,
        "calories": order.calories,
        "special_features": order.special_features,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "is_prepaid": order.is_prepaid,
        "order_status": order.order_status,
    }
