from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from services.delivery.app.services.errors import ConflictError
from services.delivery.app.services.store_base import (
    CustomerRecord,
    NewOrder,
    OrderRecord,
    new_order_fields,
)


class InMemoryOrderStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: dict[str, OrderRecord] = {}

    def find_max_order_number(self) -> int:
        with self._lock:
            return max((o.order_number for o in self._orders.values()), default=0)

    def create_order(self, order: NewOrder) -> OrderRecord:
        now = datetime.now(UTC)
        with self._lock:
            number = max((o.order_number for o in self._orders.values()), default=0) + 1
            record = OrderRecord(
                id=uuid4().hex,
                order_number=number,
                courier_id=None,
                created_at=now,
                updated_at=now,
                **new_order_fields(order),
            )
            self._orders[record.id] = record
            return record

    def update_order(
        self,
        order_id: str,
        fields: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> OrderRecord | None:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            if expected_status is not None and current.order_status != expected_status:
                return None
            updated = replace(current, **fields)
            self._orders[order_id] = updated
            return updated

    def find_order(self, order_id: str) -> OrderRecord | None:
        with self._lock:
            return self._orders.get(order_id)

    def count_orders(
        self,
        *,
        customer_id: str | None = None,
        status: str | None = None,
        delivery_date: date | None = None,
    ) -> int:
        with self._lock:
            return sum(
                1
                for o in self._orders.values()
                if (customer_id is None or o.customer_id == customer_id)
                and (status is None or o.order_status == status)
                and (delivery_date is None or o.delivery_date == delivery_date)
            )

    def next_pending(self, for_date: date) -> OrderRecord | None:
        with self._lock:
            candidates = [
                o
                for o in self._orders.values()
                if o.order_status == "PENDING"
                and (
                    o.delivery_date == for_date
                    or (o.delivery_date is None and o.created_at.date() >= for_date)
                )
            ]
        candidates.sort(key=lambda o: (o.delivery_date or for_date, o.created_at))
        return candidates[0] if candidates else None

    def all_orders(self) -> list[OrderRecord]:
        with self._lock:
            return sorted(self._orders.values(), key=lambda o: o.order_number)


class InMemoryCustomerStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._customers: dict[str, CustomerRecord] = {}

    def list_active(self) -> list[CustomerRecord]:
        with self._lock:
            return [c for c in self._customers.values() if c.is_active]

    def find_by_id(self, customer_id: str) -> CustomerRecord | None:
        with self._lock:
            return self._customers.get(customer_id)

    def touch_last_check(self, customer_id: str, timestamp: datetime) -> None:
        with self._lock:
            current = self._customers.get(customer_id)
            if current is not None:
                self._customers[customer_id] = replace(current, last_auto_order_check=timestamp)

    def create_customer(self, customer: CustomerRecord) -> CustomerRecord:
        with self._lock:
            if any(c.phone == customer.phone for c in self._customers.values()):
                raise ConflictError(f"Customer with phone {customer.phone} already exists")
            self._customers[customer.id] = customer
            return customer


class InMemoryAdminStore:
    def __init__(self, default_owner_id: str | None = "admin-1") -> None:
        self._default_owner_id = default_owner_id

    def find_default_owner(self) -> str | None:
        return self._default_owner_id


class InMemoryLedgerStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: set[tuple[str, str]] = set()

    def exists(self, entity_id: str, event_name: str) -> bool:
        with self._lock:
            return (entity_id, event_name) in self._records

    def insert(self, entity_id: str, event_name: str) -> bool:
        key = (entity_id, event_name)
        with self._lock:
            if key in self._records:
                return False
            self._records.add(key)
            return True
