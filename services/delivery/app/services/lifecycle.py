"""Delivery state machine for a single order.

    PENDING -> IN_DELIVERY <-> PAUSED
    IN_DELIVERY (or PAUSED) -> DELIVERED
    PENDING / IN_DELIVERY -> FAILED

DELIVERED and FAILED are terminal. Role is checked before state, so a non-courier gets
ForbiddenError even for an action that would also be out of order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from packages.shared.schemas.order_v1 import (
    ActorRoleV1,
    DeliveryActionV1,
    OrderStatusV1,
    PaymentMethodV1,
    PaymentStatusV1,
)
from services.delivery.app.services.clock import Clock, utcnow
from services.delivery.app.services.dispatcher import PurchaseNotifier
from services.delivery.app.services.errors import ForbiddenError, InvalidStateError, NotFoundError
from services.delivery.app.services.store_base import OrderRecord, OrderStore

logger = logging.getLogger(__name__)

_COURIER = frozenset({ActorRoleV1.COURIER.value})
_ADMINS_AND_COURIERS = frozenset(r.value for r in ActorRoleV1)


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    role: str


@dataclass(frozen=True, slots=True)
class Transition:
    allowed_from: frozenset[str]
    target: str
    roles: frozenset[str]


def transition_table(*, allow_complete_from_paused: bool = True) -> dict[str, Transition]:
    complete_from = {OrderStatusV1.IN_DELIVERY.value}
    if allow_complete_from_paused:
        complete_from.add(OrderStatusV1.PAUSED.value)

    return {
        DeliveryActionV1.START_DELIVERY.value: Transition(
            frozenset({OrderStatusV1.PENDING.value}), OrderStatusV1.IN_DELIVERY.value, _COURIER
        ),
        DeliveryActionV1.PAUSE_DELIVERY.value: Transition(
            frozenset({OrderStatusV1.IN_DELIVERY.value}), OrderStatusV1.PAUSED.value, _COURIER
        ),
        DeliveryActionV1.RESUME_DELIVERY.value: Transition(
            frozenset({OrderStatusV1.PAUSED.value}), OrderStatusV1.IN_DELIVERY.value, _COURIER
        ),
        DeliveryActionV1.COMPLETE_DELIVERY.value: Transition(
            frozenset(complete_from), OrderStatusV1.DELIVERED.value, _COURIER
        ),
        DeliveryActionV1.FAIL_DELIVERY.value: Transition(
            frozenset({OrderStatusV1.PENDING.value, OrderStatusV1.IN_DELIVERY.value}),
            OrderStatusV1.FAILED.value,
            _ADMINS_AND_COURIERS,
        ),
    }


def should_dispatch_purchase(order: OrderRecord) -> bool:
    if order.payment_status == PaymentStatusV1.PAID.value:
        return True
    return (
        order.order_status == OrderStatusV1.DELIVERED.value
        and order.payment_method == PaymentMethodV1.CASH.value
    )


class OrderLifecycle:
    def __init__(
        self,
        store: OrderStore,
        notifier: PurchaseNotifier | None = None,
        *,
        clock: Clock = utcnow,
        allow_complete_from_paused: bool = True,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._transitions = transition_table(allow_complete_from_paused=allow_complete_from_paused)

    @classmethod
    def from_env(cls, store: OrderStore, notifier: PurchaseNotifier | None) -> OrderLifecycle:
        flag = os.getenv("MEALROUTE_ALLOW_COMPLETE_FROM_PAUSED", "true").strip().lower()
        return cls(store, notifier, allow_complete_from_paused=flag in {"1", "true", "yes", "y"})

    def plan(self, order: OrderRecord, action: str, actor: Actor) -> dict[str, Any]:
        """Validate ``action`` against ``order`` and return the fields to write."""

        transition = self._transitions.get(action)
        if transition is None:
            raise ValueError(f"Unknown delivery action {action!r}")

        if actor.role not in transition.roles:
            raise ForbiddenError(action, actor.role)

        if order.order_status not in transition.allowed_from:
            raise InvalidStateError(action, order.order_status)

        now = self._clock()
        fields: dict[str, Any] = {"order_status": transition.target, "updated_at": now}
        if action == DeliveryActionV1.START_DELIVERY.value:
            fields["courier_id"] = actor.id
        elif action == DeliveryActionV1.COMPLETE_DELIVERY.value:
            fields["delivered_at"] = now
        return fields

    def apply(self, order_id: str, action: str, actor: Actor) -> OrderRecord:
        order = self._store.find_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)

        fields = self.plan(order, action, actor)
        updated = self._store.update_order(order_id, fields, expected_status=order.order_status)
        if updated is None:
            # Someone else moved the order between our read and the write.
            current = self._store.find_order(order_id)
            raise InvalidStateError(action, current.order_status if current else "UNKNOWN")

        logger.info(
            "Order #%s %s -> %s by %s",
            updated.order_number,
            order.order_status,
            updated.order_status,
            actor.id,
        )

        if should_dispatch_purchase(updated):
            self.notify_purchase(updated)
        return updated

    def notify_purchase(self, order: OrderRecord) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.submit(order)
        except Exception:
            logger.exception("Could not hand order %s to the analytics dispatcher", order.id)
