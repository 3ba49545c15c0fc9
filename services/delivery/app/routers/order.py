from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from packages.shared.schemas.order_v1 import ActorRoleV1, OrderStatusV1, PaymentStatusV1

from services.delivery.app.models.order import (
    OrderActionRequest,
    OrderCreateRequest,
    OrderOut,
    OrderStatisticsOut,
)
from services.delivery.app.routers.deps import (
    ADMIN_ROLES,
    get_actor,
    get_runtime,
    raise_domain_http_error,
    rate_limited,
    require_role,
)
from services.delivery.app.runtime import Runtime
from services.delivery.app.services.clock import utcnow
from services.delivery.app.services.errors import DeliveryError
from services.delivery.app.services.lifecycle import Actor
from services.delivery.app.services.store_base import NewOrder

logger = logging.getLogger(__name__)

router = APIRouter()

_COURIER = frozenset({ActorRoleV1.COURIER.value})


@router.post(
    "/v1/orders", response_model=OrderOut, dependencies=[Depends(rate_limited("api"))]
)
def create_order(
    payload: OrderCreateRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> OrderOut:
    customer = runtime.customers.find_by_id(payload.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    order = runtime.orders.create_order(
        NewOrder(
            customer_id=customer.id,
            admin_id=actor.id,
            delivery_address=payload.delivery_address or customer.address,
            delivery_date=payload.delivery_date,
            delivery_time=payload.delivery_time,
            calories=payload.calories if payload.calories is not None else customer.calories,
            quantity=payload.quantity,
            special_features=payload.special_features,
            payment_status=payload.payment_status.value,
            payment_method=payload.payment_method.value,
            is_prepaid=payload.is_prepaid,
            order_status=OrderStatusV1.PENDING.value,
        )
    )
    logger.info(
        "Order #%s created by %s for customer %s", order.order_number, actor.id, customer.id
    )

    if order.payment_status == PaymentStatusV1.PAID.value:
        runtime.lifecycle.notify_purchase(order)
    return OrderOut.from_record(order)


@router.get("/v1/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> OrderOut:
    order = runtime.orders.find_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderOut.from_record(order)


@router.patch(
    "/v1/orders/{order_id}",
    response_model=OrderOut,
    dependencies=[Depends(rate_limited("api"))],
)
def apply_order_action(
    order_id: str,
    payload: OrderActionRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> OrderOut:
    try:
        order = runtime.lifecycle.apply(order_id, payload.action.value, actor)
    except DeliveryError as e:
        raise_domain_http_error(e)
    return OrderOut.from_record(order)


@router.get("/v1/courier/next-order", response_model=OrderOut)
def next_order(
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> OrderOut:
    require_role(actor, _COURIER)

    order = runtime.orders.next_pending(utcnow().date())
    if order is None:
        raise HTTPException(status_code=404, detail="No pending orders for today")
    return OrderOut.from_record(order)


@router.get("/v1/admin/statistics", response_model=OrderStatisticsOut)
def order_statistics(
    for_date: date | None = None,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> OrderStatisticsOut:
    require_role(actor, ADMIN_ROLES)

    by_status = {
        s.value: runtime.orders.count_orders(status=s.value, delivery_date=for_date)
        for s in OrderStatusV1
    }
    return OrderStatisticsOut(
        total=sum(by_status.values()),
        by_status=by_status,
        for_date=for_date.isoformat() if for_date else None,
    )
