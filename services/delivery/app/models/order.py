from __future__ import annotations

from datetime import date

from packages.shared.schemas.order_v1 import (
    DeliveryActionV1,
    PaymentMethodV1,
    PaymentStatusV1,
)
from pydantic import BaseModel, Field

from services.delivery.app.services.store_base import OrderRecord


class OrderCreateRequest(BaseModel):
    customer_id: str
    delivery_address: str | None = None
    delivery_date: date | None = None
    delivery_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    quantity: int = Field(1, ge=1)
    calories: int | None = Field(None, ge=0)
    special_features: str = ""
    payment_status: PaymentStatusV1 = PaymentStatusV1.UNPAID
    payment_method: PaymentMethodV1 = PaymentMethodV1.CASH
    is_prepaid: bool = False


class OrderActionRequest(BaseModel):
    action: DeliveryActionV1


class OrderOut(BaseModel):
    id: str
    order_number: int
    customer_id: str
    admin_id: str
    courier_id: str | None = None

    delivery_address: str
    delivery_date: str | None = None
    delivery_time: str

    quantity: int
    calories: int
    special_features: str

    payment_status: str
    payment_method: str
    is_prepaid: bool
    order_status: str

    created_at: str
    updated_at: str
    delivered_at: str | None = None

    @classmethod
    def from_record(cls, order: OrderRecord) -> OrderOut:
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            admin_id=order.admin_id,
            courier_id=order.courier_id,
            delivery_address=order.delivery_address,
            delivery_date=order.delivery_date.isoformat() if order.delivery_date else None,
            delivery_time=order.delivery_time,
            quantity=order.quantity,
            calories=order.calories,
            special_features=order.special_features,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            is_prepaid=order.is_prepaid,
            order_status=order.order_status,
            created_at=order.created_at.isoformat(),
            updated_at=order.updated_at.isoformat(),
            delivered_at=order.delivered_at.isoformat() if order.delivered_at else None,
        )


class OrderStatisticsOut(BaseModel):
    total: int
    by_status: dict[str, int] = Field(default_factory=dict)
    for_date: str | None = None
