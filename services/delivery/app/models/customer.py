from __future__ import annotations

from packages.shared.schemas.order_v1 import OrderPatternV1
from pydantic import BaseModel, Field

from services.delivery.app.services.store_base import CustomerRecord


class CustomerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=3)
    address: str = Field(..., min_length=1)
    calories: int = Field(2000, ge=0)
    preferences: str = ""
    order_pattern: OrderPatternV1 | None = None
    delivery_days: dict[str, bool] | None = None
    is_active: bool = True


class CustomerOut(BaseModel):
    id: str
    name: str
    phone: str
    address: str
    calories: int
    preferences: str
    order_pattern: str | None = None
    delivery_days: dict[str, bool] | None = None
    is_active: bool
    created_at: str
    last_auto_order_check: str | None = None

    @classmethod
    def from_record(cls, customer: CustomerRecord) -> CustomerOut:
        return cls(
            id=customer.id,
            name=customer.name,
            phone=customer.phone,
            address=customer.address,
            calories=customer.calories,
            preferences=customer.preferences,
            order_pattern=customer.order_pattern,
            delivery_days=customer.delivery_days,
            is_active=customer.is_active,
            created_at=customer.created_at.isoformat(),
            last_auto_order_check=(
                customer.last_auto_order_check.isoformat()
                if customer.last_auto_order_check
                else None
            ),
        )
