from __future__ import annotations

from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException

from services.delivery.app.models.customer import CustomerCreateRequest, CustomerOut
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
from services.delivery.app.services.errors import ConflictError
from services.delivery.app.services.lifecycle import Actor
from services.delivery.app.services.scheduler import WEEKDAYS
from services.delivery.app.services.store_base import CustomerRecord

router = APIRouter()


@router.post(
    "/v1/customers", response_model=CustomerOut, dependencies=[Depends(rate_limited("admin"))]
)
def create_customer(
    payload: CustomerCreateRequest,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> CustomerOut:
    require_role(actor, ADMIN_ROLES)

    if payload.delivery_days:
        unknown = sorted(set(payload.delivery_days) - set(WEEKDAYS))
        if unknown:
            raise HTTPException(status_code=422, detail=f"Unknown weekdays: {', '.join(unknown)}")

    record = CustomerRecord(
        id=uuid4().hex,
        name=payload.name,
        phone=payload.phone,
        address=payload.address,
        calories=payload.calories,
        preferences=payload.preferences,
        order_pattern=payload.order_pattern.value if payload.order_pattern else None,
        delivery_days=payload.delivery_days,
        is_active=payload.is_active,
        created_at=utcnow(),
    )
    try:
        created = runtime.customers.create_customer(record)
    except ConflictError as e:
        raise_domain_http_error(e)
    return CustomerOut.from_record(created)


@router.get("/v1/customers/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> CustomerOut:
    require_role(actor, ADMIN_ROLES)

    customer = runtime.customers.find_by_id(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return CustomerOut.from_record(customer)
