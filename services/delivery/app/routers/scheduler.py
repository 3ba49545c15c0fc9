from __future__ import annotations

from fastapi import APIRouter, Depends
from packages.shared.schemas.order_v1 import ActorRoleV1

from services.delivery.app.models.scheduler import SchedulerHealthOut, SchedulerRunOut
from services.delivery.app.routers.deps import (
    ADMIN_ROLES,
    get_actor,
    get_runtime,
    rate_limited,
    require_role,
)
from services.delivery.app.runtime import Runtime
from services.delivery.app.services.lifecycle import Actor

router = APIRouter()

_SUPER_ADMIN = frozenset({ActorRoleV1.SUPER_ADMIN.value})


@router.post(
    "/v1/admin/scheduler/run",
    response_model=SchedulerRunOut,
    dependencies=[Depends(rate_limited("admin"))],
)
def run_scheduler(
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> SchedulerRunOut:
    require_role(actor, _SUPER_ADMIN)

    report = runtime.scheduler.run_once()
    return SchedulerRunOut(
        started_at=report.started_at.isoformat(),
        customers_scanned=report.customers_scanned,
        customers_eligible=report.customers_eligible,
        orders_created=report.orders_created,
        failed_customers=report.failed_customers,
        skipped_reason=report.skipped_reason,
    )


@router.get("/v1/admin/scheduler/health", response_model=SchedulerHealthOut)
def scheduler_health(
    actor: Actor = Depends(get_actor),
    runtime: Runtime = Depends(get_runtime),
) -> SchedulerHealthOut:
    require_role(actor, ADMIN_ROLES)

    health = runtime.scheduler_backend.health()
    return SchedulerHealthOut(enabled=runtime.scheduler_enabled, **health)
