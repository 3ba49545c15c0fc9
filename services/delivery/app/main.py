"""MealRoute delivery service entrypoint."""

from fastapi import FastAPI

from services.delivery.app.db.init_db import init_db
from services.delivery.app.logging_config import configure_logging
from services.delivery.app.routers.customer import router as customer_router
from services.delivery.app.routers.order import router as order_router
from services.delivery.app.routers.scheduler import router as scheduler_router
from services.delivery.app.runtime import build_runtime

app = FastAPI(title="MealRoute Delivery API")

app.include_router(customer_router)
app.include_router(order_router)
app.include_router(scheduler_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()
    app.state.runtime = build_runtime()
    app.state.runtime.start()


@app.on_event("shutdown")
def _shutdown() -> None:
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        runtime.stop()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
