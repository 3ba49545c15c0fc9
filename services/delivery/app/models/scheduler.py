from __future__ import annotations

from pydantic import BaseModel, Field


class SchedulerRunOut(BaseModel):
    started_at: str
    customers_scanned: int
    customers_eligible: int
    orders_created: int
    failed_customers: list[str] = Field(default_factory=list)
    skipped_reason: str | None = None


class SchedulerHealthOut(BaseModel):
    enabled: bool
    healthy: bool
    backend: str
    tick_count: int
    failed_ticks: int
    last_tick: str | None = None
    interval_seconds: float
