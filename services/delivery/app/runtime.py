"""Process-wide wiring of stores, limiter, dispatcher, lifecycle and scheduler."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from services.delivery.app.services.analytics_factory import get_analytics_sinks
from services.delivery.app.services.dispatcher import AnalyticsDispatcher
from services.delivery.app.services.ledger import EventDispatchLedger
from services.delivery.app.services.lifecycle import OrderLifecycle
from services.delivery.app.services.rate_limiter import SlidingWindowRateLimiter, limiter_from_env
from services.delivery.app.services.scheduler import AutoOrderScheduler, SchedulerConfig
from services.delivery.app.services.scheduler_backend import ThreadSchedulerBackend
from services.delivery.app.services.sql_store import (
    SqlAdminStore,
    SqlCustomerStore,
    SqlLedgerStore,
    SqlOrderStore,
)
from services.delivery.app.services.store_base import CustomerStore, OrderStore

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "y"}


@dataclass
class Runtime:
    orders: OrderStore
    customers: CustomerStore
    limiter: SlidingWindowRateLimiter
    dispatcher: AnalyticsDispatcher
    lifecycle: OrderLifecycle
    scheduler: AutoOrderScheduler
    scheduler_backend: ThreadSchedulerBackend
    scheduler_enabled: bool = False

    def start(self) -> None:
        self.limiter.start_sweeper()
        self.dispatcher.start()
        if self.scheduler_enabled:
            cfg = self.scheduler.config
            self.scheduler_backend.start(
                self.scheduler.run_once,
                interval_seconds=cfg.interval_seconds,
                initial_delay_seconds=cfg.initial_delay_seconds,
            )
        else:
            logger.info("Auto order scheduler disabled (MEALROUTE_SCHEDULER_ENABLED)")

    def stop(self) -> None:
        self.scheduler_backend.stop()
        self.dispatcher.stop(drain=True)
        self.limiter.stop_sweeper()


def build_runtime() -> Runtime:
    """Build the SQL-backed runtime from environment configuration."""

    orders = SqlOrderStore()
    customers = SqlCustomerStore()

    dispatcher = AnalyticsDispatcher.from_env(
        EventDispatchLedger(SqlLedgerStore()), get_analytics_sinks()
    )
    return Runtime(
        orders=orders,
        customers=customers,
        limiter=limiter_from_env(),
        dispatcher=dispatcher,
        lifecycle=OrderLifecycle.from_env(orders, dispatcher),
        scheduler=AutoOrderScheduler(
            orders, customers, SqlAdminStore(), config=SchedulerConfig.from_env()
        ),
        scheduler_backend=ThreadSchedulerBackend(),
        scheduler_enabled=_env_flag("MEALROUTE_SCHEDULER_ENABLED", "false"),
    )
