from __future__ import annotations

import argparse
import json
from dataclasses import replace

from services.delivery.app.db.init_db import init_db
from services.delivery.app.logging_config import configure_logging
from services.delivery.app.services.scheduler import AutoOrderScheduler, SchedulerConfig
from services.delivery.app.services.sql_store import (
    SqlAdminStore,
    SqlCustomerStore,
    SqlOrderStore,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one auto order scheduler pass")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--horizon-days", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    init_db()

    config = SchedulerConfig.from_env()
    if args.workers is not None:
        config = replace(config, workers=args.workers)
    if args.horizon_days is not None:
        config = replace(config, horizon_days=args.horizon_days)

    scheduler = AutoOrderScheduler(
        SqlOrderStore(), SqlCustomerStore(), SqlAdminStore(), config=config
    )
    report = scheduler.run_once()

    print(
        json.dumps(
            {
                "started_at": report.started_at.isoformat(),
                "customers_scanned": report.customers_scanned,
                "customers_eligible": report.customers_eligible,
                "orders_created": report.orders_created,
                "failed_customers": report.failed_customers,
                "skipped_reason": report.skipped_reason,
            },
            indent=2,
        )
    )
    return 1 if report.skipped_reason else 0


if __name__ == "__main__":
    raise SystemExit(main())
