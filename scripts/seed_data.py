from __future__ import annotations

import argparse
from datetime import UTC, datetime, timedelta

from packages.shared.schemas.order_v1 import ActorRoleV1, OrderPatternV1
from services.delivery.app.db.database import db_session
from services.delivery.app.db.init_db import init_db
from services.delivery.app.db.models import Admin, Customer
from services.delivery.app.logging_config import configure_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed minimal MealRoute data")
    parser.add_argument("--admin-id", default="admin-1")
    parser.add_argument("--admin-name", default="Owner")
    parser.add_argument("--courier-id", default="courier-1")
    parser.add_argument("--courier-name", default="Courier 1")
    parser.add_argument("--customer-id", default="cust-1")
    parser.add_argument("--customer-phone", default="+998900000001")
    parser.add_argument(
        "--pattern",
        default=OrderPatternV1.DAILY.value,
        choices=[p.value for p in OrderPatternV1],
    )
    parser.add_argument(
        "--backdate-days",
        type=int,
        default=30,
        help="Age of the seeded customer, so the next scheduler run picks it up",
    )
    args = parser.parse_args()

    configure_logging()
    init_db()

    db = db_session()
    try:
        for admin_id, name, role in (
            (args.admin_id, args.admin_name, ActorRoleV1.SUPER_ADMIN.value),
            (args.courier_id, args.courier_name, ActorRoleV1.COURIER.value),
        ):
            if db.get(Admin, admin_id) is None:
                db.add(Admin(id=admin_id, name=name, role=role, is_active=True))

        if db.get(Customer, args.customer_id) is None:
            db.add(
                Customer(
                    id=args.customer_id,
                    name="Sample Customer",
                    phone=args.customer_phone,
                    address="Tashkent, Amir Temur 1",
                    calories=2000,
                    preferences="no nuts",
                    order_pattern=args.pattern,
                    is_active=True,
                    created_at=datetime.now(UTC) - timedelta(days=args.backdate_days),
                )
            )

        db.commit()
        print(f"Seeded admin={args.admin_id} courier={args.courier_id} customer={args.customer_id}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
