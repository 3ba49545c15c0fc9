from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from services.delivery.app.db.database import db_session
from services.delivery.app.db.models import Admin, Customer, EventDispatch, Order
from services.delivery.app.services.errors import ConflictError, LedgerUnavailableError
from services.delivery.app.services.store_base import (
    CustomerRecord,
    NewOrder,
    OrderRecord,
    new_order_fields,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class SqlOrderStore:
    # Shared by every instance in the process; the unique index on order_number
    # covers writers in other processes.
    _number_lock = threading.Lock()

    def __init__(
        self, session_factory: SessionFactory = db_session, *, max_attempts: int = 5
    ) -> None:
        self._session_factory = session_factory
        self._max_attempts = max_attempts

    def find_max_order_number(self) -> int:
        db = self._session_factory()
        try:
            return _max_order_number(db)
        finally:
            db.close()

    def create_order(self, order: NewOrder) -> OrderRecord:
        for attempt in range(1, self._max_attempts + 1):
            with self._number_lock:
                db = self._session_factory()
                try:
                    number = _max_order_number(db) + 1
                    now = datetime.now(UTC)
                    row = Order(
                        id=uuid4().hex,
                        order_number=number,
                        courier_id=None,
                        created_at=now,
                        updated_at=now,
                        **new_order_fields(order),
                    )
                    db.add(row)
                    db.commit()
                    return _order_record(row)
                except IntegrityError:
                    db.rollback()
                    if not _order_number_taken(db, number):
                        raise
                    logger.warning(
                        "Order number %s already taken (attempt %s/%s)",
                        number,
                        attempt,
                        self._max_attempts,
                    )
                finally:
                    db.close()

        raise RuntimeError(
            f"Could not allocate an order number after {self._max_attempts} attempts"
        )

    def update_order(
        self,
        order_id: str,
        fields: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> OrderRecord | None:
        db = self._session_factory()
        try:
            stmt = update(Order).where(Order.id == order_id)
            if expected_status is not None:
                stmt = stmt.where(Order.order_status == expected_status)
            result = db.execute(stmt.values(**fields).execution_options(synchronize_session=False))
            db.commit()
            if result.rowcount == 0:
                return None

            row = db.get(Order, order_id)
            return _order_record(row) if row is not None else None
        finally:
            db.close()

    def find_order(self, order_id: str) -> OrderRecord | None:
        db = self._session_factory()
        try:
            row = db.get(Order, order_id)
            return _order_record(row) if row is not None else None
        finally:
            db.close()

    def count_orders(
        self,
        *,
        customer_id: str | None = None,
        status: str | None = None,
        delivery_date: date | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(Order)
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Order.order_status == status)
        if delivery_date is not None:
            stmt = stmt.where(Order.delivery_date == delivery_date)

        db = self._session_factory()
        try:
            return int(db.scalar(stmt) or 0)
        finally:
            db.close()

    def next_pending(self, for_date: date) -> OrderRecord | None:
        day_start = datetime.combine(for_date, time.min, tzinfo=UTC)
        stmt = (
            select(Order)
            .where(Order.order_status == "PENDING")
            .where(
                or_(
                    Order.delivery_date == for_date,
                    and_(Order.delivery_date.is_(None), Order.created_at >= day_start),
                )
            )
            .order_by(Order.delivery_date.asc(), Order.created_at.asc())
            .limit(1)
        )

        db = self._session_factory()
        try:
            row = db.scalars(stmt).first()
            return _order_record(row) if row is not None else None
        finally:
            db.close()


class SqlCustomerStore:
    def __init__(self, session_factory: SessionFactory = db_session) -> None:
        self._session_factory = session_factory

    def list_active(self) -> list[CustomerRecord]:
        db = self._session_factory()
        try:
            rows = db.scalars(
                select(Customer).where(Customer.is_active.is_(True)).order_by(Customer.created_at)
            ).all()
            return [_customer_record(r) for r in rows]
        finally:
            db.close()

    def find_by_id(self, customer_id: str) -> CustomerRecord | None:
        db = self._session_factory()
        try:
            row = db.get(Customer, customer_id)
            return _customer_record(row) if row is not None else None
        finally:
            db.close()

    def touch_last_check(self, customer_id: str, timestamp: datetime) -> None:
        db = self._session_factory()
        try:
            db.execute(
                update(Customer)
                .where(Customer.id == customer_id)
                .values(last_auto_order_check=timestamp)
            )
            db.commit()
        finally:
            db.close()

    def create_customer(self, customer: CustomerRecord) -> CustomerRecord:
        db = self._session_factory()
        try:
            row = Customer(
                id=customer.id,
                name=customer.name,
                phone=customer.phone,
                address=customer.address,
                calories=customer.calories,
                preferences=customer.preferences,
                order_pattern=customer.order_pattern,
                delivery_days=customer.delivery_days,
                is_active=customer.is_active,
                created_at=customer.created_at,
                last_auto_order_check=customer.last_auto_order_check,
            )
            db.add(row)
            db.commit()
            return _customer_record(row)
        except IntegrityError as e:
            db.rollback()
            raise ConflictError(f"Customer with phone {customer.phone} already exists") from e
        finally:
            db.close()


class SqlAdminStore:
    def __init__(self, session_factory: SessionFactory = db_session) -> None:
        self._session_factory = session_factory

    def find_default_owner(self) -> str | None:
        db = self._session_factory()
        try:
            return db.scalar(
                select(Admin.id)
                .where(Admin.role == "SUPER_ADMIN", Admin.is_active.is_(True))
                .order_by(Admin.created_at.asc())
                .limit(1)
            )
        finally:
            db.close()


class SqlLedgerStore:
    def __init__(self, session_factory: SessionFactory = db_session) -> None:
        self._session_factory = session_factory

    def exists(self, entity_id: str, event_name: str) -> bool:
        try:
            db = self._session_factory()
            try:
                return db.get(EventDispatch, (entity_id, event_name)) is not None
            finally:
                db.close()
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(str(e)) from e

    def insert(self, entity_id: str, event_name: str) -> bool:
        try:
            db = self._session_factory()
            try:
                db.add(EventDispatch(order_id=entity_id, event_name=event_name))
                db.commit()
                return True
            except IntegrityError:
                db.rollback()
                return False
            finally:
                db.close()
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(str(e)) from e


def _max_order_number(db: Session) -> int:
    return int(db.scalar(select(func.max(Order.order_number))) or 0)


def _order_number_taken(db: Session, number: int) -> bool:
    return db.scalar(select(Order.id).where(Order.order_number == number)) is not None


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _order_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        order_number=row.order_number,
        customer_id=row.customer_id,
        admin_id=row.admin_id,
        courier_id=row.courier_id,
        delivery_address=row.delivery_address,
        delivery_date=row.delivery_date,
        delivery_time=row.delivery_time,
        quantity=row.quantity,
        calories=row.calories,
        special_features=row.special_features,
        payment_status=row.payment_status,
        payment_method=row.payment_method,
        is_prepaid=row.is_prepaid,
        order_status=row.order_status,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        delivered_at=_aware(row.delivered_at),
    )


def _customer_record(row: Customer) -> CustomerRecord:
    return CustomerRecord(
        id=row.id,
        name=row.name,
        phone=row.phone,
        address=row.address,
        calories=row.calories,
        preferences=row.preferences or "",
        order_pattern=row.order_pattern,
        delivery_days=row.delivery_days,
        is_active=row.is_active,
        created_at=_aware(row.created_at),
        last_auto_order_check=_aware(row.last_auto_order_check),
    )
