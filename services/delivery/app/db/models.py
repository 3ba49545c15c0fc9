from __future__ import annotations

from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    PrimaryKeyConstraint,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class Admin(Base):
    __tablename__ = "admins"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    address: Mapped[str] = mapped_column(String, nullable=False)
    calories: Mapped[int] = mapped_column(Integer, nullable=False, default=2000)
    preferences: Mapped[str] = mapped_column(String, nullable=False, default="")

    # Named weekly pattern; explicit per-weekday flags in delivery_days win over it.
    order_pattern: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_days: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_auto_order_check: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    order_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)

    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.id"), nullable=False)
    admin_id: Mapped[str] = mapped_column(ForeignKey("admins.id"), nullable=False)
    courier_id: Mapped[str | None] = mapped_column(ForeignKey("admins.id"), nullable=True)

    delivery_address: Mapped[str] = mapped_column(String, nullable=False)
    # NULL means "deliver today".
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_time: Mapped[str] = mapped_column(String, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    calories: Mapped[int] = mapped_column(Integer, nullable=False)
    special_features: Mapped[str] = mapped_column(String, nullable=False, default="")

    payment_status: Mapped[str] = mapped_column(String, nullable=False)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)
    is_prepaid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_status: Mapped[str] = mapped_column(String, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EventDispatch(Base):
    __tablename__ = "event_dispatch"
    __table_args__ = (PrimaryKeyConstraint("order_id", "event_name"),)

    order_id: Mapped[str] = mapped_column(String, nullable=False)
    event_name: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
