"""Shared order schema enums (v1).

The admin panel, the courier app and the backend agree on these string values.
"""

from __future__ import annotations

from enum import Enum


class OrderStatusV1(str, Enum):
    PENDING = "PENDING"
    IN_DELIVERY = "IN_DELIVERY"
    PAUSED = "PAUSED"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class PaymentStatusV1(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"


class PaymentMethodV1(str, Enum):
    CARD = "CARD"
    CASH = "CASH"


class DeliveryActionV1(str, Enum):
    START_DELIVERY = "start_delivery"
    PAUSE_DELIVERY = "pause_delivery"
    RESUME_DELIVERY = "resume_delivery"
    COMPLETE_DELIVERY = "complete_delivery"
    FAIL_DELIVERY = "fail_delivery"


class ActorRoleV1(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    MIDDLE_ADMIN = "MIDDLE_ADMIN"
    LOW_ADMIN = "LOW_ADMIN"
    COURIER = "COURIER"


class OrderPatternV1(str, Enum):
    DAILY = "daily"
    EVERY_OTHER_DAY_EVEN = "every_other_day_even"
    EVERY_OTHER_DAY_ODD = "every_other_day_odd"


class DispatchEventV1(str, Enum):
    ORDER_PAID = "order_paid"
