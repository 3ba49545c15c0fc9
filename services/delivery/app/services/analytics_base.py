from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol

from services.delivery.app.services.errors import DispatchFailure
from services.delivery.app.services.store_base import OrderRecord


@dataclass(frozen=True, slots=True)
class PurchaseEvent:
    transaction_id: str
    currency: str
    value: float
    items: list[dict[str, Any]] = field(default_factory=list)
    client_id: str | None = None
    coupon: str | None = None
    tax: float | None = None
    shipping: float | None = None
    locale: str | None = None
    region: str | None = None
    utm: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_order(cls, order: OrderRecord, *, currency: str | None = None) -> PurchaseEvent:
        # Order value and line items are not tracked yet; send what is known.
        return cls(
            transaction_id=order.id,
            currency=currency or default_currency(),
            value=0,
            items=[],
        )


class AnalyticsSink(Protocol):
    name: str

    def send_purchase(self, event: PurchaseEvent) -> None:
        """Send one purchase event.

        Raises DispatchFailure only when the endpoint could not be reached.
        """
        ...


def default_currency() -> str:
    return os.getenv("MEALROUTE_ANALYTICS_CURRENCY", "UZS").strip().upper()


def default_timeout_s() -> float:
    return float(os.getenv("MEALROUTE_ANALYTICS_TIMEOUT_S", "5"))


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def post_json(url: str, payload: dict[str, Any], *, sink: str, timeout_s: float) -> int:
    """POST ``payload`` and return the HTTP status.

    Any HTTP answer, including non-2xx, counts as delivered. Only DNS, connection and
    timeout errors raise DispatchFailure.
    """

    req = urllib.request.Request(url, method="POST")
    req.add_header("Content-Type", "application/json")

    try:
        with urllib.request.urlopen(
            req, data=json.dumps(payload).encode("utf-8"), timeout=timeout_s
        ) as resp:
            return resp.status
    except urllib.error.HTTPError as e:
        return e.code
    except urllib.error.URLError as e:
        raise DispatchFailure(sink, str(e.reason)) from e
    except OSError as e:
        # Read timeouts surface as TimeoutError, which is not wrapped in URLError.
        raise DispatchFailure(sink, str(e) or type(e).__name__) from e
