from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from urllib.parse import quote

from services.delivery.app.services.analytics_base import (
    PurchaseEvent,
    default_timeout_s,
    drop_none,
    post_json,
)

logger = logging.getLogger(__name__)

_UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")


@dataclass(frozen=True, slots=True)
class Ga4Config:
    measurement_id: str
    api_secret: str
    endpoint: str
    timeout_s: float


class Ga4MeasurementSink:
    """GA4 Measurement Protocol "purchase" event.

    Env vars:
    - GA4_MEASUREMENT_ID, GA4_API_SECRET (both required, otherwise the sink is not built)
    - GA4_ENDPOINT (default: https://www.google-analytics.com/mp/collect)
    """

    name = "ga4"

    def __init__(self, cfg: Ga4Config) -> None:
        self._cfg = cfg

    @classmethod
    def from_env(cls) -> Ga4MeasurementSink | None:
        measurement_id = os.getenv("GA4_MEASUREMENT_ID", "").strip()
        api_secret = os.getenv("GA4_API_SECRET", "").strip()
        if not measurement_id or not api_secret:
            return None

        return cls(
            Ga4Config(
                measurement_id=measurement_id,
                api_secret=api_secret,
                endpoint=os.getenv("GA4_ENDPOINT", "https://www.google-analytics.com/mp/collect"),
                timeout_s=default_timeout_s(),
            )
        )

    def send_purchase(self, event: PurchaseEvent) -> None:
        url = (
            f"{self._cfg.endpoint}?measurement_id={quote(self._cfg.measurement_id, safe='')}"
            f"&api_secret={quote(self._cfg.api_secret, safe='')}"
        )

        params = drop_none(
            {
                "transaction_id": event.transaction_id,
                "currency": event.currency,
                "value": event.value,
                "items": event.items or None,
                "coupon": event.coupon,
                "tax": event.tax,
                "shipping": event.shipping,
                "locale": event.locale,
                "region": event.region,
                **{key: event.utm.get(key) for key in _UTM_KEYS},
            }
        )
        body = {
            "client_id": event.client_id or surrogate_client_id(event.transaction_id),
            "events": [{"name": "purchase", "params": params}],
        }

        status = post_json(url, body, sink=self.name, timeout_s=self._cfg.timeout_s)
        logger.debug("GA4 purchase %s answered HTTP %s", event.transaction_id, status)


def surrogate_client_id(seed: str) -> str:
    """Stable GA4 client id for server-side events without a browser id."""
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:32]
