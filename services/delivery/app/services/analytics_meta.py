from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from urllib.parse import quote

from services.delivery.app.services.analytics_base import (
    PurchaseEvent,
    default_timeout_s,
    drop_none,
    post_json,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MetaConfig:
    pixel_id: str
    access_token: str
    graph_url: str
    timeout_s: float


class MetaConversionsSink:
    """Meta Conversions API "Purchase" event.

    Env vars:
    - META_PIXEL_ID, META_ACCESS_TOKEN (both required, otherwise the sink is not built)
    - META_GRAPH_URL (default: https://graph.facebook.com/v19.0)
    """

    name = "meta"

    def __init__(self, cfg: MetaConfig) -> None:
        self._cfg = cfg

    @classmethod
    def from_env(cls) -> MetaConversionsSink | None:
        pixel_id = os.getenv("META_PIXEL_ID", "").strip()
        access_token = os.getenv("META_ACCESS_TOKEN", "").strip()
        if not pixel_id or not access_token:
            return None

        graph_url = os.getenv("META_GRAPH_URL", "https://graph.facebook.com/v19.0").rstrip("/")

        return cls(
            MetaConfig(
                pixel_id=pixel_id,
                access_token=access_token,
                graph_url=graph_url,
                timeout_s=default_timeout_s(),
            )
        )

    def send_purchase(self, event: PurchaseEvent) -> None:
        url = (
            f"{self._cfg.graph_url}/{quote(self._cfg.pixel_id, safe='')}/events"
            f"?access_token={quote(self._cfg.access_token, safe='')}"
        )

        payload = {
            "data": [
                {
                    "event_name": "Purchase",
                    "event_id": event.transaction_id,
                    "event_time": int(time.time()),
                    "action_source": "website",
                    "custom_data": drop_none(
                        {
                            "currency": event.currency,
                            "value": event.value,
                            "contents": event.items or None,
                        }
                    ),
                    "user_data": {},
                }
            ]
        }

        status = post_json(url, payload, sink=self.name, timeout_s=self._cfg.timeout_s)
        logger.debug("Meta purchase %s answered HTTP %s", event.transaction_id, status)
