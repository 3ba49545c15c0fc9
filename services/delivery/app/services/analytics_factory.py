from __future__ import annotations

from services.delivery.app.services.analytics_base import AnalyticsSink
from services.delivery.app.services.analytics_ga4 import Ga4MeasurementSink
from services.delivery.app.services.analytics_meta import MetaConversionsSink


def get_analytics_sinks() -> list[AnalyticsSink]:
    """Build every analytics sink that has credentials configured.

    An endpoint without credentials is simply left out, so sending to it is a no-op.
    """

    sinks: list[AnalyticsSink] = []
    for build in (Ga4MeasurementSink.from_env, MetaConversionsSink.from_env):
        sink = build()
        if sink is not None:
            sinks.append(sink)
    return sinks
