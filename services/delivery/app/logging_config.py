from __future__ import annotations

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from MEALROUTE_LOG_LEVEL (default INFO)."""

    name = (level or os.getenv("MEALROUTE_LOG_LEVEL", "INFO")).strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=_FORMAT)
    logging.getLogger().setLevel(resolved)
