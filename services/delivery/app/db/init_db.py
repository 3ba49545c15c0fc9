from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy.engine import make_url

from services.delivery.app.db.database import get_engine
from services.delivery.app.db.models import Base

logger = logging.getLogger(__name__)


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or not parsed.database:
        return
    if parsed.database == ":memory:":
        return
    Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def init_db() -> None:
    """Create missing tables unless MEALROUTE_DB_AUTO_CREATE is off."""

    flag = os.getenv("MEALROUTE_DB_AUTO_CREATE", "true").strip().lower()
    if flag not in {"1", "true", "yes", "y"}:
        logger.info("Skipping table creation (MEALROUTE_DB_AUTO_CREATE=%s)", flag)
        return

    engine = get_engine()
    _ensure_sqlite_dir(str(engine.url))
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured on %s", engine.url.render_as_string(hide_password=True))
