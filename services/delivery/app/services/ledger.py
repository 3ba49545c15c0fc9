from __future__ import annotations

import logging

from services.delivery.app.services.errors import LedgerUnavailableError
from services.delivery.app.services.store_base import LedgerStore

logger = logging.getLogger(__name__)


class EventDispatchLedger:
    """Durable at-most-once marker for (entity, event name) pairs.

    Bookkeeping is best-effort: an unreachable store reads as "not dispatched" and a
    failed write is only logged. A ledger outage can therefore cause a duplicate send,
    which is preferred over losing a purchase confirmation.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def has_dispatched(self, entity_id: str, event_name: str) -> bool:
        try:
            return self._store.exists(entity_id, event_name)
        except LedgerUnavailableError as e:
            logger.warning(
                "Ledger unavailable, treating %s/%s as not dispatched: %s",
                entity_id,
                event_name,
                e,
            )
            return False

    def mark_dispatched(self, entity_id: str, event_name: str) -> None:
        try:
            created = self._store.insert(entity_id, event_name)
        except LedgerUnavailableError as e:
            logger.warning("Ledger write failed for %s/%s: %s", entity_id, event_name, e)
            return

        if not created:
            logger.info("Dispatch of %s/%s was already recorded", entity_id, event_name)
