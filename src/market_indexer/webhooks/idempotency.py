"""Processed-event ledger: suppresses replayed log deliveries."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from market_indexer.interfaces.store import StateStore
from market_indexer.models.events import NormalizedLogEntry

log = logging.getLogger(__name__)

DEFAULT_TTL = 86400  # 24h


class ProcessedEventLedger:
    """Remembers which (transaction, log index) pairs have been applied.

    Keys live for ``ttl_seconds``. An expired key is treated as absent, and
    ``purge_expired`` deletes expired rows. Upstream redelivery windows are
    much shorter than the TTL.
    """

    def __init__(self, store: StateStore, ttl_seconds: int = DEFAULT_TTL) -> None:
        self._store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    @staticmethod
    def event_id(tx_hash: str, log_index: int) -> str:
        return f"{tx_hash.lower()}:{log_index}"

    async def admit(
        self,
        entry: NormalizedLogEntry,
        event_type: str,
        webhook_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Record the log. Returns True if it was already seen (a duplicate).

        The check and the insert are one statement, so concurrent admits of
        the same key have exactly one winner.
        """
        now = now or datetime.now(timezone.utc)
        key = self.event_id(entry.transaction_hash, entry.log_index)
        admitted = await self._store.admit_event(
            event_key=key,
            transaction_hash=entry.transaction_hash.lower(),
            log_index=entry.log_index,
            event_type=event_type,
            webhook_id=webhook_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        if not admitted:
            log.debug("Duplicate event %s (%s)", key, event_type)
        return not admitted

    async def seen(self, tx_hash: str, log_index: int, now: datetime | None = None) -> bool:
        return await self._store.is_event_processed(self.event_id(tx_hash, log_index), now)

    async def purge_expired(self, now: datetime | None = None) -> int:
        removed = await self._store.purge_expired_events(now)
        if removed:
            log.info("Purged %d expired processed-event records", removed)
        return removed
