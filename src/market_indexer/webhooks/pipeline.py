"""Webhook pipeline - one delivery in, per-log projections out."""

from __future__ import annotations

import logging
from datetime import datetime

from market_indexer.chain.decoder import EventDecoder
from market_indexer.errors import DecodeError, FormatError, StorageUnavailableError
from market_indexer.interfaces.store import StateStore
from market_indexer.models.events import NormalizedLogEntry
from market_indexer.models.records import DeliveryResult
from market_indexer.projector.handlers import DomainProjector
from market_indexer.webhooks.guard import WebhookGuard
from market_indexer.webhooks.idempotency import ProcessedEventLedger
from market_indexer.webhooks.normalizer import normalize, parse_envelope

log = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
FAILED = "failed"


class WebhookPipeline:
    """Authenticates, parses and applies a webhook delivery.

    Request-level failures (signature, shape, staleness) raise before any
    log is touched. After that each log is handled on its own: its ledger
    admit and projection commit together, and a log that cannot be decoded
    is skipped without affecting the rest. Storage failures abort the
    delivery so the notifier redelivers it; logs committed before the
    failure are suppressed as duplicates on redelivery.
    """

    def __init__(
        self,
        guard: WebhookGuard,
        decoder: EventDecoder,
        ledger: ProcessedEventLedger,
        projector: DomainProjector,
        store: StateStore,
        purge_every: int = 100,
    ) -> None:
        self.guard = guard
        self.decoder = decoder
        self.ledger = ledger
        self.projector = projector
        self._store = store
        self._purge_every = purge_every
        self._deliveries = 0

    async def process(
        self, raw_body: bytes, signature: str | None, now: datetime | None = None
    ) -> DeliveryResult:
        self.guard.verify_signature(raw_body, signature)
        envelope = parse_envelope(raw_body)
        self.guard.check_freshness(envelope.created_at, now)

        entries = normalize(envelope)
        result = DeliveryResult(webhook_id=envelope.webhook_id, total_logs=len(entries))

        for entry in entries:
            outcome = await self._process_log(entry, envelope.webhook_id, now)
            if outcome == PROCESSED:
                result.processed += 1
            elif outcome == DUPLICATE:
                result.duplicates += 1
            elif outcome == FAILED:
                result.failed += 1
            else:
                result.ignored += 1

        log.info(
            "Delivery %s (%s): %d logs, %d processed, %d duplicate, %d ignored, %d failed",
            envelope.id, envelope.type, result.total_logs, result.processed,
            result.duplicates, result.ignored, result.failed,
        )

        await self._maybe_purge(now)
        return result

    async def _process_log(
        self, entry: NormalizedLogEntry, webhook_id: str, now: datetime | None
    ) -> str:
        if not self.decoder.recognizes(entry):
            return IGNORED

        try:
            event = self.decoder.decode(entry)
        except DecodeError as exc:
            log.warning(
                "Skipping undecodable log %s:%d: %s",
                entry.transaction_hash, entry.log_index, exc,
            )
            return FAILED
        if event is None:
            return IGNORED

        event_type = type(event).__name__
        try:
            async with self._store.transaction():
                if await self.ledger.admit(entry, event_type, webhook_id, now):
                    return DUPLICATE
                projection = await self.projector.apply(event)
        except FormatError as exc:
            log.warning(
                "Skipping %s at %s:%d: %s",
                event_type, entry.transaction_hash, entry.log_index, exc,
            )
            return FAILED

        return PROCESSED if projection.applied else IGNORED

    async def _maybe_purge(self, now: datetime | None) -> None:
        self._deliveries += 1
        if self._purge_every <= 0 or self._deliveries % self._purge_every:
            return
        try:
            await self.ledger.purge_expired(now)
        except StorageUnavailableError as exc:
            log.warning("Processed-event purge failed: %s", exc)
