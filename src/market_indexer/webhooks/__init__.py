"""Inbound webhook handling: guard, normalizer, idempotency ledger, pipeline."""

from market_indexer.webhooks.guard import WebhookGuard
from market_indexer.webhooks.idempotency import ProcessedEventLedger
from market_indexer.webhooks.normalizer import normalize, parse_envelope
from market_indexer.webhooks.pipeline import WebhookPipeline

__all__ = [
    "WebhookGuard",
    "ProcessedEventLedger",
    "normalize", "parse_envelope",
    "WebhookPipeline",
]
