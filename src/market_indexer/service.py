"""Service wiring - builds every component from the configuration."""

from __future__ import annotations

import logging

from market_indexer.api.data_api import ReadModel
from market_indexer.api.session import JwtSessionVerifier
from market_indexer.chain.decoder import EventDecoder
from market_indexer.config import validate_config
from market_indexer.interfaces.session import SessionVerifier
from market_indexer.interfaces.store import StateStore
from market_indexer.models.config import IndexerConfig
from market_indexer.policy.eligibility import PurchaseEligibilityGate
from market_indexer.projector.handlers import DomainProjector
from market_indexer.storage.sqlite import SQLiteStateStore
from market_indexer.webhooks.guard import WebhookGuard
from market_indexer.webhooks.idempotency import ProcessedEventLedger
from market_indexer.webhooks.pipeline import WebhookPipeline

log = logging.getLogger(__name__)


class IndexerService:
    """Owns the store and the components that share it.

    The HTTP app calls ``start``/``stop`` from its lifespan; tests and CLI
    commands call them directly.
    """

    def __init__(
        self,
        cfg: IndexerConfig,
        store: StateStore | None = None,
        sessions: SessionVerifier | None = None,
    ) -> None:
        self.cfg = cfg
        self._started = False

        self.store: StateStore = store or SQLiteStateStore(cfg.db_path)
        self.guard = WebhookGuard(
            cfg.webhook.signing_key,
            environment=cfg.environment,
            skip_verification=cfg.webhook.skip_signature_verification,
            max_age=cfg.webhook.max_event_age,
            max_future_skew=cfg.webhook.max_future_skew,
        )
        self.decoder = EventDecoder(cfg.contract_addresses)
        self.ledger = ProcessedEventLedger(self.store, cfg.webhook.processed_event_ttl)
        self.projector = DomainProjector(self.store)
        self.pipeline = WebhookPipeline(
            self.guard, self.decoder, self.ledger, self.projector, self.store,
            purge_every=cfg.webhook.purge_every,
        )
        self.gate = PurchaseEligibilityGate(self.store)
        self.sessions: SessionVerifier = sessions or JwtSessionVerifier(
            cfg.session.secret, cfg.session.algorithm, cfg.session.wallet_claim,
        )
        self.read_model = ReadModel(self.store, cfg.environment.value)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        log.info("Starting market_indexer")
        log.info("  Environment: %s", self.cfg.environment.value)
        log.info("  Network: %s", self.cfg.network)
        log.info("  Database: %s", self.cfg.db_path)
        log.info(
            "  Signature verification: %s",
            "on" if self.guard.verification_enabled else "OFF",
        )
        if self.cfg.contract_addresses:
            log.info("  Contracts: %s", ", ".join(self.cfg.contract_addresses))

        await self.store.initialize()
        self._started = True
        await self.store.log_activity("service_started", "Indexer started")

    async def stop(self) -> None:
        if not self._started:
            return
        await self.store.log_activity("service_stopped", "Indexer stopped")
        await self.store.close()
        self._started = False
        log.info("Indexer shut down cleanly")


async def run_server(cfg: IndexerConfig) -> None:
    """Entry point for serving the HTTP API."""
    import uvicorn

    from market_indexer.api.server import create_app

    validate_config(cfg)
    service = IndexerService(cfg)
    app = create_app(service)
    server = uvicorn.Server(
        uvicorn.Config(app, host=cfg.host, port=cfg.port, log_level=cfg.log_level)
    )
    await server.serve()
