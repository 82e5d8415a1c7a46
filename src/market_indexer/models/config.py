"""Configuration models for the indexer service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Environment(str, Enum):
    """Deployment environment. Safety overrides are ignored in production."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


@dataclass
class WebhookConfig:
    """Inbound delivery verification and replay suppression."""

    signing_key: str = ""  # loaded from env var MARKET_INDEXER_SIGNING_KEY
    skip_signature_verification: bool = False  # never honored in production
    max_event_age: int = 300  # seconds
    max_future_skew: int = 60  # seconds
    processed_event_ttl: int = 86400  # seconds
    purge_every: int = 100  # deliveries between expired-record sweeps


@dataclass
class SessionConfig:
    """Verification of session tokens issued by the auth service."""

    secret: str = ""  # loaded from env var MARKET_INDEXER_SESSION_SECRET
    algorithm: str = "HS256"
    wallet_claim: str = "address"


@dataclass
class IndexerConfig:
    """Complete service configuration."""

    # Server
    environment: Environment = Environment.DEVELOPMENT
    host: str = "127.0.0.1"
    port: int = 3001
    log_level: str = "info"

    # Chain
    network: str = "bsc-testnet"
    contract_addresses: list[str] = field(default_factory=list)  # empty = accept any

    # Storage
    db_path: str = "~/.market_indexer/state.db"

    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION
