"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from market_indexer.errors import ConfigError
from market_indexer.models.config import (
    Environment,
    IndexerConfig,
    SessionConfig,
    WebhookConfig,
)

_TRUTHY = {"1", "true", "yes", "on"}


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "MARKET_INDEXER_",
) -> IndexerConfig:
    """Load service configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (MARKET_INDEXER_SIGNING_KEY, etc.)
        2. TOML config file
        3. Defaults from IndexerConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = IndexerConfig()

    # ── Server section ─────────────────────────────────────
    server = raw.get("server", {})
    if v := server.get("environment"):
        cfg.environment = _environment(v)
    if v := server.get("host"):
        cfg.host = str(v)
    if v := server.get("port"):
        cfg.port = int(v)
    if v := server.get("log_level"):
        cfg.log_level = str(v)

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    if v := chain.get("network"):
        cfg.network = str(v)
    if v := chain.get("contract_addresses"):
        cfg.contract_addresses = [str(a).lower() for a in v]

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Webhook section ────────────────────────────────────
    webhook_raw = raw.get("webhook", {})
    cfg.webhook = WebhookConfig(
        signing_key=str(webhook_raw.get("signing_key", "")),
        skip_signature_verification=bool(
            webhook_raw.get("skip_signature_verification", False)
        ),
        max_event_age=int(webhook_raw.get("max_event_age", 300)),
        max_future_skew=int(webhook_raw.get("max_future_skew", 60)),
        processed_event_ttl=int(webhook_raw.get("processed_event_ttl", 86400)),
        purge_every=int(webhook_raw.get("purge_every", 100)),
    )

    # ── Session section ────────────────────────────────────
    session_raw = raw.get("session", {})
    cfg.session = SessionConfig(
        secret=str(session_raw.get("secret", "")),
        algorithm=str(session_raw.get("algorithm", "HS256")),
        wallet_claim=str(session_raw.get("wallet_claim", "address")),
    )

    # ── Environment variable overrides (highest priority) ──
    if env := os.environ.get(f"{env_prefix}ENVIRONMENT"):
        cfg.environment = _environment(env)
    if key := os.environ.get(f"{env_prefix}SIGNING_KEY"):
        cfg.webhook.signing_key = key
    if skip := os.environ.get(f"{env_prefix}SKIP_SIGNATURE"):
        cfg.webhook.skip_signature_verification = skip.strip().lower() in _TRUTHY
    if secret := os.environ.get(f"{env_prefix}SESSION_SECRET"):
        cfg.session.secret = secret
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db
    if port := os.environ.get(f"{env_prefix}PORT"):
        cfg.port = int(port)
    if host := os.environ.get(f"{env_prefix}HOST"):
        cfg.host = host

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def validate_config(cfg: IndexerConfig) -> None:
    """Reject configurations that must never reach a running service."""
    if cfg.is_production and not cfg.webhook.signing_key:
        raise ConfigError(
            "webhook signing key is required in production "
            "(set MARKET_INDEXER_SIGNING_KEY or [webhook] signing_key)"
        )
    if cfg.webhook.max_event_age <= 0:
        raise ConfigError("webhook.max_event_age must be positive")
    if cfg.webhook.processed_event_ttl < cfg.webhook.max_event_age:
        raise ConfigError(
            "webhook.processed_event_ttl must not be shorter than webhook.max_event_age"
        )


def _environment(value: str) -> Environment:
    try:
        return Environment(str(value).strip().lower())
    except ValueError:
        raise ConfigError(f"unknown environment: {value!r}") from None
