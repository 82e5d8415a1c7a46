"""Shared fixtures for market_indexer tests."""

from __future__ import annotations

import httpx
import pytest
from pytest_metadata.plugin import metadata_key

from market_indexer.api.server import create_app
from market_indexer.policy.eligibility import PurchaseEligibilityGate
from market_indexer.projector.handlers import DomainProjector
from market_indexer.service import IndexerService
from market_indexer.storage.sqlite import SQLiteStateStore
from market_indexer.webhooks.idempotency import ProcessedEventLedger

from tests.factories import MARKET_CONTRACT, make_test_config


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add network info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "bsc-testnet (synthetic logs)"
    meta["Market Contract"] = MARKET_CONTRACT
    meta["Store"] = "SQLite :memory:"


@pytest.fixture
def test_config():
    """Default IndexerConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteStateStore."""
    s = SQLiteStateStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def ledger(store):
    return ProcessedEventLedger(store, ttl_seconds=86400)


@pytest.fixture
def projector(store):
    return DomainProjector(store)


@pytest.fixture
def gate(store):
    return PurchaseEligibilityGate(store)


@pytest.fixture
async def service(test_config):
    """Started IndexerService backed by an in-memory store."""
    svc = IndexerService(test_config)
    await svc.start()
    yield svc
    await svc.stop()


@pytest.fixture
async def client(service):
    """HTTP client bound to the app in-process."""
    app = create_app(service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
