"""Protocol interfaces for market_indexer components."""

from market_indexer.interfaces.session import SessionVerifier
from market_indexer.interfaces.store import StateStore

__all__ = [
    "SessionVerifier",
    "StateStore",
]
