"""HTTP API - FastAPI app, session verification and read model."""

from market_indexer.api.data_api import ReadModel
from market_indexer.api.session import JwtSessionVerifier

__all__ = ["ReadModel", "JwtSessionVerifier"]
