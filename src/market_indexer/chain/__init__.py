"""EVM chain integration - content id codec and contract event decoding."""

from market_indexer.chain.content_id import from_on_chain, to_on_chain, to_on_chain_hex
from market_indexer.chain.decoder import EventDecoder
from market_indexer.chain.registry import EVENT_REGISTRY, EventSpec

__all__ = [
    "from_on_chain", "to_on_chain", "to_on_chain_hex",
    "EventDecoder", "EVENT_REGISTRY", "EventSpec",
]
