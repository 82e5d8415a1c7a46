"""Static registry of the contract events the indexer understands.

Each entry maps topic0 (keccak-256 of the canonical event signature) to the
event's field layout and a builder that turns decoded values into a domain
event.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from web3 import Web3

from market_indexer.models.events import (
    AccessRevocationChanged,
    AccountPassMinted,
    AccountRegistered,
    ContentPurchased,
    DomainEvent,
    NormalizedLogEntry,
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class EventField:
    name: str
    abi_type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventSpec:
    """Layout of one contract event and how to build its domain event."""

    name: str
    fields: tuple[EventField, ...]
    build: Callable[[dict[str, Any], NormalizedLogEntry], DomainEvent]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(f.abi_type for f in self.fields)})"

    @property
    def topic0(self) -> str:
        return Web3.to_hex(Web3.keccak(text=self.signature)).lower()

    @property
    def indexed_fields(self) -> tuple[EventField, ...]:
        return tuple(f for f in self.fields if f.indexed)

    @property
    def data_fields(self) -> tuple[EventField, ...]:
        return tuple(f for f in self.fields if not f.indexed)


def _wallet(value: str) -> str:
    return value.lower()


def _log_time(entry: NormalizedLogEntry) -> datetime:
    return entry.block_timestamp or datetime.now(timezone.utc)


# ── Builders ───────────────────────────────────────────────


def _build_joined(v: dict[str, Any], entry: NormalizedLogEntry) -> AccountRegistered:
    referrer = _wallet(v["referrer"])
    return AccountRegistered(
        wallet=_wallet(v["predictor"]),
        external_id=v["nftTokenId"],
        joined_at=_log_time(entry),
        referrer=None if referrer == ZERO_ADDRESS else referrer,
        referral_paid=v["referralPaid"],
        tx_hash=entry.transaction_hash,
    )


def _build_minted(v: dict[str, Any], entry: NormalizedLogEntry) -> AccountPassMinted:
    return AccountPassMinted(
        wallet=_wallet(v["predictor"]),
        external_id=v["tokenId"],
        is_admin_mint=v["isOwnerMint"],
        joined_at=_log_time(entry),
        tx_hash=entry.transaction_hash,
    )


def _build_blacklisted(
    v: dict[str, Any], entry: NormalizedLogEntry
) -> AccessRevocationChanged:
    return AccessRevocationChanged(
        wallet=_wallet(v["predictor"]),
        revoked=v["status"],
        tx_hash=entry.transaction_hash,
    )


def _build_purchased(v: dict[str, Any], entry: NormalizedLogEntry) -> ContentPurchased:
    return ContentPurchased(
        buyer=_wallet(v["buyer"]),
        seller=_wallet(v["predictor"]),
        on_chain_content_id=bytes(v["contentIdentifier"]),
        price=v["signalPrice"],
        purchase_id=v["receiptTokenId"],
        tx_hash=entry.transaction_hash,
        total_cost=v["totalCost"],
        purchased_at=_log_time(entry),
    )


# ── Registry ───────────────────────────────────────────────

ACCOUNT_REGISTERED = EventSpec(
    name="PredictorJoined",
    fields=(
        EventField("predictor", "address", indexed=True),
        EventField("referrer", "address", indexed=True),
        EventField("nftTokenId", "uint256"),
        EventField("referralPaid", "bool"),
    ),
    build=_build_joined,
)

ACCOUNT_PASS_MINTED = EventSpec(
    name="PredictorNFTMinted",
    fields=(
        EventField("predictor", "address", indexed=True),
        EventField("tokenId", "uint256", indexed=True),
        EventField("isOwnerMint", "bool"),
    ),
    build=_build_minted,
)

ACCESS_REVOCATION_CHANGED = EventSpec(
    name="PredictorBlacklisted",
    fields=(
        EventField("predictor", "address", indexed=True),
        EventField("status", "bool"),
    ),
    build=_build_blacklisted,
)

CONTENT_PURCHASED = EventSpec(
    name="SignalPurchased",
    fields=(
        EventField("buyer", "address", indexed=True),
        EventField("predictor", "address", indexed=True),
        EventField("receiptTokenId", "uint256", indexed=True),
        EventField("contentIdentifier", "bytes32"),
        EventField("signalPrice", "uint256"),
        EventField("totalCost", "uint256"),
    ),
    build=_build_purchased,
)

EVENT_REGISTRY: dict[str, EventSpec] = {
    spec.topic0: spec
    for spec in (
        ACCOUNT_REGISTERED,
        ACCOUNT_PASS_MINTED,
        ACCESS_REVOCATION_CHANGED,
        CONTENT_PURCHASED,
    )
}


def lookup(topic0: str | None) -> EventSpec | None:
    if not topic0:
        return None
    return EVENT_REGISTRY.get(topic0.lower())
