"""Domain events decoded from marketplace contract logs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class NormalizedLogEntry:
    """A single contract log, flattened out of either webhook envelope shape."""

    contract_address: str
    topics: tuple[str, ...]  # 0x-hex, topics[0] is the event signature hash
    data: str  # 0x-hex ABI-encoded non-indexed fields
    transaction_hash: str
    log_index: int
    block_timestamp: datetime | None = None
    block_number: int | None = None

    @property
    def topic0(self) -> str | None:
        return self.topics[0].lower() if self.topics else None


@dataclass(frozen=True)
class AccountRegistered:
    """Emitted when a seller joins through the market contract (PredictorJoined)."""

    wallet: str
    external_id: int  # access pass token id
    joined_at: datetime
    referrer: str | None = None
    referral_paid: bool = False
    tx_hash: str = ""


@dataclass(frozen=True)
class AccountPassMinted:
    """Emitted on every access pass mint (PredictorNFTMinted).

    Only administrative mints create a profile; regular mints are always
    accompanied by AccountRegistered.
    """

    wallet: str
    external_id: int
    is_admin_mint: bool
    joined_at: datetime
    tx_hash: str = ""


@dataclass(frozen=True)
class AccessRevocationChanged:
    """Emitted when a wallet's access is revoked or restored (PredictorBlacklisted)."""

    wallet: str
    revoked: bool
    tx_hash: str = ""


@dataclass(frozen=True)
class ContentPurchased:
    """Emitted when a buyer purchases a listing (SignalPurchased)."""

    buyer: str
    seller: str
    on_chain_content_id: bytes  # 32 bytes
    price: int  # token base units
    purchase_id: int  # receipt token id
    tx_hash: str
    total_cost: int = 0
    purchased_at: datetime | None = None


DomainEvent = Union[
    AccountRegistered, AccountPassMinted, AccessRevocationChanged, ContentPurchased
]
