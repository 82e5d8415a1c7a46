"""JSON-serializable snapshot models for the HTTP read endpoints and CLI."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


def to_dict(obj: Any) -> dict:
    """Recursively convert a snapshot dataclass to a plain dict."""
    return asdict(obj)


@dataclass
class ReceiptSnapshot:
    purchase_id: str  # uint256 as decimal string
    content_id: str
    content_identifier: str  # 0x-hex bytes32
    buyer: str
    seller: str
    price: str  # base units as decimal string, may exceed 2**53
    total_cost: str
    tx_hash: str
    purchased_at: str


@dataclass
class ProfileSnapshot:
    wallet: str
    external_id: int | None
    revoked: bool
    sales_count: int
    purchase_count: int
    origin: str
    joined_at: str | None
    referred_by: str | None = None
    referral_paid: bool = False
    dispute_status: str | None = None


@dataclass
class ListingSnapshot:
    content_id: str
    content_identifier: str
    seller: str
    active: bool
    expires_at: str | None
    sales_count: int
    stand_in: bool


@dataclass
class IndexerSummary:
    environment: str
    profiles: int = 0
    revoked_profiles: int = 0
    listings: int = 0
    receipts: int = 0
    processed_events: int = 0
    recent_activity: list[dict] = field(default_factory=list)
