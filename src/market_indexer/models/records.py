"""Persisted record types and operation results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AccountProfile:
    """A seller account as projected from the ledger."""

    wallet: str  # lowercased 0x address
    external_id: int | None = None
    revoked: bool = False
    sales_count: int = 0
    purchase_count: int = 0
    origin: str = "registration"  # "registration", "admin_mint", "stand_in"
    joined_at: str | None = None  # ISO 8601
    referred_by: str | None = None  # referring account, if any
    referral_paid: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ContentListing:
    """A paid listing. Authoring fields belong to the listing service."""

    content_id: str  # canonical UUID string
    on_chain_id: str  # 0x-hex bytes32
    seller_wallet: str
    active: bool = True
    expires_at: str | None = None  # ISO 8601, None = never
    price: int | None = None
    sales_count: int = 0
    is_stand_in: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass
class PurchaseReceipt:
    """Proof that a purchase transaction was observed and applied."""

    purchase_id: int
    content_id: str
    buyer_wallet: str
    seller_wallet: str
    price: int
    tx_hash: str
    purchased_at: str
    total_cost: int = 0
    created_at: str = ""


@dataclass
class DisputeRecord:
    """A revoked seller's appeal, owned by the dispute service."""

    wallet: str
    status: str = "pending"  # pending, contacted, resolved, rejected
    resolved_at: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    wallet: str | None
    content_id: str | None
    amount: int | None
    message: str
    created_at: str


@dataclass
class ProjectionResult:
    """Outcome of applying one domain event."""

    event_type: str
    applied: bool
    detail: str = ""


@dataclass
class DeliveryResult:
    """Per-delivery counters returned to the webhook caller."""

    webhook_id: str
    total_logs: int = 0
    processed: int = 0
    duplicates: int = 0
    ignored: int = 0  # unrecognized topics, foreign contracts, no-op events
    failed: int = 0  # recognized but undecodable logs


@dataclass
class EligibilityResult:
    """A successful eligibility check."""

    content_id: str
    content_identifier: str  # 0x-hex bytes32
    seller_wallet: str


@dataclass
class RecountSummary:
    """Result of rebuilding sale counters from receipts."""

    listings_updated: int = 0
    profiles_updated: int = 0
