"""StateStore protocol - the off-chain projection of marketplace ledger state."""

from __future__ import annotations

from datetime import datetime
from typing import AsyncContextManager, Protocol

from market_indexer.models.records import (
    AccountProfile,
    ActivityRecord,
    ContentListing,
    DisputeRecord,
    PurchaseReceipt,
    RecountSummary,
)


class StateStore(Protocol):
    """Persists processed-event keys and the projected domain records."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        """Close the database connection."""
        ...

    def transaction(self) -> AsyncContextManager["StateStore"]:
        """Group writes into one atomic unit. Reentrant within a task."""
        ...

    # ── Processed events ───────────────────────────────────

    async def admit_event(
        self,
        event_key: str,
        transaction_hash: str,
        log_index: int,
        event_type: str,
        webhook_id: str | None,
        created_at: datetime,
        expires_at: datetime,
    ) -> bool:
        """Insert-or-revive an event key. True means the caller should apply it."""
        ...

    async def is_event_processed(self, event_key: str, now: datetime | None = None) -> bool:
        ...

    async def purge_expired_events(self, now: datetime | None = None) -> int:
        ...

    # ── Profiles ───────────────────────────────────────────

    async def get_profile(self, wallet: str) -> AccountProfile | None:
        ...

    async def create_profile_if_absent(
        self,
        wallet: str,
        origin: str,
        external_id: int | None = None,
        joined_at: datetime | None = None,
        revoked: bool = False,
        referred_by: str | None = None,
        referral_paid: bool = False,
    ) -> bool:
        ...

    async def fill_stand_in_profile(
        self,
        wallet: str,
        external_id: int,
        joined_at: datetime,
        referred_by: str | None = None,
        referral_paid: bool = False,
    ) -> bool:
        ...

    async def set_profile_revoked(self, wallet: str, revoked: bool) -> None:
        ...

    async def increment_profile_sales(self, wallet: str) -> bool:
        ...

    async def increment_profile_purchases(self, wallet: str) -> bool:
        ...

    # ── Listings ───────────────────────────────────────────

    async def get_listing(self, content_id: str) -> ContentListing | None:
        ...

    async def save_listing(self, listing: ContentListing) -> None:
        """Upsert authoring fields. Owned by the listing service."""
        ...

    async def create_stand_in_listing(
        self, content_id: str, on_chain_id: str, seller_wallet: str
    ) -> bool:
        ...

    async def increment_listing_sales(self, content_id: str) -> bool:
        ...

    # ── Receipts ───────────────────────────────────────────

    async def get_receipt(self, purchase_id: int) -> PurchaseReceipt | None:
        ...

    async def create_receipt_if_absent(self, receipt: PurchaseReceipt) -> bool:
        ...

    async def get_receipts(
        self, content_id: str | None = None, limit: int = 100
    ) -> list[PurchaseReceipt]:
        ...

    # ── Disputes ───────────────────────────────────────────

    async def get_dispute(self, wallet: str) -> DisputeRecord | None:
        ...

    async def save_dispute(self, wallet: str, status: str = "pending") -> None:
        """Owned by the dispute service."""
        ...

    async def reopen_dispute(self, wallet: str) -> bool:
        ...

    async def resolve_dispute(self, wallet: str) -> bool:
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        wallet: str | None = None,
        content_id: str | None = None,
        amount: int | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...

    # ── Maintenance ────────────────────────────────────────

    async def recount_sales(self) -> RecountSummary:
        ...

    async def get_counts(self, now: datetime | None = None) -> dict[str, int]:
        ...
