"""Read model - builds JSON-serializable snapshots from the store."""

from __future__ import annotations

import logging

from market_indexer.chain.content_id import canonical_content_id, to_on_chain_hex
from market_indexer.interfaces.store import StateStore
from market_indexer.models.records import ContentListing, PurchaseReceipt
from market_indexer.models.snapshots import (
    IndexerSummary,
    ListingSnapshot,
    ProfileSnapshot,
    ReceiptSnapshot,
)

log = logging.getLogger(__name__)


def _receipt_to_snapshot(receipt: PurchaseReceipt) -> ReceiptSnapshot:
    return ReceiptSnapshot(
        purchase_id=str(receipt.purchase_id),
        content_id=receipt.content_id,
        content_identifier=to_on_chain_hex(receipt.content_id),
        buyer=receipt.buyer_wallet,
        seller=receipt.seller_wallet,
        price=str(receipt.price),
        total_cost=str(receipt.total_cost),
        tx_hash=receipt.tx_hash,
        purchased_at=receipt.purchased_at,
    )


def _listing_to_snapshot(listing: ContentListing) -> ListingSnapshot:
    return ListingSnapshot(
        content_id=listing.content_id,
        content_identifier=listing.on_chain_id,
        seller=listing.seller_wallet,
        active=listing.active,
        expires_at=listing.expires_at,
        sales_count=listing.sales_count,
        stand_in=listing.is_stand_in,
    )


class ReadModel:
    """Builds snapshots for the HTTP read endpoints and the CLI."""

    def __init__(self, store: StateStore, environment: str = "development") -> None:
        self._store = store
        self._environment = environment

    async def get_receipt(self, purchase_id: int) -> ReceiptSnapshot | None:
        receipt = await self._store.get_receipt(purchase_id)
        return _receipt_to_snapshot(receipt) if receipt else None

    async def get_receipts(
        self, content_id: str | None = None, limit: int = 100
    ) -> list[ReceiptSnapshot]:
        if content_id is not None:
            content_id = canonical_content_id(content_id)
        receipts = await self._store.get_receipts(content_id, limit)
        return [_receipt_to_snapshot(r) for r in receipts]

    async def get_profile(self, wallet: str) -> ProfileSnapshot | None:
        profile = await self._store.get_profile(wallet)
        if profile is None:
            return None
        dispute = await self._store.get_dispute(wallet)
        return ProfileSnapshot(
            wallet=profile.wallet,
            external_id=profile.external_id,
            revoked=profile.revoked,
            sales_count=profile.sales_count,
            purchase_count=profile.purchase_count,
            origin=profile.origin,
            joined_at=profile.joined_at,
            referred_by=profile.referred_by,
            referral_paid=profile.referral_paid,
            dispute_status=dispute.status if dispute else None,
        )

    async def get_listing(self, content_id: str) -> ListingSnapshot | None:
        listing = await self._store.get_listing(canonical_content_id(content_id))
        return _listing_to_snapshot(listing) if listing else None

    async def get_summary(self, activity_limit: int = 20) -> IndexerSummary:
        counts = await self._store.get_counts()
        activity = await self._store.get_recent_activity(activity_limit)
        return IndexerSummary(
            environment=self._environment,
            profiles=counts.get("profiles", 0),
            revoked_profiles=counts.get("revoked_profiles", 0),
            listings=counts.get("listings", 0),
            receipts=counts.get("receipts", 0),
            processed_events=counts.get("processed_events", 0),
            recent_activity=[
                {
                    "timestamp": a.created_at,
                    "event_type": a.event_type,
                    "wallet": a.wallet,
                    "content_id": a.content_id,
                    "amount": str(a.amount) if a.amount is not None else None,
                    "message": a.message,
                }
                for a in activity
            ],
        )
