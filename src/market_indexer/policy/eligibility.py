"""Purchase eligibility gate - checked before a buyer submits a purchase."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from market_indexer.chain.content_id import canonical_content_id, to_on_chain_hex
from market_indexer.errors import (
    FormatError,
    ListingNotFoundError,
    ListingUnavailableError,
    SelfPurchaseForbiddenError,
    SellerRevokedError,
)
from market_indexer.interfaces.store import StateStore
from market_indexer.models.records import ContentListing, EligibilityResult

log = logging.getLogger(__name__)


class PurchaseEligibilityGate:
    """Decides whether a buyer may obtain the on-chain identifier for a listing.

    Checks, in order (first failure wins):
    1. Listing exists
    2. Listing is active and not expired
    3. Buyer is not the seller
    4. Seller access is not revoked

    Read-only. Each read sees committed state only, so a revocation still
    inside an open delivery transaction is not acted on until it commits.
    Purchases observed on the ledger are recorded regardless of what this
    gate would have said.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    async def check(
        self, content_id: str, buyer_wallet: str, now: datetime | None = None
    ) -> EligibilityResult:
        # 1. Listing exists
        try:
            listing = await self._store.get_listing(canonical_content_id(content_id))
        except FormatError:
            listing = None
        if listing is None:
            raise ListingNotFoundError(f"listing {content_id} not found", content_id)
        content_id = listing.content_id

        # 2. Active and not expired
        if not listing.active:
            raise ListingUnavailableError(
                f"listing {content_id} is not active", content_id, "inactive",
            )
        if _is_expired(listing, now or datetime.now(timezone.utc)):
            raise ListingUnavailableError(
                f"listing {content_id} has expired", content_id, "expired",
            )

        # 3. No self-purchase
        if buyer_wallet.lower() == listing.seller_wallet.lower():
            raise SelfPurchaseForbiddenError(
                "sellers cannot purchase their own listings", content_id,
            )

        # 4. Seller in good standing
        seller = await self._store.get_profile(listing.seller_wallet)
        if seller is not None and seller.revoked:
            log.info("Eligibility denied: seller %s is revoked", listing.seller_wallet)
            raise SellerRevokedError(
                "the seller of this listing is no longer active", content_id,
            )

        return EligibilityResult(
            content_id=content_id,
            content_identifier=to_on_chain_hex(content_id),
            seller_wallet=listing.seller_wallet,
        )


def _is_expired(listing: ContentListing, now: datetime) -> bool:
    if not listing.expires_at:
        return False
    expires = datetime.fromisoformat(listing.expires_at.replace("Z", "+00:00"))
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= now
