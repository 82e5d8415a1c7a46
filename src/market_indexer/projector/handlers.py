"""Domain projector - applies decoded ledger events to the store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from market_indexer.chain.content_id import from_on_chain, to_on_chain_hex
from market_indexer.interfaces.store import StateStore
from market_indexer.models.events import (
    AccessRevocationChanged,
    AccountPassMinted,
    AccountRegistered,
    ContentPurchased,
    DomainEvent,
)
from market_indexer.models.records import ProjectionResult, PurchaseReceipt

log = logging.getLogger(__name__)


class DomainProjector:
    """Applies one domain event at a time.

    Every handler is idempotent on its own, so a replay that slips past the
    processed-event ledger still changes nothing. Callers are expected to run
    ``apply`` inside the store transaction that admitted the event.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    async def apply(self, event: DomainEvent) -> ProjectionResult:
        if isinstance(event, AccountRegistered):
            return await self._on_registered(event)
        if isinstance(event, AccountPassMinted):
            return await self._on_pass_minted(event)
        if isinstance(event, AccessRevocationChanged):
            return await self._on_revocation(event)
        if isinstance(event, ContentPurchased):
            return await self._on_purchase(event)
        raise TypeError(f"unsupported event: {type(event).__name__}")

    # ── Accounts ───────────────────────────────────────────

    async def _on_registered(self, event: AccountRegistered) -> ProjectionResult:
        result = await self._create_or_complete(
            event.wallet, "registration", event.external_id, event.joined_at,
            referred_by=event.referrer, referral_paid=event.referral_paid,
        )
        return ProjectionResult("AccountRegistered", *result)

    async def _on_pass_minted(self, event: AccountPassMinted) -> ProjectionResult:
        # Regular mints always come with an AccountRegistered in the same tx.
        if not event.is_admin_mint:
            return ProjectionResult("AccountPassMinted", False, "not an admin mint")
        result = await self._create_or_complete(
            event.wallet, "admin_mint", event.external_id, event.joined_at,
        )
        return ProjectionResult("AccountPassMinted", *result)

    async def _create_or_complete(
        self,
        wallet: str,
        origin: str,
        external_id: int,
        joined_at: datetime,
        referred_by: str | None = None,
        referral_paid: bool = False,
    ) -> tuple[bool, str]:
        created = await self._store.create_profile_if_absent(
            wallet, origin, external_id=external_id, joined_at=joined_at,
            referred_by=referred_by, referral_paid=referral_paid,
        )
        if created:
            log.info("Profile created: %s (%s, pass #%d)", wallet, origin, external_id)
            await self._store.log_activity(
                "profile_created",
                f"Profile created via {origin} (pass #{external_id})",
                wallet=wallet,
            )
            return True, "profile created"

        if await self._store.fill_stand_in_profile(
            wallet, external_id, joined_at,
            referred_by=referred_by, referral_paid=referral_paid,
        ):
            log.info("Stand-in profile completed: %s", wallet)
            await self._store.log_activity(
                "profile_completed",
                f"Stand-in profile completed (pass #{external_id})",
                wallet=wallet,
            )
            return True, "stand-in completed"

        return False, "profile exists"

    async def _on_revocation(self, event: AccessRevocationChanged) -> ProjectionResult:
        wallet = event.wallet
        profile = await self._store.get_profile(wallet)
        created = False
        if profile is None:
            created = await self._store.create_profile_if_absent(
                wallet, "stand_in", revoked=event.revoked,
            )
            previous = False
        else:
            previous = profile.revoked
            await self._store.set_profile_revoked(wallet, event.revoked)

        if previous == event.revoked:
            detail = "stand-in created" if created else "unchanged"
            return ProjectionResult("AccessRevocationChanged", created, detail)

        state = "revoked" if event.revoked else "restored"
        log.info("Access %s: %s", state, wallet)
        await self._store.log_activity(
            "revocation_changed", f"Access {state}", wallet=wallet,
        )

        if event.revoked:
            if await self._store.reopen_dispute(wallet):
                await self._store.log_activity(
                    "dispute_reopened", "Resolved dispute reopened", wallet=wallet,
                )
        elif await self._store.resolve_dispute(wallet):
            await self._store.log_activity(
                "dispute_resolved", "Dispute resolved by restoration", wallet=wallet,
            )

        return ProjectionResult("AccessRevocationChanged", True, state)

    # ── Purchases ──────────────────────────────────────────

    async def _on_purchase(self, event: ContentPurchased) -> ProjectionResult:
        # Raises FormatError for identifiers that are not zero-padded UUIDs.
        content_id = from_on_chain(event.on_chain_content_id)
        purchased_at = event.purchased_at or datetime.now(timezone.utc)

        receipt = PurchaseReceipt(
            purchase_id=event.purchase_id,
            content_id=content_id,
            buyer_wallet=event.buyer,
            seller_wallet=event.seller,
            price=event.price,
            total_cost=event.total_cost,
            tx_hash=event.tx_hash,
            purchased_at=purchased_at.isoformat(),
        )
        if not await self._store.create_receipt_if_absent(receipt):
            log.debug("Receipt #%d already recorded", event.purchase_id)
            return ProjectionResult("ContentPurchased", False, "receipt exists")

        listing = await self._store.get_listing(content_id)
        if listing is None:
            log.warning("Purchase #%d for unknown listing %s", event.purchase_id, content_id)
            await self._store.create_stand_in_listing(
                content_id, to_on_chain_hex(content_id), event.seller,
            )
        elif listing.seller_wallet != event.seller:
            log.warning(
                "Purchase #%d seller %s differs from listing seller %s",
                event.purchase_id, event.seller, listing.seller_wallet,
            )
        await self._store.increment_listing_sales(content_id)

        if await self._store.get_profile(event.seller) is None:
            await self._store.create_profile_if_absent(event.seller, "stand_in")
        await self._store.increment_profile_sales(event.seller)
        await self._store.increment_profile_purchases(event.buyer)

        log.info(
            "Purchase #%d recorded: %s bought %s for %d",
            event.purchase_id, event.buyer, content_id, event.price,
        )
        await self._store.log_activity(
            "purchase_recorded",
            f"Receipt #{event.purchase_id}: {content_id}",
            wallet=event.buyer,
            content_id=content_id,
            amount=event.price,
        )
        return ProjectionResult("ContentPurchased", True, f"receipt #{event.purchase_id}")
