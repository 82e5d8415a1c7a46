"""Domain projector: registration, revocation with disputes, purchases."""

from __future__ import annotations

import pytest

from market_indexer.chain.content_id import to_on_chain
from market_indexer.chain.decoder import EventDecoder
from market_indexer.errors import FormatError
from market_indexer.models.events import ContentPurchased

from tests.factories import (
    BUYER,
    CONTENT_ID,
    OTHER_WALLET,
    REFERRER,
    SELLER,
    make_joined_log,
    make_listing,
    make_pass_minted,
    make_purchase,
    make_registered,
    make_revocation,
)


# ── Registration ──────────────────────────────────────────────────


async def test_registration_creates_profile(projector, store):
    result = await projector.apply(make_registered(external_id=7))
    assert result.applied

    profile = await store.get_profile(SELLER)
    assert profile.external_id == 7
    assert profile.origin == "registration"
    assert profile.revoked is False
    assert profile.joined_at.startswith("2026-01-01")

    activity = await store.get_recent_activity(10)
    assert [a.event_type for a in activity] == ["profile_created"]


async def test_registration_replay_is_noop(projector, store):
    await projector.apply(make_registered(external_id=7))
    result = await projector.apply(make_registered(external_id=8))

    assert not result.applied
    assert (await store.get_profile(SELLER)).external_id == 7


async def test_regular_pass_mint_is_noop(projector, store):
    result = await projector.apply(make_pass_minted(is_admin_mint=False))
    assert not result.applied
    assert await store.get_profile(SELLER) is None


async def test_admin_pass_mint_creates_profile(projector, store):
    result = await projector.apply(make_pass_minted(external_id=3, is_admin_mint=True))
    assert result.applied

    profile = await store.get_profile(SELLER)
    assert profile.origin == "admin_mint"
    assert profile.external_id == 3


async def test_mint_then_registration_keeps_first_profile(projector, store):
    await projector.apply(make_pass_minted(external_id=3))
    result = await projector.apply(make_registered(external_id=3))
    assert not result.applied
    assert (await store.get_profile(SELLER)).origin == "admin_mint"


async def test_registration_completes_stand_in_without_overwriting(projector, store):
    # Revocation seen before the registration: a revoked stand-in exists.
    await projector.apply(make_revocation(revoked=True))
    stand_in = await store.get_profile(SELLER)
    assert stand_in.origin == "stand_in"
    assert stand_in.external_id is None

    result = await projector.apply(make_registered(external_id=11))
    assert result.applied
    assert result.detail == "stand-in completed"

    profile = await store.get_profile(SELLER)
    assert profile.external_id == 11
    assert profile.joined_at is not None
    assert profile.revoked is True  # not reset by the late registration

    # A second registration does not touch the completed stand-in.
    again = await projector.apply(make_registered(external_id=12))
    assert not again.applied
    assert (await store.get_profile(SELLER)).external_id == 11



async def test_registration_records_referral(projector, store):
    result = await projector.apply(make_registered(referrer=REFERRER, referral_paid=True))
    assert result.applied

    profile = await store.get_profile(SELLER)
    assert profile.referred_by == REFERRER
    assert profile.referral_paid is True


async def test_registration_without_referrer(projector, store):
    await projector.apply(make_registered())
    profile = await store.get_profile(SELLER)
    assert profile.referred_by is None
    assert profile.referral_paid is False


async def test_decoded_join_carries_referral_to_profile(projector, store):
    event = EventDecoder().decode(make_joined_log(referrer=REFERRER, referral_paid=True))
    await projector.apply(event)

    profile = await store.get_profile(SELLER)
    assert profile.referred_by == REFERRER
    assert profile.referral_paid is True


async def test_stand_in_completion_fills_referral(projector, store):
    await projector.apply(make_revocation(revoked=True))
    await projector.apply(make_registered(referrer=REFERRER, referral_paid=True))

    profile = await store.get_profile(SELLER)
    assert profile.origin == "stand_in"
    assert profile.referred_by == REFERRER
    assert profile.referral_paid is True
    assert profile.revoked is True

# ── Revocation and disputes ───────────────────────────────────────


async def test_revocation_sets_absolute_value(projector, store):
    await projector.apply(make_registered())

    assert (await projector.apply(make_revocation(revoked=True))).applied
    assert (await store.get_profile(SELLER)).revoked is True

    replay = await projector.apply(make_revocation(revoked=True))
    assert not replay.applied
    assert (await store.get_profile(SELLER)).revoked is True

    assert (await projector.apply(make_revocation(revoked=False))).applied
    assert (await store.get_profile(SELLER)).revoked is False


async def test_revocation_reopens_resolved_dispute(projector, store):
    await projector.apply(make_registered())
    await store.save_dispute(SELLER, "resolved")

    await projector.apply(make_revocation(revoked=True))

    dispute = await store.get_dispute(SELLER)
    assert dispute.status == "pending"
    assert dispute.resolved_at is None
    types = [a.event_type for a in await store.get_recent_activity(10)]
    assert "dispute_reopened" in types


@pytest.mark.parametrize("status", ["pending", "contacted"])
async def test_restoration_resolves_open_dispute(projector, store, status):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_dispute(SELLER, status)

    await projector.apply(make_revocation(revoked=False))

    dispute = await store.get_dispute(SELLER)
    assert dispute.status == "resolved"
    assert dispute.resolved_at is not None


async def test_rejected_dispute_left_alone(projector, store):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_dispute(SELLER, "rejected")

    await projector.apply(make_revocation(revoked=False))
    assert (await store.get_dispute(SELLER)).status == "rejected"

    await projector.apply(make_revocation(revoked=True))
    assert (await store.get_dispute(SELLER)).status == "rejected"


async def test_revocation_without_dispute_is_flag_only(projector, store):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))

    assert await store.get_dispute(SELLER) is None
    assert (await store.get_profile(SELLER)).revoked is True


async def test_unchanged_revocation_does_not_touch_dispute(projector, store):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_dispute(SELLER, "resolved")

    # Replay of the same value: no transition, no reopen.
    await projector.apply(make_revocation(revoked=True))
    assert (await store.get_dispute(SELLER)).status == "resolved"


# ── Purchases ─────────────────────────────────────────────────────


async def test_purchase_creates_receipt_and_counts(projector, store):
    await projector.apply(make_registered(wallet=SELLER))
    await projector.apply(make_registered(wallet=BUYER, external_id=8))
    await store.save_listing(make_listing())

    result = await projector.apply(make_purchase(purchase_id=42, price=10))
    assert result.applied

    receipt = await store.get_receipt(42)
    assert receipt.content_id == CONTENT_ID
    assert receipt.buyer_wallet == BUYER
    assert receipt.seller_wallet == SELLER
    assert receipt.price == 10
    assert receipt.total_cost == 11

    assert (await store.get_listing(CONTENT_ID)).sales_count == 1
    assert (await store.get_profile(SELLER)).sales_count == 1
    assert (await store.get_profile(BUYER)).purchase_count == 1


async def test_purchase_replay_changes_nothing(projector, store):
    await projector.apply(make_registered())
    await store.save_listing(make_listing())

    await projector.apply(make_purchase(purchase_id=42))
    for _ in range(5):
        result = await projector.apply(make_purchase(purchase_id=42))
        assert not result.applied

    assert len(await store.get_receipts()) == 1
    assert (await store.get_listing(CONTENT_ID)).sales_count == 1
    assert (await store.get_profile(SELLER)).sales_count == 1


async def test_n_purchases_increment_by_n(projector, store):
    await projector.apply(make_registered())
    await store.save_listing(make_listing())

    for purchase_id in range(1, 8):
        await projector.apply(make_purchase(purchase_id=purchase_id))

    assert (await store.get_listing(CONTENT_ID)).sales_count == 7
    assert (await store.get_profile(SELLER)).sales_count == 7


async def test_buyer_without_profile_not_created(projector, store):
    await projector.apply(make_registered())
    await store.save_listing(make_listing())

    await projector.apply(make_purchase(buyer=OTHER_WALLET))
    assert await store.get_profile(OTHER_WALLET) is None


async def test_purchase_for_unknown_listing_creates_stand_ins(projector, store):
    result = await projector.apply(make_purchase(purchase_id=5))
    assert result.applied

    listing = await store.get_listing(CONTENT_ID)
    assert listing.is_stand_in
    assert listing.active is False
    assert listing.sales_count == 1
    assert listing.seller_wallet == SELLER

    seller = await store.get_profile(SELLER)
    assert seller.origin == "stand_in"
    assert seller.sales_count == 1


async def test_large_amounts_preserved(projector, store):
    price = 25 * 10**18
    await projector.apply(make_purchase(purchase_id=2**200, price=price, total_cost=price * 2))

    receipt = await store.get_receipt(2**200)
    assert receipt.price == price
    assert receipt.total_cost == price * 2


async def test_bad_identifier_padding_raises_before_writing(projector, store):
    image = bytearray(to_on_chain(CONTENT_ID))
    image[31] = 0xFF
    event = ContentPurchased(
        buyer=BUYER, seller=SELLER, on_chain_content_id=bytes(image),
        price=10, purchase_id=9, tx_hash="0x01",
    )

    with pytest.raises(FormatError):
        await projector.apply(event)
    assert await store.get_receipt(9) is None
