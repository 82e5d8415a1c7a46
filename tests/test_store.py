"""SQLite store: transactions, listing ownership, disputes, recounts."""

from __future__ import annotations

import asyncio

import pytest

from market_indexer.errors import StorageUnavailableError
from market_indexer.models.records import PurchaseReceipt

from tests.factories import (
    BUYER,
    CONTENT_ID,
    OTHER_CONTENT_ID,
    SELLER,
    make_listing,
    make_purchase,
    make_registered,
)


def _receipt(purchase_id: int, content_id: str = CONTENT_ID) -> PurchaseReceipt:
    return PurchaseReceipt(
        purchase_id=purchase_id,
        content_id=content_id,
        buyer_wallet=BUYER,
        seller_wallet=SELLER,
        price=10,
        total_cost=11,
        tx_hash="0x01",
        purchased_at="2026-01-01T00:00:00+00:00",
    )


async def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        async with store.transaction():
            await store.create_profile_if_absent(SELLER, "registration", external_id=1)
            raise RuntimeError("boom")
    assert await store.get_profile(SELLER) is None


async def test_transaction_commits_as_unit(store):
    async with store.transaction():
        await store.create_profile_if_absent(SELLER, "registration", external_id=1)
        await store.log_activity("profile_created", "created", wallet=SELLER)
    assert await store.get_profile(SELLER) is not None
    assert len(await store.get_recent_activity(5)) == 1


async def test_closed_store_is_unavailable(store):
    await store.close()
    with pytest.raises(StorageUnavailableError):
        async with store.transaction():
            pass


async def test_reads_on_closed_store_are_unavailable(store):
    await store.close()
    with pytest.raises(StorageUnavailableError):
        await store.get_profile(SELLER)
    with pytest.raises(StorageUnavailableError):
        await store.get_receipt(42)


async def test_driver_error_on_read_is_unavailable(store):
    await store.db.execute("DROP TABLE receipts")
    with pytest.raises(StorageUnavailableError):
        await store.get_receipts()


async def test_reads_wait_for_open_transaction(store):
    await store.create_profile_if_absent(SELLER, "registration")
    entered = asyncio.Event()
    release = asyncio.Event()

    async def revoke_then_abort():
        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.set_profile_revoked(SELLER, True)
                entered.set()
                await release.wait()
                raise RuntimeError("abort")

    writer = asyncio.create_task(revoke_then_abort())
    await entered.wait()
    reader = asyncio.create_task(store.get_profile(SELLER))
    await asyncio.sleep(0.01)
    assert not reader.done()

    release.set()
    await writer
    assert (await reader).revoked is False


async def test_wallets_stored_lowercase(store):
    await store.create_profile_if_absent(SELLER.upper().replace("0X", "0x"), "registration")
    assert (await store.get_profile(SELLER)).wallet == SELLER


async def test_save_listing_never_touches_sales_count(store, projector):
    await projector.apply(make_registered())
    await store.save_listing(make_listing(price=10))
    await projector.apply(make_purchase(purchase_id=1))
    await projector.apply(make_purchase(purchase_id=2))

    await store.save_listing(make_listing(price=20, active=False))

    listing = await store.get_listing(CONTENT_ID)
    assert listing.sales_count == 2
    assert listing.price == 20
    assert listing.active is False


async def test_authored_listing_replaces_stand_in(store, projector):
    await projector.apply(make_purchase(purchase_id=1))
    assert (await store.get_listing(CONTENT_ID)).is_stand_in

    await store.save_listing(make_listing())
    listing = await store.get_listing(CONTENT_ID)
    assert not listing.is_stand_in
    assert listing.active
    assert listing.sales_count == 1


async def test_receipt_unique_by_purchase_id(store):
    assert await store.create_receipt_if_absent(_receipt(42))
    assert not await store.create_receipt_if_absent(_receipt(42, OTHER_CONTENT_ID))
    assert (await store.get_receipt(42)).content_id == CONTENT_ID


async def test_unknown_dispute_status_rejected(store):
    with pytest.raises(ValueError):
        await store.save_dispute(SELLER, "escalated")


async def test_recount_rebuilds_counters(store):
    await store.create_profile_if_absent(SELLER, "registration")
    await store.create_profile_if_absent(BUYER, "registration")
    await store.save_listing(make_listing())
    await store.save_listing(make_listing(content_id=OTHER_CONTENT_ID))
    for purchase_id in (1, 2, 3):
        await store.create_receipt_if_absent(_receipt(purchase_id))
    await store.create_receipt_if_absent(_receipt(4, OTHER_CONTENT_ID))

    summary = await store.recount_sales()
    assert summary.listings_updated == 2
    assert summary.profiles_updated == 2
    assert (await store.get_listing(CONTENT_ID)).sales_count == 3
    assert (await store.get_listing(OTHER_CONTENT_ID)).sales_count == 1
    assert (await store.get_profile(SELLER)).sales_count == 4
    assert (await store.get_profile(BUYER)).purchase_count == 4

    again = await store.recount_sales()
    assert again.listings_updated == 0
    assert again.profiles_updated == 0


async def test_counts(store, projector):
    await projector.apply(make_registered())
    await projector.apply(make_purchase(purchase_id=1))
    counts = await store.get_counts()
    assert counts["profiles"] == 1
    assert counts["listings"] == 1
    assert counts["receipts"] == 1
    assert counts["revoked_profiles"] == 0
