"""Purchase eligibility gate: ordering of checks and outcomes."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from market_indexer.chain.content_id import to_on_chain_hex
from market_indexer.errors import (
    EligibilityError,
    ListingNotFoundError,
    ListingUnavailableError,
    SelfPurchaseForbiddenError,
    SellerRevokedError,
)

from tests.factories import (
    BUYER,
    CONTENT_ID,
    OTHER_CONTENT_ID,
    SELLER,
    make_listing,
    make_registered,
    make_revocation,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


async def test_eligible_purchase(gate, store, projector):
    await projector.apply(make_registered())
    await store.save_listing(make_listing())

    result = await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert result.content_id == CONTENT_ID
    assert result.content_identifier == to_on_chain_hex(CONTENT_ID)
    assert result.seller_wallet == SELLER


async def test_uppercase_content_id_accepted(gate, store):
    await store.save_listing(make_listing())
    result = await gate.check(CONTENT_ID.upper(), BUYER, now=NOW)
    assert result.content_id == CONTENT_ID


async def test_missing_listing(gate):
    with pytest.raises(ListingNotFoundError) as exc_info:
        await gate.check(OTHER_CONTENT_ID, BUYER, now=NOW)
    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "not_found"


@pytest.mark.parametrize("content_id", ["", "nope", "0x" + "00" * 32])
async def test_malformed_id_counts_as_missing(gate, content_id):
    with pytest.raises(ListingNotFoundError):
        await gate.check(content_id, BUYER, now=NOW)


async def test_inactive_listing(gate, store):
    await store.save_listing(make_listing(active=False))
    with pytest.raises(ListingUnavailableError) as exc_info:
        await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert exc_info.value.reason == "inactive"
    assert exc_info.value.status_code == 400


@pytest.mark.parametrize(
    "expires_at",
    [
        (NOW - timedelta(seconds=1)).isoformat(),
        NOW.isoformat(),
        "2026-03-01T11:00:00Z",
    ],
)
async def test_expired_listing(gate, store, expires_at):
    await store.save_listing(make_listing(expires_at=expires_at))
    with pytest.raises(ListingUnavailableError) as exc_info:
        await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert exc_info.value.reason == "expired"


async def test_future_expiry_is_fine(gate, store):
    await store.save_listing(make_listing(expires_at=(NOW + timedelta(days=1)).isoformat()))
    await gate.check(CONTENT_ID, BUYER, now=NOW)


async def test_self_purchase_is_case_insensitive(gate, store):
    await store.save_listing(make_listing())
    with pytest.raises(SelfPurchaseForbiddenError) as exc_info:
        await gate.check(CONTENT_ID, SELLER.upper().replace("0X", "0x"), now=NOW)
    assert exc_info.value.status_code == 403


async def test_revoked_seller(gate, store, projector):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_listing(make_listing())

    with pytest.raises(SellerRevokedError) as exc_info:
        await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert exc_info.value.code == "seller_revoked"


async def test_restored_seller_is_eligible_again(gate, store, projector):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await projector.apply(make_revocation(revoked=False))
    await store.save_listing(make_listing())

    await gate.check(CONTENT_ID, BUYER, now=NOW)


async def test_uncommitted_revocation_not_acted_on(gate, store, projector):
    await projector.apply(make_registered())
    await store.save_listing(make_listing())
    entered = asyncio.Event()
    release = asyncio.Event()

    async def revoke_then_roll_back():
        with pytest.raises(RuntimeError):
            async with store.transaction():
                await projector.apply(make_revocation(revoked=True))
                entered.set()
                await release.wait()
                raise RuntimeError("delivery aborted")

    writer = asyncio.create_task(revoke_then_roll_back())
    await entered.wait()
    check = asyncio.create_task(gate.check(CONTENT_ID, BUYER, now=NOW))
    await asyncio.sleep(0.01)
    assert not check.done()

    release.set()
    await writer
    result = await check
    assert result.content_id == CONTENT_ID
    assert (await store.get_profile(SELLER)).revoked is False


# ── Ordering: first failure wins ──────────────────────────────────


async def test_unavailable_reported_before_self_purchase(gate, store):
    await store.save_listing(make_listing(active=False))
    with pytest.raises(ListingUnavailableError):
        await gate.check(CONTENT_ID, SELLER, now=NOW)


async def test_self_purchase_reported_before_revocation(gate, store, projector):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_listing(make_listing(active=True))

    with pytest.raises(SelfPurchaseForbiddenError):
        await gate.check(CONTENT_ID, SELLER, now=NOW)


async def test_inactive_reported_before_expired(gate, store):
    await store.save_listing(
        make_listing(active=False, expires_at=(NOW - timedelta(days=1)).isoformat())
    )
    with pytest.raises(ListingUnavailableError) as exc_info:
        await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert exc_info.value.reason == "inactive"


async def test_same_inputs_same_outcome(gate, store, projector):
    await projector.apply(make_registered())
    await projector.apply(make_revocation(revoked=True))
    await store.save_listing(make_listing(expires_at=(NOW - timedelta(days=1)).isoformat()))

    outcomes = []
    for _ in range(5):
        with pytest.raises(EligibilityError) as exc_info:
            await gate.check(CONTENT_ID, SELLER, now=NOW)
        outcomes.append(type(exc_info.value))
    assert set(outcomes) == {ListingUnavailableError}


async def test_gate_is_read_only(gate, store):
    await store.save_listing(make_listing())
    before = await store.get_counts()
    await gate.check(CONTENT_ID, BUYER, now=NOW)
    assert await store.get_counts() == before
    assert await store.get_recent_activity(10) == []
