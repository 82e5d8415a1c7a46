"""SQLite implementation of the StateStore protocol."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from market_indexer.errors import StorageUnavailableError
from market_indexer.models.records import (
    AccountProfile,
    ActivityRecord,
    ContentListing,
    DisputeRecord,
    PurchaseReceipt,
    RecountSummary,
)

log = logging.getLogger(__name__)

# Token ids and amounts are uint256 on chain, so they are stored as decimal TEXT.
SCHEMA = """
-- Webhook replay suppression
CREATE TABLE IF NOT EXISTS processed_events (
    event_key TEXT PRIMARY KEY,
    transaction_hash TEXT NOT NULL,
    log_index INTEGER NOT NULL,
    event_type TEXT NOT NULL,
    webhook_id TEXT,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_processed_expires ON processed_events(expires_at);

-- Seller accounts
CREATE TABLE IF NOT EXISTS profiles (
    wallet TEXT PRIMARY KEY,
    external_id TEXT,
    revoked INTEGER NOT NULL DEFAULT 0,
    sales_count INTEGER NOT NULL DEFAULT 0,
    purchase_count INTEGER NOT NULL DEFAULT 0,
    origin TEXT NOT NULL DEFAULT 'registration',
    joined_at TEXT,
    referred_by TEXT,
    referral_paid INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_profiles_referred_by ON profiles(referred_by);

-- Paid listings
CREATE TABLE IF NOT EXISTS listings (
    content_id TEXT PRIMARY KEY,
    on_chain_id TEXT NOT NULL,
    seller_wallet TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    expires_at TEXT,
    price TEXT,
    sales_count INTEGER NOT NULL DEFAULT 0,
    is_stand_in INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_listings_seller ON listings(seller_wallet);

-- Purchase receipts
CREATE TABLE IF NOT EXISTS receipts (
    purchase_id TEXT PRIMARY KEY,
    content_id TEXT NOT NULL,
    buyer_wallet TEXT NOT NULL,
    seller_wallet TEXT NOT NULL,
    price TEXT NOT NULL,
    total_cost TEXT NOT NULL,
    tx_hash TEXT NOT NULL,
    purchased_at TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_receipts_content ON receipts(content_id);
CREATE INDEX IF NOT EXISTS idx_receipts_buyer ON receipts(buyer_wallet);
CREATE INDEX IF NOT EXISTS idx_receipts_seller ON receipts(seller_wallet);

-- Revocation disputes
CREATE TABLE IF NOT EXISTS disputes (
    wallet TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'pending',
    resolved_at TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    wallet TEXT,
    content_id TEXT,
    amount TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""

DISPUTE_STATUSES = ("pending", "contacted", "resolved", "rejected")

# Set while the current task holds a store's write transaction.
_active_store: ContextVar[object | None] = ContextVar("_active_store", default=None)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now() -> str:
    return _iso(datetime.now(timezone.utc))


def _opt_int(value: str | None) -> int | None:
    return int(value) if value is not None else None


class SQLiteStateStore:
    """SQLite-backed implementation of the StateStore protocol.

    A single connection is shared by every request. Writes go through
    ``transaction()``, which serializes writers and commits or rolls back as
    one unit. Mutating methods never commit on their own; called outside a
    transaction they open one. Reads outside a transaction take the same
    lock, so they never observe another task's uncommitted writes.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Transactions ───────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteStateStore]:
        """Run the enclosed writes atomically.

        Reentrant within one task. Driver errors are raised as
        StorageUnavailableError after rollback.
        """
        if _active_store.get() is self:
            yield self
            return

        async with self._lock:
            if self._db is None:
                raise StorageUnavailableError("store is closed")
            token = _active_store.set(self)
            try:
                yield self
                await self._db.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise StorageUnavailableError(f"storage error: {exc}") from exc
            except BaseException:
                await self._rollback()
                raise
            finally:
                _active_store.reset(token)

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except aiosqlite.Error:
            log.exception("Rollback failed")

    async def _write(self, sql: str, params: tuple = ()) -> int:
        """Execute one statement inside the current (or a fresh) transaction."""
        async with self.transaction():
            async with self.db.execute(sql, params) as cur:
                return cur.rowcount

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the writer lock for a read outside a transaction.

        Reads then only ever see committed state. Inside the caller's own
        transaction they see its pending writes, and errors surface through
        ``transaction()``.
        """
        if _active_store.get() is self:
            yield self.db
            return

        async with self._lock:
            if self._db is None:
                raise StorageUnavailableError("store is closed")
            try:
                yield self._db
            except aiosqlite.Error as exc:
                raise StorageUnavailableError(f"storage error: {exc}") from exc

    async def _fetchone(self, sql: str, params: tuple = ()) -> aiosqlite.Row | None:
        async with self._reading() as db:
            async with db.execute(sql, params) as cur:
                return await cur.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        async with self._reading() as db:
            async with db.execute(sql, params) as cur:
                return list(await cur.fetchall())

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
        """Record an event key. Returns True if it was new or its record had expired."""
        changed = await self._write(
            "INSERT INTO processed_events"
            " (event_key, transaction_hash, log_index, event_type, webhook_id,"
            "  created_at, expires_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(event_key) DO UPDATE SET"
            " event_type=excluded.event_type, webhook_id=excluded.webhook_id,"
            " created_at=excluded.created_at, expires_at=excluded.expires_at"
            " WHERE processed_events.expires_at <= excluded.created_at",
            (
                event_key, transaction_hash, log_index, event_type, webhook_id,
                _iso(created_at), _iso(expires_at),
            ),
        )
        return changed == 1

    async def is_event_processed(self, event_key: str, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        row = await self._fetchone(
            "SELECT 1 FROM processed_events WHERE event_key=? AND expires_at > ?",
            (event_key, _iso(now)),
        )
        return row is not None

    async def purge_expired_events(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        return await self._write(
            "DELETE FROM processed_events WHERE expires_at <= ?", (_iso(now),)
        )

    # ── Profiles ───────────────────────────────────────────

    async def get_profile(self, wallet: str) -> AccountProfile | None:
        row = await self._fetchone(
            "SELECT * FROM profiles WHERE wallet=?", (wallet.lower(),)
        )
        return _row_to_profile(row) if row else None

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
        now = _now()
        changed = await self._write(
            "INSERT INTO profiles"
            " (wallet, external_id, revoked, origin, joined_at,"
            " referred_by, referral_paid, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(wallet) DO NOTHING",
            (
                wallet.lower(),
                str(external_id) if external_id is not None else None,
                int(revoked),
                origin,
                _iso(joined_at) if joined_at else None,
                referred_by.lower() if referred_by else None,
                int(referral_paid),
                now, now,
            ),
        )
        return changed == 1

    async def fill_stand_in_profile(
        self,
        wallet: str,
        external_id: int,
        joined_at: datetime,
        referred_by: str | None = None,
        referral_paid: bool = False,
    ) -> bool:
        """Fill the missing identity fields of a stand-in. Never overwrites set values."""
        changed = await self._write(
            "UPDATE profiles SET"
            " external_id=COALESCE(external_id, ?), joined_at=COALESCE(joined_at, ?),"
            " referred_by=COALESCE(referred_by, ?), referral_paid=MAX(referral_paid, ?),"
            " updated_at=?"
            " WHERE wallet=? AND origin='stand_in'"
            " AND (external_id IS NULL OR joined_at IS NULL)",
            (
                str(external_id), _iso(joined_at),
                referred_by.lower() if referred_by else None, int(referral_paid),
                _now(), wallet.lower(),
            ),
        )
        return changed == 1

    async def set_profile_revoked(self, wallet: str, revoked: bool) -> None:
        await self._write(
            "UPDATE profiles SET revoked=?, updated_at=? WHERE wallet=?",
            (int(revoked), _now(), wallet.lower()),
        )

    async def increment_profile_sales(self, wallet: str) -> bool:
        changed = await self._write(
            "UPDATE profiles SET sales_count=sales_count+1, updated_at=? WHERE wallet=?",
            (_now(), wallet.lower()),
        )
        return changed == 1

    async def increment_profile_purchases(self, wallet: str) -> bool:
        changed = await self._write(
            "UPDATE profiles SET purchase_count=purchase_count+1, updated_at=?"
            " WHERE wallet=?",
            (_now(), wallet.lower()),
        )
        return changed == 1

    # ── Listings ───────────────────────────────────────────

    async def get_listing(self, content_id: str) -> ContentListing | None:
        row = await self._fetchone(
            "SELECT * FROM listings WHERE content_id=?", (content_id.lower(),)
        )
        return _row_to_listing(row) if row else None

    async def save_listing(self, listing: ContentListing) -> None:
        """Upsert the authoring fields of a listing. Sale counters are left alone."""
        now = _now()
        await self._write(
            "INSERT INTO listings"
            " (content_id, on_chain_id, seller_wallet, active, expires_at, price,"
            "  is_stand_in, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)"
            " ON CONFLICT(content_id) DO UPDATE SET"
            " on_chain_id=excluded.on_chain_id, seller_wallet=excluded.seller_wallet,"
            " active=excluded.active, expires_at=excluded.expires_at,"
            " price=excluded.price, is_stand_in=0, updated_at=excluded.updated_at",
            (
                listing.content_id.lower(),
                listing.on_chain_id.lower(),
                listing.seller_wallet.lower(),
                int(listing.active),
                listing.expires_at,
                str(listing.price) if listing.price is not None else None,
                now, now,
            ),
        )

    async def create_stand_in_listing(
        self, content_id: str, on_chain_id: str, seller_wallet: str
    ) -> bool:
        now = _now()
        changed = await self._write(
            "INSERT INTO listings"
            " (content_id, on_chain_id, seller_wallet, active, is_stand_in,"
            "  created_at, updated_at)"
            " VALUES (?, ?, ?, 0, 1, ?, ?)"
            " ON CONFLICT(content_id) DO NOTHING",
            (content_id.lower(), on_chain_id.lower(), seller_wallet.lower(), now, now),
        )
        return changed == 1

    async def increment_listing_sales(self, content_id: str) -> bool:
        changed = await self._write(
            "UPDATE listings SET sales_count=sales_count+1, updated_at=? WHERE content_id=?",
            (_now(), content_id.lower()),
        )
        return changed == 1

    # ── Receipts ───────────────────────────────────────────

    async def get_receipt(self, purchase_id: int) -> PurchaseReceipt | None:
        row = await self._fetchone(
            "SELECT * FROM receipts WHERE purchase_id=?", (str(purchase_id),)
        )
        return _row_to_receipt(row) if row else None

    async def create_receipt_if_absent(self, receipt: PurchaseReceipt) -> bool:
        """Insert a receipt. Returns False if one already exists for the purchase id."""
        changed = await self._write(
            "INSERT INTO receipts"
            " (purchase_id, content_id, buyer_wallet, seller_wallet, price,"
            "  total_cost, tx_hash, purchased_at, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(purchase_id) DO NOTHING",
            (
                str(receipt.purchase_id),
                receipt.content_id.lower(),
                receipt.buyer_wallet.lower(),
                receipt.seller_wallet.lower(),
                str(receipt.price),
                str(receipt.total_cost),
                receipt.tx_hash,
                receipt.purchased_at,
                _now(),
            ),
        )
        return changed == 1

    async def get_receipts(
        self, content_id: str | None = None, limit: int = 100
    ) -> list[PurchaseReceipt]:
        if content_id:
            sql = "SELECT * FROM receipts WHERE content_id=? ORDER BY created_at DESC LIMIT ?"
            params: tuple = (content_id.lower(), limit)
        else:
            sql = "SELECT * FROM receipts ORDER BY created_at DESC LIMIT ?"
            params = (limit,)
        return [_row_to_receipt(row) for row in await self._fetchall(sql, params)]

    # ── Disputes ───────────────────────────────────────────

    async def get_dispute(self, wallet: str) -> DisputeRecord | None:
        row = await self._fetchone(
            "SELECT * FROM disputes WHERE wallet=?", (wallet.lower(),)
        )
        if row is None:
            return None
        return DisputeRecord(
            wallet=row["wallet"],
            status=row["status"],
            resolved_at=row["resolved_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def save_dispute(self, wallet: str, status: str = "pending") -> None:
        if status not in DISPUTE_STATUSES:
            raise ValueError(f"unknown dispute status: {status!r}")
        now = _now()
        resolved_at = now if status == "resolved" else None
        await self._write(
            "INSERT INTO disputes (wallet, status, resolved_at, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT(wallet) DO UPDATE SET"
            " status=excluded.status, resolved_at=excluded.resolved_at,"
            " updated_at=excluded.updated_at",
            (wallet.lower(), status, resolved_at, now, now),
        )

    async def reopen_dispute(self, wallet: str) -> bool:
        """resolved -> pending. Returns True if a dispute changed."""
        changed = await self._write(
            "UPDATE disputes SET status='pending', resolved_at=NULL, updated_at=?"
            " WHERE wallet=? AND status='resolved'",
            (_now(), wallet.lower()),
        )
        return changed == 1

    async def resolve_dispute(self, wallet: str) -> bool:
        """pending/contacted -> resolved. Returns True if a dispute changed."""
        now = _now()
        changed = await self._write(
            "UPDATE disputes SET status='resolved', resolved_at=?, updated_at=?"
            " WHERE wallet=? AND status IN ('pending', 'contacted')",
            (now, now, wallet.lower()),
        )
        return changed == 1

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        wallet: str | None = None,
        content_id: str | None = None,
        amount: int | None = None,
    ) -> None:
        await self._write(
            "INSERT INTO activity_log (event_type, wallet, content_id, amount, message, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                event_type, wallet, content_id,
                str(amount) if amount is not None else None,
                message, _now(),
            ),
        )

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        rows = await self._fetchall(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        )
        return [
            ActivityRecord(
                id=row["id"],
                event_type=row["event_type"],
                wallet=row["wallet"],
                content_id=row["content_id"],
                amount=_opt_int(row["amount"]),
                message=row["message"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ── Maintenance ────────────────────────────────────────

    async def recount_sales(self) -> RecountSummary:
        """Rebuild denormalized sale counters from the receipts table."""
        now = _now()
        async with self.transaction():
            listings = await self._write(
                "UPDATE listings SET sales_count=("
                "  SELECT COUNT(*) FROM receipts r WHERE r.content_id=listings.content_id"
                "), updated_at=?"
                " WHERE sales_count != ("
                "  SELECT COUNT(*) FROM receipts r WHERE r.content_id=listings.content_id)",
                (now,),
            )
            profiles = await self._write(
                "UPDATE profiles SET"
                " sales_count=(SELECT COUNT(*) FROM receipts r"
                "  WHERE r.seller_wallet=profiles.wallet),"
                " purchase_count=(SELECT COUNT(*) FROM receipts r"
                "  WHERE r.buyer_wallet=profiles.wallet),"
                " updated_at=?"
                " WHERE sales_count != (SELECT COUNT(*) FROM receipts r"
                "  WHERE r.seller_wallet=profiles.wallet)"
                " OR purchase_count != (SELECT COUNT(*) FROM receipts r"
                "  WHERE r.buyer_wallet=profiles.wallet)",
                (now,),
            )
        return RecountSummary(listings_updated=listings, profiles_updated=profiles)

    async def get_counts(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now(timezone.utc)
        queries = {
            "profiles": ("SELECT COUNT(*) AS c FROM profiles", ()),
            "revoked_profiles": ("SELECT COUNT(*) AS c FROM profiles WHERE revoked=1", ()),
            "listings": ("SELECT COUNT(*) AS c FROM listings", ()),
            "receipts": ("SELECT COUNT(*) AS c FROM receipts", ()),
            "processed_events": (
                "SELECT COUNT(*) AS c FROM processed_events WHERE expires_at > ?",
                (_iso(now),),
            ),
        }
        counts: dict[str, int] = {}
        for name, (sql, params) in queries.items():
            row = await self._fetchone(sql, params)
            counts[name] = row["c"] if row else 0
        return counts


# ── Row converters ─────────────────────────────────────────


def _row_to_profile(row: aiosqlite.Row) -> AccountProfile:
    return AccountProfile(
        wallet=row["wallet"],
        external_id=_opt_int(row["external_id"]),
        revoked=bool(row["revoked"]),
        sales_count=row["sales_count"],
        purchase_count=row["purchase_count"],
        origin=row["origin"],
        joined_at=row["joined_at"],
        referred_by=row["referred_by"],
        referral_paid=bool(row["referral_paid"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_listing(row: aiosqlite.Row) -> ContentListing:
    return ContentListing(
        content_id=row["content_id"],
        on_chain_id=row["on_chain_id"],
        seller_wallet=row["seller_wallet"],
        active=bool(row["active"]),
        expires_at=row["expires_at"],
        price=_opt_int(row["price"]),
        sales_count=row["sales_count"],
        is_stand_in=bool(row["is_stand_in"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_receipt(row: aiosqlite.Row) -> PurchaseReceipt:
    return PurchaseReceipt(
        purchase_id=int(row["purchase_id"]),
        content_id=row["content_id"],
        buyer_wallet=row["buyer_wallet"],
        seller_wallet=row["seller_wallet"],
        price=int(row["price"]),
        total_cost=int(row["total_cost"]),
        tx_hash=row["tx_hash"],
        purchased_at=row["purchased_at"],
        created_at=row["created_at"],
    )
