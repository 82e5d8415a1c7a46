"""CLI entry point for the market_indexer service."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

import click
import httpx

from market_indexer.api.data_api import ReadModel
from market_indexer.chain.content_id import from_on_chain, to_on_chain_hex
from market_indexer.config import load_config, validate_config
from market_indexer.errors import ConfigError, FormatError
from market_indexer.service import run_server
from market_indexer.storage.sqlite import SQLiteStateStore
from market_indexer.webhooks.guard import WebhookGuard


def _mask(secret: str) -> str:
    return "***configured***" if secret else "(not set)"


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """market_indexer - Ledger webhook indexer for the content marketplace."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Server ─────────────────────────────────────────────


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Start the HTTP API."""
    cfg = load_config(ctx.obj["config_path"])
    try:
        validate_config(cfg)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Starting market_indexer on {cfg.host}:{cfg.port} ({cfg.environment.value})")
    asyncio.run(run_server(cfg))


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.option("--counts", is_flag=True, help="Also show record counts from the database")
@click.pass_context
def status(ctx: click.Context, counts: bool) -> None:
    """Show effective configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Environment: {cfg.environment.value}")
    click.echo(f"Listen:      {cfg.host}:{cfg.port}")
    click.echo(f"Network:     {cfg.network}")
    click.echo(f"Contracts:   {', '.join(cfg.contract_addresses) or '(any)'}")
    click.echo(f"DB path:     {cfg.db_path}")
    click.echo(f"Signing key: {_mask(cfg.webhook.signing_key)}")
    click.echo(f"Skip sig:    {cfg.webhook.skip_signature_verification}")
    click.echo(f"Session key: {_mask(cfg.session.secret)}")
    click.echo(f"Max age:     {cfg.webhook.max_event_age}s")
    click.echo(f"Event TTL:   {cfg.webhook.processed_event_ttl}s")

    if not counts:
        return

    async def _counts():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            summary = await ReadModel(store, cfg.environment.value).get_summary(0)
            click.echo("")
            click.echo(f"Profiles:    {summary.profiles} ({summary.revoked_profiles} revoked)")
            click.echo(f"Listings:    {summary.listings}")
            click.echo(f"Receipts:    {summary.receipts}")
            click.echo(f"Events:      {summary.processed_events} (unexpired)")
        finally:
            await store.close()

    asyncio.run(_counts())


@cli.command()
@click.option("-n", "--limit", type=int, default=20, help="Number of entries to show")
@click.pass_context
def activity(ctx: click.Context, limit: int) -> None:
    """Show recent activity."""
    cfg = load_config(ctx.obj["config_path"])

    async def _activity():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            entries = await store.get_recent_activity(limit)
            if not entries:
                click.echo("No activity recorded.")
                return
            for a in entries:
                who = f" wallet={a.wallet}" if a.wallet else ""
                click.echo(f"  {a.created_at} [{a.event_type}]{who} {a.message}")
        finally:
            await store.close()

    asyncio.run(_activity())


@cli.command()
@click.argument("purchase_id", type=int)
@click.pass_context
def receipt(ctx: click.Context, purchase_id: int) -> None:
    """Show a purchase receipt."""
    cfg = load_config(ctx.obj["config_path"])

    async def _receipt():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            return await ReadModel(store).get_receipt(purchase_id)
        finally:
            await store.close()

    snapshot = asyncio.run(_receipt())
    if snapshot is None:
        click.echo(f"Receipt #{purchase_id} not found.", err=True)
        sys.exit(1)

    click.echo(f"Receipt:     #{snapshot.purchase_id}")
    click.echo(f"Content:     {snapshot.content_id}")
    click.echo(f"Identifier:  {snapshot.content_identifier}")
    click.echo(f"Buyer:       {snapshot.buyer}")
    click.echo(f"Seller:      {snapshot.seller}")
    click.echo(f"Price:       {snapshot.price}")
    click.echo(f"Total cost:  {snapshot.total_cost}")
    click.echo(f"Tx:          {snapshot.tx_hash}")
    click.echo(f"Purchased:   {snapshot.purchased_at}")


@cli.command()
@click.option("--content-id", default=None, help="Only receipts for this listing")
@click.option("-n", "--limit", type=int, default=20, help="Number of receipts to show")
@click.pass_context
def receipts(ctx: click.Context, content_id: str | None, limit: int) -> None:
    """List recent purchase receipts."""
    cfg = load_config(ctx.obj["config_path"])

    async def _receipts():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            return await ReadModel(store).get_receipts(content_id, limit)
        finally:
            await store.close()

    try:
        snapshots = asyncio.run(_receipts())
    except FormatError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if not snapshots:
        click.echo("No receipts recorded.")
        return
    for s in snapshots:
        click.echo(
            f"  #{s.purchase_id} {s.content_id} buyer={s.buyer} "
            f"seller={s.seller} price={s.price}"
        )


@cli.command()
@click.argument("wallet")
@click.pass_context
def profile(ctx: click.Context, wallet: str) -> None:
    """Show an account profile."""
    cfg = load_config(ctx.obj["config_path"])

    async def _profile():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            return await ReadModel(store).get_profile(wallet)
        finally:
            await store.close()

    snapshot = asyncio.run(_profile())
    if snapshot is None:
        click.echo(f"Profile {wallet} not found.", err=True)
        sys.exit(1)

    click.echo(f"Wallet:      {snapshot.wallet}")
    click.echo(f"Origin:      {snapshot.origin}")
    pass_id = snapshot.external_id if snapshot.external_id is not None else "(none)"
    click.echo(f"Pass:        {pass_id}")
    click.echo(f"Joined:      {snapshot.joined_at or '(unknown)'}")
    click.echo(f"Referred by: {snapshot.referred_by or '(none)'}")
    click.echo(f"Referral:    {'paid' if snapshot.referral_paid else 'unpaid'}")
    click.echo(f"Revoked:     {snapshot.revoked}")
    click.echo(f"Sales:       {snapshot.sales_count}")
    click.echo(f"Purchases:   {snapshot.purchase_count}")
    click.echo(f"Dispute:     {snapshot.dispute_status or '(none)'}")


@cli.command()
@click.argument("content_id")
@click.pass_context
def listing(ctx: click.Context, content_id: str) -> None:
    """Show a listing and its sale counter."""
    cfg = load_config(ctx.obj["config_path"])

    async def _listing():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            return await ReadModel(store).get_listing(content_id)
        finally:
            await store.close()

    try:
        snapshot = asyncio.run(_listing())
    except FormatError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if snapshot is None:
        click.echo(f"Listing {content_id} not found.", err=True)
        sys.exit(1)

    click.echo(f"Content:     {snapshot.content_id}")
    click.echo(f"Identifier:  {snapshot.content_identifier}")
    click.echo(f"Seller:      {snapshot.seller}")
    click.echo(f"Active:      {snapshot.active}")
    click.echo(f"Expires:     {snapshot.expires_at or '(never)'}")
    click.echo(f"Sales:       {snapshot.sales_count}")
    click.echo(f"Stand-in:    {snapshot.stand_in}")


# ── Maintenance ────────────────────────────────────────


@cli.command("purge-events")
@click.pass_context
def purge_events(ctx: click.Context) -> None:
    """Delete expired processed-event records."""
    cfg = load_config(ctx.obj["config_path"])

    async def _purge():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            return await store.purge_expired_events()
        finally:
            await store.close()

    removed = asyncio.run(_purge())
    click.echo(f"Purged {removed} expired event record(s).")


@cli.command("recount-sales")
@click.pass_context
def recount_sales(ctx: click.Context) -> None:
    """Rebuild listing and profile sale counters from receipts."""
    cfg = load_config(ctx.obj["config_path"])

    async def _recount():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            summary = await store.recount_sales()
            if summary.listings_updated or summary.profiles_updated:
                await store.log_activity(
                    "sales_recounted",
                    f"Recounted sales: {summary.listings_updated} listings, "
                    f"{summary.profiles_updated} profiles",
                )
            return summary
        finally:
            await store.close()

    summary = asyncio.run(_recount())
    click.echo(f"Listings updated: {summary.listings_updated}")
    click.echo(f"Profiles updated: {summary.profiles_updated}")


# ── Developer tools ────────────────────────────────────


@cli.command("encode-id")
@click.argument("content_id")
def encode_id(content_id: str) -> None:
    """Print the bytes32 on-chain identifier for a content id."""
    try:
        click.echo(to_on_chain_hex(content_id))
    except FormatError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.command("decode-id")
@click.argument("identifier")
def decode_id(identifier: str) -> None:
    """Print the content id for a bytes32 on-chain identifier."""
    try:
        click.echo(from_on_chain(identifier))
    except FormatError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.command("send-webhook")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--url", default=None, help="Webhook URL (default: local server)")
@click.option("--touch", is_flag=True, help="Set createdAt to now before sending")
@click.pass_context
def send_webhook(
    ctx: click.Context, payload_file: str, url: str | None, touch: bool
) -> None:
    """Sign a JSON delivery with the configured key and POST it."""
    cfg = load_config(ctx.obj["config_path"])
    if not cfg.webhook.signing_key:
        click.echo("Error: No webhook signing key configured.", err=True)
        click.echo("Set MARKET_INDEXER_SIGNING_KEY or [webhook] signing_key.", err=True)
        sys.exit(1)

    with open(payload_file, "rb") as f:
        body = f.read()
    if touch:
        payload = json.loads(body)
        payload["createdAt"] = datetime.now(timezone.utc).isoformat()
        body = json.dumps(payload).encode()

    guard = WebhookGuard(cfg.webhook.signing_key, cfg.environment)
    target = url or f"http://{cfg.host}:{cfg.port}/webhooks"
    try:
        resp = httpx.post(
            target,
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Alchemy-Signature": guard.expected_signature(body),
            },
            timeout=10.0,
        )
    except httpx.HTTPError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"HTTP {resp.status_code}")
    click.echo(resp.text)
    if resp.status_code >= 400:
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
