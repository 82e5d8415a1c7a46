"""Parse webhook bodies and flatten them into a uniform list of logs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pydantic
from pydantic import TypeAdapter

from market_indexer.errors import ValidationError
from market_indexer.models.envelopes import (
    AddressActivityEnvelope,
    BlockLogsEnvelope,
    WebhookEnvelope,
)
from market_indexer.models.events import NormalizedLogEntry

log = logging.getLogger(__name__)

_envelope_adapter: TypeAdapter[WebhookEnvelope] = TypeAdapter(WebhookEnvelope)


def parse_envelope(raw: bytes | str) -> AddressActivityEnvelope | BlockLogsEnvelope:
    """Validate a raw body against both envelope shapes.

    Raises ValidationError if it matches neither.
    """
    try:
        return _envelope_adapter.validate_json(raw)
    except pydantic.ValidationError as exc:
        log.warning("Malformed delivery: %d validation error(s)", exc.error_count())
        raise ValidationError(f"unrecognized webhook payload: {exc.errors()[0]['msg']}") from exc


def normalize(
    envelope: AddressActivityEnvelope | BlockLogsEnvelope,
) -> list[NormalizedLogEntry]:
    """Flatten an envelope into logs, in delivery order.

    Activities without a log and logs removed by a reorg are dropped.
    """
    if isinstance(envelope, AddressActivityEnvelope):
        return _from_activity(envelope)
    return _from_block(envelope)


def _from_activity(envelope: AddressActivityEnvelope) -> list[NormalizedLogEntry]:
    # Activity logs carry no block time; the delivery timestamp stands in.
    fallback_time = _utc(envelope.created_at)
    entries = []
    for activity in envelope.event.activity:
        entry = activity.log
        if entry is None:
            continue
        if entry.removed:
            log.info("Dropping removed log %s:%d", entry.transaction_hash, entry.log_index)
            continue
        entries.append(
            NormalizedLogEntry(
                contract_address=entry.address.lower(),
                topics=tuple(t.lower() for t in entry.topics),
                data=entry.data,
                transaction_hash=entry.transaction_hash.lower(),
                log_index=entry.log_index,
                block_timestamp=fallback_time,
                block_number=entry.block_number,
            )
        )
    return entries


def _from_block(envelope: BlockLogsEnvelope) -> list[NormalizedLogEntry]:
    block = envelope.event.data.block
    if block.timestamp is not None:
        block_time = datetime.fromtimestamp(block.timestamp, tz=timezone.utc)
    else:
        block_time = _utc(envelope.created_at)

    entries = []
    for entry in block.logs:
        if entry.removed:
            log.info("Dropping removed log %s:%d", entry.transaction.hash, entry.index)
            continue
        entries.append(
            NormalizedLogEntry(
                contract_address=entry.account.address.lower(),
                topics=tuple(t.lower() for t in entry.topics),
                data=entry.data,
                transaction_hash=entry.transaction.hash.lower(),
                log_index=entry.index,
                block_timestamp=block_time,
                block_number=block.number,
            )
        )
    return entries


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
