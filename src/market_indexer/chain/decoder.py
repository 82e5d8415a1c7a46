"""Event decoder - turns normalized logs into typed domain events."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from market_indexer.chain.registry import EventSpec, lookup
from market_indexer.errors import DecodeError
from market_indexer.models.events import DomainEvent, NormalizedLogEntry

log = logging.getLogger(__name__)


def _hex_bytes(value: str) -> bytes:
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


class EventDecoder:
    """Decodes logs whose topic0 is in the static event registry.

    Logs from contracts outside ``contract_addresses`` (when configured) and
    logs with unknown topics are ignored rather than treated as errors: a
    single delivery routinely carries unrelated events.
    """

    def __init__(self, contract_addresses: Iterable[str] = ()) -> None:
        self._contracts = {a.lower() for a in contract_addresses}

    def spec_for(self, entry: NormalizedLogEntry) -> EventSpec | None:
        """Return the registry entry for a log, or None if it should be ignored."""
        if self._contracts and entry.contract_address.lower() not in self._contracts:
            log.debug(
                "Ignoring log from foreign contract %s (tx=%s)",
                entry.contract_address, entry.transaction_hash,
            )
            return None
        return lookup(entry.topic0)

    def recognizes(self, entry: NormalizedLogEntry) -> bool:
        return self.spec_for(entry) is not None

    def decode(self, entry: NormalizedLogEntry) -> DomainEvent | None:
        """Decode a log. Returns None for unrecognized logs.

        Raises DecodeError when the topic is known but the log body does not
        match the registered layout.
        """
        spec = self.spec_for(entry)
        if spec is None:
            log.debug("Unhandled event topic %s (tx=%s)", entry.topic0, entry.transaction_hash)
            return None

        values = self._decode_fields(spec, entry)
        try:
            return spec.build(values, entry)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"{spec.name}: {exc}", spec.name) from exc

    def _decode_fields(self, spec: EventSpec, entry: NormalizedLogEntry) -> dict[str, Any]:
        indexed = spec.indexed_fields
        topics = entry.topics[1:]
        if len(topics) != len(indexed):
            raise DecodeError(
                f"{spec.name}: expected {len(indexed)} indexed topics, got {len(topics)}",
                spec.name,
            )

        values: dict[str, Any] = {}
        try:
            for fld, topic in zip(indexed, topics):
                (values[fld.name],) = abi_decode([fld.abi_type], _hex_bytes(topic))

            data_fields = spec.data_fields
            decoded = abi_decode([f.abi_type for f in data_fields], _hex_bytes(entry.data))
            for fld, value in zip(data_fields, decoded):
                values[fld.name] = value
        except (DecodingError, ValueError) as exc:
            raise DecodeError(f"{spec.name}: {exc}", spec.name) from exc

        return values
