"""Content identifier codec.

Listings are keyed off-chain by a UUID string. The market contract identifies
them by a bytes32 value: the 16 UUID bytes left-aligned, followed by 16 zero
bytes. The trailing half must be zero when decoding, so a future identifier
scheme that uses all 32 bytes is rejected instead of silently truncated.
"""

from __future__ import annotations

import re
import uuid

from market_indexer.errors import FormatError

ON_CHAIN_SIZE = 32
_ID_SIZE = 16
_PADDING = bytes(ON_CHAIN_SIZE - _ID_SIZE)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_BYTES32_RE = re.compile(r"^0x[0-9a-f]{64}$", re.IGNORECASE)


def to_on_chain(content_id: str | uuid.UUID) -> bytes:
    """Encode an internal content id as its 32-byte on-chain image."""
    if isinstance(content_id, uuid.UUID):
        raw = content_id.bytes
    else:
        if not is_valid_content_id(content_id):
            raise FormatError(f"not a content id: {content_id!r}")
        raw = uuid.UUID(content_id).bytes
    return raw + _PADDING


def to_on_chain_hex(content_id: str | uuid.UUID) -> str:
    """Encode an internal content id as a 0x-prefixed bytes32 hex string."""
    return "0x" + to_on_chain(content_id).hex()


def from_on_chain(value: bytes | str) -> str:
    """Decode a 32-byte on-chain image back to the canonical content id."""
    if isinstance(value, str):
        if not is_valid_bytes32(value):
            raise FormatError(f"not a bytes32 hex string: {value!r}")
        value = bytes.fromhex(value[2:])

    if len(value) != ON_CHAIN_SIZE:
        raise FormatError(f"expected {ON_CHAIN_SIZE} bytes, got {len(value)}")
    if value[_ID_SIZE:] != _PADDING:
        raise FormatError(
            f"trailing bytes of content identifier are not zero: 0x{value.hex()}"
        )
    return str(uuid.UUID(bytes=bytes(value[:_ID_SIZE])))


def is_valid_content_id(value: str) -> bool:
    """Check for the grouped 8-4-4-4-12 hex form."""
    return bool(_UUID_RE.match(value))


def is_valid_bytes32(value: str) -> bool:
    return bool(_BYTES32_RE.match(value))


def canonical_content_id(value: str) -> str:
    """Lowercase a content id after validating its shape."""
    if not is_valid_content_id(value):
        raise FormatError(f"not a content id: {value!r}")
    return value.lower()
