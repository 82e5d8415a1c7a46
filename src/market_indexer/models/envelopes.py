"""Webhook envelope models.

The notifier sends one of two shapes, told apart by the ``type`` field:

- ``ADDRESS_ACTIVITY``: a flat list of activities, each optionally carrying a log.
- ``GRAPHQL``: a block with its list of matching logs.

The two never appear in the same delivery.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Largest values SQLite INTEGER and datetime can hold.
MAX_INDEX = 2**63 - 1
MAX_TIMESTAMP = 253402300799  # 9999-12-31T23:59:59Z


def _parse_quantity(value: object) -> object:
    """Accept JSON-RPC hex quantities ("0x1a") as well as plain integers."""
    if isinstance(value, str):
        return int(value, 0)
    return value


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── ADDRESS_ACTIVITY ───────────────────────────────────────


class ActivityLog(_Model):
    address: str
    topics: list[str]
    data: str
    transaction_hash: str = Field(alias="transactionHash")
    log_index: int = Field(alias="logIndex", ge=0, le=MAX_INDEX)
    block_number: int | None = Field(
        default=None, alias="blockNumber", ge=0, le=MAX_INDEX,
    )
    removed: bool = False

    @field_validator("log_index", "block_number", mode="before")
    @classmethod
    def parse_quantities(cls, value: object) -> object:
        return _parse_quantity(value)


class Activity(_Model):
    hash: str
    from_address: str | None = Field(default=None, alias="fromAddress")
    to_address: str | None = Field(default=None, alias="toAddress")
    block_num: str | None = Field(default=None, alias="blockNum")
    category: str | None = None
    log: ActivityLog | None = None


class ActivityEvent(_Model):
    network: str | None = None
    activity: list[Activity]


class AddressActivityEnvelope(_Model):
    type: Literal["ADDRESS_ACTIVITY"]
    webhook_id: str = Field(alias="webhookId")
    id: str
    created_at: datetime = Field(alias="createdAt")
    event: ActivityEvent


# ── GRAPHQL (block/logs) ───────────────────────────────────


class LogAccount(_Model):
    address: str


class LogTransaction(_Model):
    hash: str
    index: int | None = None


class BlockLog(_Model):
    data: str
    topics: list[str]
    index: int = Field(ge=0, le=MAX_INDEX)
    account: LogAccount
    transaction: LogTransaction
    removed: bool = False

    @field_validator("index", mode="before")
    @classmethod
    def parse_quantities(cls, value: object) -> object:
        return _parse_quantity(value)


class Block(_Model):
    hash: str | None = None
    number: int | None = Field(default=None, ge=0, le=MAX_INDEX)
    timestamp: int | None = Field(default=None, ge=0, le=MAX_TIMESTAMP)  # unix seconds
    logs: list[BlockLog]

    @field_validator("number", "timestamp", mode="before")
    @classmethod
    def parse_quantities(cls, value: object) -> object:
        return _parse_quantity(value)


class BlockData(_Model):
    block: Block


class BlockEvent(_Model):
    data: BlockData
    network: str | None = None
    sequence_number: str | None = Field(default=None, alias="sequenceNumber")


class BlockLogsEnvelope(_Model):
    type: Literal["GRAPHQL"]
    webhook_id: str = Field(alias="webhookId")
    id: str
    created_at: datetime = Field(alias="createdAt")
    event: BlockEvent


WebhookEnvelope = Annotated[
    Union[AddressActivityEnvelope, BlockLogsEnvelope],
    Field(discriminator="type"),
]
