"""Data models for the market_indexer service."""

from market_indexer.models.events import (
    AccessRevocationChanged,
    AccountPassMinted,
    AccountRegistered,
    ContentPurchased,
    DomainEvent,
    NormalizedLogEntry,
)
from market_indexer.models.records import (
    AccountProfile,
    ActivityRecord,
    ContentListing,
    DeliveryResult,
    DisputeRecord,
    EligibilityResult,
    ProjectionResult,
    PurchaseReceipt,
    RecountSummary,
)
from market_indexer.models.config import (
    Environment,
    IndexerConfig,
    SessionConfig,
    WebhookConfig,
)
from market_indexer.models.envelopes import (
    AddressActivityEnvelope,
    BlockLogsEnvelope,
    WebhookEnvelope,
)
from market_indexer.models.snapshots import (
    IndexerSummary,
    ListingSnapshot,
    ProfileSnapshot,
    ReceiptSnapshot,
)

__all__ = [
    "AccessRevocationChanged", "AccountPassMinted", "AccountRegistered",
    "ContentPurchased", "DomainEvent", "NormalizedLogEntry",
    "AccountProfile", "ActivityRecord", "ContentListing", "DeliveryResult",
    "DisputeRecord", "EligibilityResult", "ProjectionResult", "PurchaseReceipt",
    "RecountSummary",
    "Environment", "IndexerConfig", "SessionConfig", "WebhookConfig",
    "AddressActivityEnvelope", "BlockLogsEnvelope", "WebhookEnvelope",
    "IndexerSummary", "ListingSnapshot", "ProfileSnapshot", "ReceiptSnapshot",
]
