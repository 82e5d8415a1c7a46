"""Exception types raised across the indexer."""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for all market_indexer errors."""

    code: str = "internal_error"
    status_code: int = 500


class ConfigError(IndexerError):
    """Invalid or incomplete configuration."""

    code = "config_error"


# ── Webhook delivery (fatal per request) ──────────────────


class AuthenticationError(IndexerError):
    """Delivery signature missing or does not match the signing key."""

    code = "unauthorized"
    status_code = 401


class StaleEventError(IndexerError):
    """Delivery timestamp is outside the accepted skew window."""

    code = "stale_event"
    status_code = 400

    def __init__(self, message: str, age_seconds: float) -> None:
        super().__init__(message)
        self.age_seconds = age_seconds


class ValidationError(IndexerError):
    """Delivery body matches neither envelope shape."""

    code = "invalid_payload"
    status_code = 400


class StorageUnavailableError(IndexerError):
    """The store could not complete an operation; the delivery should be retried."""

    code = "storage_unavailable"
    status_code = 503


# ── Per-log (recovered locally) ───────────────────────────


class DecodeError(IndexerError):
    """A log with a recognized topic could not be decoded."""

    code = "decode_error"

    def __init__(self, message: str, event_name: str | None = None) -> None:
        super().__init__(message)
        self.event_name = event_name


class FormatError(IndexerError):
    """A value is not a well-formed content identifier image."""

    code = "invalid_format"
    status_code = 400


# ── Purchase eligibility ──────────────────────────────────


class EligibilityError(IndexerError):
    """A buyer may not request a purchase identifier for a listing."""

    code = "ineligible"
    status_code = 400

    def __init__(self, message: str, content_id: str) -> None:
        super().__init__(message)
        self.content_id = content_id


class ListingNotFoundError(EligibilityError):
    code = "not_found"
    status_code = 404


class ListingUnavailableError(EligibilityError):
    code = "unavailable"
    status_code = 400

    def __init__(self, message: str, content_id: str, reason: str) -> None:
        super().__init__(message, content_id)
        self.reason = reason  # "inactive" or "expired"


class SelfPurchaseForbiddenError(EligibilityError):
    code = "self_purchase_forbidden"
    status_code = 403


class SellerRevokedError(EligibilityError):
    code = "seller_revoked"
    status_code = 403
