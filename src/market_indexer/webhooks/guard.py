"""Signature and freshness checks for inbound webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone

from market_indexer.errors import AuthenticationError, StaleEventError
from market_indexer.models.config import Environment

log = logging.getLogger(__name__)


class WebhookGuard:
    """Authenticates deliveries with HMAC-SHA256 and rejects stale ones.

    The signing key is passed in explicitly. ``skip_verification`` is a local
    development aid and is ignored in production. Without a key and without an
    honored override, every delivery is rejected.
    """

    def __init__(
        self,
        signing_key: str,
        environment: Environment = Environment.DEVELOPMENT,
        skip_verification: bool = False,
        max_age: int = 300,
        max_future_skew: int = 60,
    ) -> None:
        self._key = signing_key.encode() if signing_key else b""
        self._environment = environment
        self._skip = skip_verification and environment != Environment.PRODUCTION
        self.max_age = max_age
        self.max_future_skew = max_future_skew

        if skip_verification and not self._skip:
            log.warning("Signature skip override ignored in production")
        elif self._skip:
            log.warning("Webhook signature verification is DISABLED (%s)", environment.value)

    @property
    def verification_enabled(self) -> bool:
        return not self._skip

    def expected_signature(self, raw_body: bytes) -> str:
        return hmac.new(self._key, raw_body, hashlib.sha256).hexdigest()

    def verify_signature(self, raw_body: bytes, signature: str | None) -> None:
        """Raise AuthenticationError unless ``signature`` matches the raw body."""
        if self._skip:
            return
        if not self._key:
            log.error("Rejecting delivery: no webhook signing key configured")
            raise AuthenticationError("webhook signing key not configured")
        if not signature:
            log.warning("Rejecting delivery: missing signature header")
            raise AuthenticationError("missing signature")

        expected = self.expected_signature(raw_body)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            log.warning("Rejecting delivery: signature mismatch (possible forgery)")
            raise AuthenticationError("invalid signature")

    def check_freshness(self, claimed_at: datetime, now: datetime | None = None) -> float:
        """Raise StaleEventError if ``claimed_at`` is outside the accepted window.

        Returns the delivery age in seconds. Naive timestamps are taken as UTC.
        """
        now = now or datetime.now(timezone.utc)
        if claimed_at.tzinfo is None:
            claimed_at = claimed_at.replace(tzinfo=timezone.utc)

        age = (now - claimed_at).total_seconds()
        if age > self.max_age:
            log.warning("Rejecting stale delivery: %.0fs old (max %ds)", age, self.max_age)
            raise StaleEventError(f"event too old: {age:.0f}s", age)
        if -age > self.max_future_skew:
            log.warning(
                "Rejecting delivery from the future: %.0fs ahead (max skew %ds)",
                -age, self.max_future_skew,
            )
            raise StaleEventError(f"event timestamp in the future: {-age:.0f}s", age)
        return age
