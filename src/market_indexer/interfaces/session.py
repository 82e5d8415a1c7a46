"""SessionVerifier protocol - resolves a bearer token to the caller's wallet."""

from __future__ import annotations

from typing import Protocol


class SessionVerifier(Protocol):
    """Verifies session tokens issued by the auth service.

    Issuance is out of scope; the indexer only needs to know who is asking.
    """

    def wallet_for(self, token: str) -> str | None:
        """Return the lowercased wallet bound to a valid token, else None."""
        ...
