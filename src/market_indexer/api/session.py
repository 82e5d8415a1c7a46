"""Session token verification for buyer-facing endpoints."""

from __future__ import annotations

import logging

from jose import JWTError, jwt

log = logging.getLogger(__name__)


class JwtSessionVerifier:
    """Verifies HS256 session tokens issued by the auth service.

    The wallet is read from ``wallet_claim`` (``address`` by default) and
    returned lowercased. Invalid, expired or claim-less tokens yield None.
    """

    def __init__(
        self, secret: str, algorithm: str = "HS256", wallet_claim: str = "address"
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._wallet_claim = wallet_claim

    def wallet_for(self, token: str) -> str | None:
        if not self._secret or not token:
            return None
        try:
            claims = jwt.decode(
                token, self._secret, algorithms=[self._algorithm],
                options={"verify_aud": False},
            )
        except JWTError as exc:
            log.debug("Rejected session token: %s", exc)
            return None

        wallet = claims.get(self._wallet_claim)
        if not isinstance(wallet, str) or not wallet:
            log.debug("Session token has no %r claim", self._wallet_claim)
            return None
        return wallet.lower()
