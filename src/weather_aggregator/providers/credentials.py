"""Credential resolution for sources that need an API key or token.

## Priority

1. A user-supplied key stored in the source's config store wins, unless it
   equals the build default.
2. Otherwise, if the source has a signing key, a fresh HS256 JWT is minted
   for every request cycle.
3. Otherwise (or if signing fails for any reason), the build default key.

Signing failures are never raised: the default key is always a valid
fallback.

## Token Structure

```json
{
  "class": "mobile",
  "iat": 1234567890,
  "jti": "random-uuid"
}
```
with header `{"alg": "HS256", "typ": "JWT"}`.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from jose import jwt

from weather_aggregator.config import SourceConfigStore

logger = logging.getLogger(__name__)

# JWT configuration
ALGORITHM = "HS256"


@dataclass(frozen=True)
class CredentialConfig:
    """Build-time credential material of one source.

    Attributes:
        default_key: Static key shipped with the build ("" if none)
        signing_key: HMAC key for minting tokens (None to disable minting)
        claims: Extra claims added to every minted token
    """

    default_key: str = ""
    signing_key: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class CredentialResolver:
    """Compute the credential to use for one request cycle."""

    def __init__(
        self,
        config: CredentialConfig,
        store: SourceConfigStore,
        store_key: str = "apikey",
    ):
        self.config = config
        self.store = store
        self.store_key = store_key

    @property
    def user_key(self) -> str:
        """Key entered by the user, or "" if none."""
        return self.store.get(self.store_key) or ""

    @user_key.setter
    def user_key(self, value: str) -> None:
        self.store.set(self.store_key, value)

    @property
    def is_restricted(self) -> bool:
        """True when relying on the shared build default."""
        return not self.user_key

    def key_or_default(self) -> str:
        """User key if set, build default otherwise."""
        return self.user_key or self.config.default_key

    def resolve_token(self) -> str:
        """Return the key or token to send with this request cycle."""
        key = self.key_or_default()
        if key != self.config.default_key:
            return key
        if not self.config.signing_key:
            return self.config.default_key
        try:
            return self.mint_token()
        except Exception as e:
            logger.debug(f"Token signing failed, falling back to default key: {e!r}")
            return self.config.default_key

    def mint_token(self) -> str:
        """Mint a signed token with a random id and the current time."""
        if not self.config.signing_key:
            raise ValueError("No signing key configured")
        payload = {
            **self.config.claims,
            "iat": int(time.time()),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(
            payload,
            self.config.signing_key,
            algorithm=ALGORITHM,
            headers={"typ": "JWT"},
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.resolve_token())
