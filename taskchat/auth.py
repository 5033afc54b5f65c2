"""Bearer token issue and verification.

Tokens are HS256 (configurable) JWTs whose `sub` claim is the owner identity.
The gateway trusts a verified subject completely; every downstream call is
parameterized by it explicitly.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from taskchat.config import Settings
from taskchat.observability import get_json_logger


@dataclass(slots=True)
class TokenCodec:
    secret: str
    algorithm: str = "HS256"
    ttl_min: int = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            secret=settings.auth_secret,
            algorithm=settings.auth_algorithm,
            ttl_min=settings.auth_token_ttl_min,
        )

    def create_access_token(self, subject: str, extra: dict[str, Any] | None = None) -> str:
        now = dt.datetime.now(dt.UTC)
        claims: dict[str, Any] = dict(extra or {})
        claims.update(
            {
                "sub": subject,
                "iat": int(now.timestamp()),
                "exp": int((now + dt.timedelta(minutes=self.ttl_min)).timestamp()),
            }
        )
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> str | None:
        """Return the token subject, or None if the token is invalid or expired."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            get_json_logger("taskchat.auth").info(
                "token rejected",
                extra={"event": "auth_rejected", "attributes": {"reason": str(exc)[:200]}},
            )
            return None
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            return None
        return sub


def parse_bearer(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


__all__ = ["TokenCodec", "parse_bearer"]
