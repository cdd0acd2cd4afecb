"""Bearer tokens for the management API.

Tokens are HS256 JWTs carrying the user id, username and subdomain:

    {"sub": "<user id>", "username": "alice", "subdomain": "alice-happyfox42.app",
     "iat": 1700000000, "exp": 1700604800}
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import structlog
from authlib.jose import jwt
from authlib.jose.errors import JoseError

from sitehost.errors import AuthenticationError
from sitehost.storage.models import User

logger = structlog.get_logger()

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a bearer token."""

    user_id: str
    username: str
    subdomain: str
    expires_at: int


class TokenService:
    """Issues and verifies signed bearer tokens."""

    def __init__(self, secret: str, ttl: int = 7 * 86400) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = secret.encode("utf-8")
        self.ttl = ttl

    def issue(self, user: User, now: int | None = None) -> str:
        """Sign a token for ``user``, valid for ``ttl`` seconds."""
        issued_at = int(time.time()) if now is None else now
        payload: dict[str, Any] = {
            "sub": user.id,
            "username": user.username,
            "subdomain": user.subdomain,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        token = jwt.encode({"alg": ALGORITHM}, payload, self._key)
        return token.decode("ascii") if isinstance(token, bytes) else token

    def verify(self, token: str, now: int | None = None) -> TokenClaims:
        """Check signature and expiry.

        Raises:
            AuthenticationError: If the token is malformed, forged or expired.
        """
        try:
            claims = jwt.decode(
                token,
                self._key,
                claims_options={"sub": {"essential": True}, "exp": {"essential": True}},
            )
            claims.validate(now=now)
        except JoseError as e:
            logger.debug("Token rejected", error=str(e))
            raise AuthenticationError("Invalid or expired token") from e
        except ValueError as e:
            raise AuthenticationError("Invalid or expired token") from e

        return TokenClaims(
            user_id=claims["sub"],
            username=claims.get("username", ""),
            subdomain=claims.get("subdomain", ""),
            expires_at=int(claims["exp"]),
        )
