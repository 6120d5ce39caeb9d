"""
Bearer-token auth for inbound requests.

Single shared secret, HS256, short-lived tokens. When no secret is
configured auth is disabled and every request passes.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

logger = logging.getLogger(__name__)

TOKEN_SERVICE_CLAIM = "call-relay"


class TokenIssuer:
    """Issues and verifies JWT bearer tokens."""

    def __init__(self, secret: str, expires_minutes: int = 60, algorithm: str = "HS256"):
        if not secret:
            raise RuntimeError("JWT_SECRET is required to issue tokens")
        self.secret = secret
        self.expires_minutes = expires_minutes
        self.algorithm = algorithm

    @property
    def expires_in_seconds(self) -> int:
        return self.expires_minutes * 60

    def issue(self, extra_claims: Optional[Dict[str, Any]] = None) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "service": TOKEN_SERVICE_CLAIM,
            "iat": now,
            "exp": now + timedelta(minutes=self.expires_minutes),
        }
        if extra_claims:
            payload.update(extra_claims)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Decode and validate a token.

        Raises:
            jwt.InvalidTokenError: If the token is malformed, tampered or expired
        """
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token part of an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()
