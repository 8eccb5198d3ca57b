"""
Signed session tokens for the edge guard.

A token is an HS256 JWT signed with the configured session secret and
carrying ``sub`` (the user id), ``iat`` and ``exp``.
"""

import hmac
import time
from dataclasses import dataclass
from typing import Optional

import jwt

from swaggbot.errors import ConfigurationError
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_COOKIE = "session"
ALGORITHM = "HS256"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    created_at: int
    expires_at: int


class SessionTokenService:
    """Create and validate signed session tokens."""

    def __init__(self, secret: Optional[str], max_age: int = 86400):
        self._secret = secret
        self.max_age = max_age

    def _require_secret(self) -> str:
        if not self._secret:
            raise ConfigurationError("auth.session_secret is not configured")
        return self._secret

    def create(self, user_id: str = "user", now: Optional[int] = None) -> str:
        """Issue a new token valid for max_age seconds."""
        secret = self._require_secret()
        issued = int(time.time()) if now is None else now
        claims = {"sub": user_id, "iat": issued, "exp": issued + self.max_age}
        return jwt.encode(claims, secret, algorithm=ALGORITHM)

    def claims(self, token: str) -> Optional[SessionClaims]:
        """
        Return the claims of a valid token, or None.

        Any malformed, tampered or expired token yields None.
        """
        if not self._secret or not token:
            return None

        try:
            data = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Session token expired")
            return None
        except jwt.PyJWTError as e:
            logger.debug("Invalid session token: %s", e)
            return None

        return SessionClaims(
            user_id=str(data["sub"]),
            created_at=int(data["iat"]),
            expires_at=int(data["exp"]),
        )

    def validate(self, token: str) -> bool:
        return self.claims(token) is not None


def verify_password(candidate: str, expected: Optional[str]) -> bool:
    """Constant-time comparison against the configured application password."""
    if not expected:
        raise ConfigurationError("auth.app_password is not configured")
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))
