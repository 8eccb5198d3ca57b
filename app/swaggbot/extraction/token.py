"""
Authentication token extraction from login responses.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from swaggbot.extraction.expression import MISSING, ExpressionSyntaxError, evaluate
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "

COMMON_TOKEN_PATHS = [
    "access_token",
    "token",
    "jwt",
    "auth_token",
    "bearer_token",
    "id_token",
    "data.access_token",
    "data.token",
    "data.jwt",
    "data.auth_token",
    "result.access_token",
    "result.token",
    "result.jwt",
    "response.access_token",
    "response.token",
    "body.access_token",
    "body.token",
    "accessToken",
    "authToken",
]

PRIORITY_KEYS = [
    "access_token",
    "token",
    "jwt",
    "auth_token",
    "bearer_token",
    "id_token",
    "accessToken",
    "authToken",
]

_JWT = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")
_OPAQUE = re.compile(r"^[A-Za-z0-9_\-.]+$")


@dataclass(frozen=True)
class TokenMatch:
    """A credential found in a response, without any Bearer prefix."""

    token: str
    path: str

    @property
    def bearer(self) -> str:
        return f"{BEARER_PREFIX}{self.token}"


def _lookup(response: Any, path: str) -> Any:
    try:
        return evaluate(path, response)
    except ExpressionSyntaxError:
        logger.warning("Ignoring malformed token path %r", path)
        return MISSING


def extract_token(response: Any, path: str) -> Optional[str]:
    """
    Read a credential at a dotted path.

    A string leaf is returned as ``Bearer <token>`` unless it already
    carries the prefix. Any miss, or a non-string leaf, yields None.
    """
    if not isinstance(response, (dict, list)):
        return None

    value = _lookup(response, path)
    if not isinstance(value, str) or not value:
        return None

    return value if value.startswith(BEARER_PREFIX) else f"{BEARER_PREFIX}{value}"


def is_token_like(value: str) -> bool:
    """JWTs, long opaque tokens, and long bearer strings."""
    if not value:
        return False
    if _JWT.match(value):
        return True
    if _OPAQUE.match(value) and len(value) >= 20:
        return True
    return value.lower().startswith("bearer ") and len(value) > 30


def strip_bearer(token: str) -> str:
    if token.lower().startswith("bearer "):
        return token[7:].strip()
    return token


def _search(value: Any, path: str = "") -> Optional[TokenMatch]:
    if isinstance(value, str):
        return TokenMatch(value, path) if is_token_like(value) else None

    if isinstance(value, list):
        for i, item in enumerate(value):
            found = _search(item, f"{path}[{i}]")
            if found:
                return found
        return None

    if isinstance(value, dict):
        for key in PRIORITY_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str) and is_token_like(candidate):
                return TokenMatch(candidate, f"{path}.{key}" if path else key)

        for key, item in value.items():
            found = _search(item, f"{path}.{key}" if path else key)
            if found:
                return found

    return None


def find_token(response: Any, path: Optional[str] = None) -> Optional[TokenMatch]:
    """
    Locate a credential in a login response.

    Strategies, in order: the given path, the common token paths, then a
    recursive search for token-like strings.
    """
    if not isinstance(response, (dict, list)):
        return None

    candidates = ([path] if path else []) + COMMON_TOKEN_PATHS
    for candidate in candidates:
        value = _lookup(response, candidate)
        if isinstance(value, str) and value:
            logger.info("Token extracted using path: %s", candidate)
            return TokenMatch(strip_bearer(value), candidate)

    found = _search(response)
    if found:
        logger.info("Token found through recursive search at %s", found.path)
        return TokenMatch(strip_bearer(found.token), found.path)

    return None
