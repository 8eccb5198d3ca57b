"""
Defensive perimeter around the execution pipeline.

This module handles:
- SSRF-safe URL validation
- Per-client fixed-window rate limiting
- Signed session tokens for the edge guard
- At-rest encryption of stored credentials
"""

from swaggbot.security.url_guard import (
    DANGEROUS_PROTOCOLS,
    UrlValidationResult,
    is_private_ip,
    validate_url,
    validate_url_protocol,
)
from swaggbot.security.rate_limiter import (
    RateLimiter,
    RateLimitEntry,
    RateLimitResult,
)
from swaggbot.security.session_tokens import (
    SESSION_COOKIE,
    SessionClaims,
    SessionTokenService,
    verify_password,
)
from swaggbot.security.secrets import (
    EncryptedSecret,
    SecretBox,
    deserialize_encrypted,
    is_encrypted,
    serialize_encrypted,
)

__all__ = [
    # URL guard
    "DANGEROUS_PROTOCOLS",
    "UrlValidationResult",
    "is_private_ip",
    "validate_url",
    "validate_url_protocol",
    # Rate limiting
    "RateLimiter",
    "RateLimitEntry",
    "RateLimitResult",
    # Session tokens
    "SESSION_COOKIE",
    "SessionClaims",
    "SessionTokenService",
    "verify_password",
    # Secrets
    "EncryptedSecret",
    "SecretBox",
    "deserialize_encrypted",
    "is_encrypted",
    "serialize_encrypted",
]
