"""
Pydantic models for service configuration.

Configuration is loaded once at startup and passed to components
explicitly, never read from module globals.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoragePersistence(str, Enum):
    """Session and workflow storage backend options."""

    MEMORY = "memory"  # In-memory, single process (dev/testing)
    REDIS = "redis"  # Redis-backed, survives restarts


class ServerSettings(BaseModel):
    """Server configuration settings."""

    host: str = Field(
        default="127.0.0.1",
        description="Host to bind the server to",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port to listen on",
    )
    transport: Literal["streamable-http", "stdio"] = Field(
        default="streamable-http",
        description="Transport protocol to use",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    trust_proxy_headers: bool = Field(
        default=False,
        description="Take the client address from X-Forwarded-For / X-Real-IP (only behind a trusted proxy)",
    )


class ExecutorSettings(BaseModel):
    """External HTTP client execution settings."""

    curl_binary: str = Field(
        default="curl",
        description="Name or path of the curl executable",
    )
    default_timeout: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Default per-call timeout in seconds",
    )
    max_output_size: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Maximum captured output in bytes",
    )
    container_mode: bool = Field(
        default=False,
        description="Executor runs in a network namespace separate from the host",
    )
    host_gateway: str = Field(
        default="host.docker.internal",
        description="Hostname that reaches the host from inside the container",
    )


class SecuritySettings(BaseModel):
    """Command and URL policy configuration."""

    forbidden_characters: str = Field(
        default=";&|`$",
        description="Characters that reject a command outright",
    )
    dangerous_flags: list[str] = Field(
        default_factory=lambda: ["--upload-file", "-T", "--output", "-o"],
        description="curl flags that read or write host files, standalone or attached",
    )
    revalidate_urls: bool = Field(
        default=True,
        description="Re-check every command URL against the URL guard before execution",
    )
    encryption_key: Optional[str] = Field(
        default=None,
        description="Master key used to derive per-secret encryption keys",
    )


class RateLimitSettings(BaseModel):
    """Fixed-window request throttling."""

    enabled: bool = True
    window_seconds: int = Field(default=60, ge=1)
    max_requests: int = Field(default=100, ge=1)


class AuthSettings(BaseModel):
    """Edge session authentication."""

    session_secret: Optional[str] = Field(
        default=None,
        description="HS256 secret for signing session tokens",
    )
    session_max_age: int = Field(
        default=86400,
        ge=60,
        description="Session token lifetime in seconds",
    )
    app_password: Optional[str] = Field(
        default=None,
        description="Password accepted by the login endpoint",
    )
    cookie_secure: bool = False


class StorageSettings(BaseModel):
    """Where API sessions, workflows and execution records live."""

    persistence: StoragePersistence = Field(
        default=StoragePersistence.MEMORY,
        description="Storage backend",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (required if persistence=redis)",
    )
    session_retention_days: int = Field(
        default=30,
        ge=1,
        description="Inactive API sessions older than this are removed by cleanup",
    )
    workflow_retention_days: int = Field(
        default=7,
        ge=1,
        description="Completed or failed workflows older than this are removed by cleanup",
    )
    cleanup_interval: int = Field(
        default=3600,
        ge=1,
        description="Seconds between retention cleanup runs",
    )


class SwaggbotConfig(BaseModel):
    """
    Main configuration container.

    Loaded from YAML files and environment variables, then passed to
    server components via dependency injection.
    """

    server: ServerSettings = Field(default_factory=ServerSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("storage")
    @classmethod
    def validate_storage_redis(cls, v: StorageSettings) -> StorageSettings:
        """Ensure redis_url is set when using Redis persistence."""
        if v.persistence == StoragePersistence.REDIS and not v.redis_url:
            raise ValueError(
                "redis_url is required when storage.persistence is 'redis'"
            )
        return v

    # Allow extra fields to be ignored (forward compatibility)
    model_config = ConfigDict(extra="ignore")
