"""
Configuration system for the Swaggbot service.

Exports:
    SwaggbotConfig: Main configuration container
    load_config: Load configuration from YAML/env
"""

from swaggbot.config.models import (
    AuthSettings,
    ExecutorSettings,
    RateLimitSettings,
    SecuritySettings,
    ServerSettings,
    StoragePersistence,
    StorageSettings,
    SwaggbotConfig,
)
from swaggbot.config.loader import load_config

__all__ = [
    "SwaggbotConfig",
    "ServerSettings",
    "ExecutorSettings",
    "SecuritySettings",
    "RateLimitSettings",
    "AuthSettings",
    "StorageSettings",
    "StoragePersistence",
    "load_config",
]
