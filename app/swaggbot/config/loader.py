"""
Configuration loader with YAML and environment variable support.

Priority (highest to lowest):
1. Environment variables: SWAGGBOT_SERVER__PORT=9000
2. User config: --config-dir path / ~/.swaggbot/config.yaml
3. Built-in defaults: swaggbot/config/defaults/settings.yaml
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml

from swaggbot.config.models import SwaggbotConfig
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".swaggbot"
PACKAGE_DEFAULTS_DIR = Path(__file__).parent / "defaults"

ENV_PREFIX = "SWAGGBOT_"
ENV_DELIMITER = "__"

# Keys whose values must stay strings even when they look numeric or boolean
_STRING_KEYS = {"session_secret", "app_password", "encryption_key", "redis_url"}


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Values from 'override' take precedence over 'base'.
    Nested dicts are merged recursively.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            content = yaml.safe_load(f)
            return content if content else {}
    except yaml.YAMLError as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return {}


def _get_env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """
    Extract configuration overrides from environment variables.

    SWAGGBOT_SECTION__KEY=value, e.g.
    SWAGGBOT_SERVER__PORT=9000 -> {"server": {"port": 9000}}
    SWAGGBOT_AUTH__SESSION_SECRET=s3cret -> {"auth": {"session_secret": "s3cret"}}
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        key_path = key[len(ENV_PREFIX) :].lower().split(ENV_DELIMITER)
        if len(key_path) < 2 or not all(key_path):
            logger.debug("Ignoring malformed config variable %s", key)
            continue

        current = overrides
        for part in key_path[:-1]:
            current = current.setdefault(part, {})

        final_key = key_path[-1]
        if final_key in _STRING_KEYS:
            current[final_key] = value
        else:
            current[final_key] = _parse_env_value(value)

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate Python type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def load_config(
    config_dir: Optional[str | Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> SwaggbotConfig:
    """
    Load configuration from multiple sources.

    Args:
        config_dir: Optional path to configuration directory.
                   If not provided, uses ~/.swaggbot/
        environ: Environment mapping (defaults to os.environ)

    Returns:
        SwaggbotConfig: Validated configuration object

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    config_data = _load_yaml_file(PACKAGE_DEFAULTS_DIR / "settings.yaml")

    user_config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    user_config = _load_yaml_file(user_config_dir / "config.yaml")
    config_data = _deep_merge(config_data, user_config)

    env_overrides = _get_env_overrides(environ)
    config_data = _deep_merge(config_data, env_overrides)

    return SwaggbotConfig.model_validate(config_data)
