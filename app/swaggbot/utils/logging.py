# utils/logging.py

import logging
import re
import sys
from typing import Any, Iterable, Optional

REDACTED = "[REDACTED]"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure logging for the service.

    CRITICAL: Uses stderr for console output to avoid conflicts with MCP JSON-RPC
    protocol which requires exclusive use of stdout.
    """

    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info("Logging configured with level: %s", level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified name."""
    return logging.getLogger(name)


def truncate_for_log(text: str, limit: int = 500) -> str:
    """Shorten long command text before it reaches the log."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"


def redact_credentials(text: str) -> str:
    """Hide Authorization header values in command text."""
    return re.sub(
        r"(Authorization:\s*)(Bearer\s+)?[^'\"\s]+",
        r"\1\2" + REDACTED,
        text,
        flags=re.IGNORECASE,
    )


def redact_secrets(value: Any, secrets: Iterable[str]) -> Any:
    """
    Replace known secret values anywhere in a JSON-like structure.

    Strings equal to a secret are replaced outright. Secrets of eight or
    more characters are also replaced where they appear inside longer
    strings, such as ``Bearer <token>`` or a header line.
    """
    secrets = [secret for secret in secrets if secret]
    if not secrets:
        return value

    def scrub(item: Any) -> Any:
        if isinstance(item, str):
            for secret in secrets:
                if item == secret:
                    return REDACTED
                if len(secret) >= 8:
                    item = item.replace(secret, REDACTED)
            return item
        if isinstance(item, list):
            return [scrub(element) for element in item]
        if isinstance(item, dict):
            return {key: scrub(element) for key, element in item.items()}
        return item

    return scrub(value)
