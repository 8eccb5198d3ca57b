"""
Security validation for curl commands.

This module implements layered validation of command text:
1. Program check (the text must invoke curl)
2. Shell metacharacter blocking
3. Dangerous flag blocking (file read/write on the host)
4. Per-call URL re-validation against the URL guard

The validator tokenizes commands the same way the executor does. A
dangerous flag is matched as a standalone argument or wherever curl
would read it as an option, including attached values and bundled short
options. Flag text embedded inside another argument or a URL never
matches.
"""

from typing import Optional

from swaggbot.config.models import SecuritySettings
from swaggbot.executor.parser import iter_arguments, parse_command, split_command, strip_program
from swaggbot.executor.types import CommandBlockedError, ValidationResult
from swaggbot.security.url_guard import validate_url
from swaggbot.utils.logging import get_logger, redact_credentials, truncate_for_log

logger = get_logger(__name__)


class CommandValidator:
    """
    Validates commands against security policies.

    This class is initialized with security configuration and provides
    methods to validate commands before execution.
    """

    def __init__(self, security: Optional[SecuritySettings] = None):
        """
        Initialize validator with security configuration.

        Args:
            security: Security settings providing the forbidden character
                set, the dangerous flag list and the URL re-validation switch
        """
        security = security or SecuritySettings()
        self.forbidden_characters = set(security.forbidden_characters)
        self.dangerous_flags = list(security.dangerous_flags)
        self.revalidate_urls = security.revalidate_urls

    def validate(self, command: str) -> ValidationResult:
        """
        Validate a command against security policies.

        Args:
            command: The raw command string to validate

        Returns:
            ValidationResult indicating if command is allowed
        """
        result = self._validate(command)
        if not result.allowed:
            logger.warning(
                "Command blocked (%s): %s | %s",
                result.rule,
                result.reason,
                truncate_for_log(redact_credentials(command)),
            )
        return result

    def _validate(self, command: str) -> ValidationResult:
        stripped = command.strip()

        # Layer 1: must invoke curl
        if stripped != "curl" and not (stripped.startswith("curl") and stripped[4:5].isspace()):
            return ValidationResult.block('Command must start with "curl"', rule="program")

        # Layer 2: metacharacters
        if any(char in self.forbidden_characters for char in stripped):
            return ValidationResult.block(
                "Command contains shell metacharacters which are not allowed",
                rule="forbidden_characters",
            )

        try:
            tokens = strip_program(split_command(stripped))
        except CommandBlockedError as e:
            return ValidationResult.block(e.reason, rule=e.rule)

        # Layer 3: dangerous flags, standalone or attached (-o/tmp/x, -sT)
        flag = self._find_dangerous_flag(tokens)
        if flag is not None:
            return ValidationResult.block(
                f"Potentially dangerous flag detected: {flag}",
                rule="dangerous_flags",
            )

        # Layer 4: URL guard on every target
        if self.revalidate_urls:
            return self._validate_urls(stripped)

        return ValidationResult.allow()

    def _find_dangerous_flag(self, tokens: list[str]) -> Optional[str]:
        for flag in self.dangerous_flags:
            if flag in tokens:
                return flag
        for flag, _ in iter_arguments(tokens):
            if flag in self.dangerous_flags:
                return flag
        return None

    def _validate_urls(self, command: str) -> ValidationResult:
        parsed = parse_command(command)

        if not parsed.urls:
            return ValidationResult.block("Command does not contain a target URL", rule="url")

        for url in parsed.urls:
            check = validate_url(url)
            if not check.valid:
                return ValidationResult.block(check.error or "Invalid URL", rule="url")

        return ValidationResult.allow()

    def ensure_allowed(self, command: str) -> None:
        """
        Validate a command, raising on rejection.

        Raises:
            CommandBlockedError: If the command is blocked
        """
        result = self.validate(command)
        if not result.allowed:
            raise CommandBlockedError(result.reason or "Command blocked", rule=result.rule)


def create_validator(security: Optional[SecuritySettings] = None) -> CommandValidator:
    """
    Factory function to create a CommandValidator.

    Args:
        security: Security settings (defaults apply when omitted)

    Returns:
        Configured CommandValidator instance
    """
    return CommandValidator(security)
