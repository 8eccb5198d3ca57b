"""
Type definitions for command execution.

This module defines the data structures used throughout the executor.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from swaggbot.errors import SecurityRejectionError


@dataclass(frozen=True)
class JsonBody:
    """Response body that parsed as JSON."""

    value: Any


@dataclass(frozen=True)
class TextBody:
    """Response body kept as raw text."""

    text: str


ResponseBody = Union[JsonBody, TextBody]


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of one outbound call.

    Attributes:
        success: True iff the process exited cleanly and the HTTP status is 2xx
        stdout: Captured output with the status marker removed (may be truncated)
        stderr: Standard error output
        exit_code: Process exit code (1 when not available, e.g. timeout)
        response: Parsed body, or None when there is no output
        http_code: HTTP status reported by curl (0 when none was reported)
        truncated: Whether output hit the size bound
    """

    success: bool
    stdout: str
    stderr: str
    exit_code: int
    response: Optional[ResponseBody] = None
    http_code: int = 0
    truncated: bool = False

    @property
    def body(self) -> Any:
        """The response as a plain value (parsed JSON, text, or None)."""
        if isinstance(self.response, JsonBody):
            return self.response.value
        if isinstance(self.response, TextBody):
            return self.response.text
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "response": self.body,
            "httpCode": self.http_code,
        }
        if self.truncated:
            data["truncated"] = True
        return data

    @classmethod
    def failure(cls, stderr: str, exit_code: int = 1, stdout: str = "") -> "ExecutionResult":
        """Create a failed result that never reached a response."""
        return cls(success=False, stdout=stdout, stderr=stderr, exit_code=exit_code)


@dataclass
class ParsedCommand:
    """
    Structured representation of a curl command.

    Attributes:
        method: HTTP method (explicit -X, or GET / POST inferred from data)
        urls: URL arguments in order of appearance
        headers: Header values from -H / --header
        data: Body values from -d / --data* flags
        flags: Remaining flags with their values (None for switches)
        raw: Original raw command string
    """

    method: str = "GET"
    urls: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    data: list[str] = field(default_factory=list)
    flags: dict[str, Optional[str]] = field(default_factory=dict)
    raw: str = ""

    def has_flag(self, *flag_names: str) -> bool:
        """Check if any of the given flags are present."""
        return any(f in self.flags for f in flag_names)

    def header(self, name: str) -> Optional[str]:
        """Get the value of the first header with the given name."""
        prefix = f"{name.lower()}:"
        for header in self.headers:
            if header.lower().startswith(prefix):
                return header[len(prefix) :].strip()
        return None


@dataclass
class ValidationResult:
    """
    Result of security validation.

    Attributes:
        allowed: Whether the command is allowed
        reason: Explanation of why command was blocked (if not allowed)
        rule: The specific rule that blocked the command
    """

    allowed: bool
    reason: Optional[str] = None
    rule: Optional[str] = None

    @classmethod
    def allow(cls) -> "ValidationResult":
        """Create an allowing result."""
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str, rule: Optional[str] = None) -> "ValidationResult":
        """Create a blocking result."""
        return cls(allowed=False, reason=reason, rule=rule)


class ExecutorError(Exception):
    """Base exception for executor errors."""

    pass


class CommandBlockedError(ExecutorError, SecurityRejectionError):
    """Raised when a command is blocked by security validation."""

    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message, rule)
