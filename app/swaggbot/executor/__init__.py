"""
Command execution engine with security validation.

This module handles:
- Command tokenizing and parsing
- Policy validation and argument vector building
- Async subprocess execution of curl
"""

from swaggbot.executor.types import (
    ExecutionResult,
    JsonBody,
    TextBody,
    ResponseBody,
    ParsedCommand,
    ValidationResult,
    CommandBlockedError,
    ExecutorError,
)
from swaggbot.executor.parser import (
    parse_command,
    split_command,
)
from swaggbot.executor.validator import (
    CommandValidator,
    create_validator,
)
from swaggbot.executor.builder import (
    CommandBuilder,
    ensure_required_flags,
    rewrite_loopback_args,
)
from swaggbot.executor.runner import (
    CurlRunner,
    create_runner,
    parse_output,
)

__all__ = [
    # Types
    "ExecutionResult",
    "JsonBody",
    "TextBody",
    "ResponseBody",
    "ParsedCommand",
    "ValidationResult",
    # Exceptions
    "ExecutorError",
    "CommandBlockedError",
    # Parser
    "parse_command",
    "split_command",
    # Validator
    "CommandValidator",
    "create_validator",
    # Builder
    "CommandBuilder",
    "ensure_required_flags",
    "rewrite_loopback_args",
    # Runner
    "CurlRunner",
    "create_runner",
    "parse_output",
]
