"""
Argument vector construction.

Turns validated curl command text into the argument list handed to the
executor: the program name is stripped, loopback targets are rewritten
when running inside a container, and the flags the executor relies on
are appended.
"""

import re
from typing import Optional

from swaggbot.config.models import ExecutorSettings
from swaggbot.executor.parser import iter_arguments, split_command, strip_program
from swaggbot.executor.types import CommandBlockedError
from swaggbot.executor.validator import CommandValidator

HTTP_CODE_MARKER = "HTTP_CODE:"
WRITE_OUT_FORMAT = "\n" + HTTP_CODE_MARKER + "%{http_code}"

SILENT_FLAGS = {"-s", "--silent"}
WRITE_OUT_FLAGS = {"-w", "--write-out"}

_LOOPBACK_URL = re.compile(
    r"(https?)://(?:localhost|127\.0\.0\.1)(?=[:/?#\s]|$)",
    re.IGNORECASE,
)


def ensure_required_flags(args: list[str]) -> list[str]:
    """
    Append silent mode and the status code write-out when absent.

    Only option positions are inspected, so argument values such as
    ``-d "-wat"`` are not mistaken for flags. A write-out without the
    status marker is overridden, since curl keeps the last one.
    Idempotent: applying it to its own output changes nothing.
    """
    result = list(args)
    options = [(flag, value) for flag, value in iter_arguments(result) if flag is not None]

    if not any(flag in SILENT_FLAGS for flag, _ in options):
        result.append("-s")

    write_outs = [value or "" for flag, value in options if flag in WRITE_OUT_FLAGS]
    if not write_outs or HTTP_CODE_MARKER not in write_outs[-1]:
        result.extend(["-w", WRITE_OUT_FORMAT])

    return result


def rewrite_loopback_args(args: list[str], gateway: str) -> list[str]:
    """Point http(s)://localhost and http(s)://127.0.0.1 at the host gateway."""
    return [_LOOPBACK_URL.sub(lambda m: f"{m.group(1)}://{gateway}", arg) for arg in args]


class CommandBuilder:
    """
    Builds executor argument vectors from command text.

    Validation always runs first; nothing is tokenized for execution
    until the command has passed every policy layer.
    """

    def __init__(
        self,
        validator: CommandValidator,
        executor: Optional[ExecutorSettings] = None,
    ):
        executor = executor or ExecutorSettings()
        self.validator = validator
        self.container_mode = executor.container_mode
        self.host_gateway = executor.host_gateway

    def build(self, command: str) -> list[str]:
        """
        Validate and convert command text into curl arguments.

        Args:
            command: Generated curl command text

        Returns:
            Argument list without the program name

        Raises:
            CommandBlockedError: If the command violates policy
        """
        result = self.validator.validate(command)
        if not result.allowed:
            raise CommandBlockedError(result.reason or "Command blocked", rule=result.rule)

        args = strip_program(split_command(command.strip()))

        if self.container_mode:
            args = rewrite_loopback_args(args, self.host_gateway)

        return ensure_required_flags(args)
