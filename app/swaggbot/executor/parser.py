"""
Structured command parsing.

This module tokenizes curl command text without a shell and parses the
tokens into a ParsedCommand, so validation can look at URL arguments and
flags instead of matching raw strings.
"""

import shlex
from typing import Iterator, Optional

from swaggbot.executor.types import CommandBlockedError, ParsedCommand


# curl flags that consume the following token as their value
VALUE_FLAGS = {
    "-X", "--request",
    "-H", "--header",
    "-d", "--data", "--data-raw", "--data-binary", "--data-ascii",
    "--data-urlencode", "--json",
    "-F", "--form", "--form-string",
    "-u", "--user",
    "-w", "--write-out",
    "-o", "--output",
    "-T", "--upload-file",
    "-A", "--user-agent",
    "-e", "--referer",
    "-b", "--cookie",
    "-c", "--cookie-jar",
    "-m", "--max-time",
    "--connect-timeout",
    "-x", "--proxy",
    "--url",
    "--url-query",
    "--resolve",
    "--cacert",
    "--cert",
    "--key",
    "-r", "--range",
    "--retry",
}

DATA_FLAGS = {
    "-d", "--data", "--data-raw", "--data-binary", "--data-ascii",
    "--data-urlencode", "--json",
}

HEADER_FLAGS = {"-H", "--header"}
METHOD_FLAGS = {"-X", "--request"}


def split_command(command: str) -> list[str]:
    """
    Tokenize command text with POSIX shell quoting rules.

    No shell is involved; quotes only group characters into tokens.

    Raises:
        CommandBlockedError: If quoting is malformed (e.g. unclosed quote)
    """
    try:
        return shlex.split(command)
    except ValueError as e:
        raise CommandBlockedError(f"Malformed command: {e}", rule="syntax") from e


def strip_program(tokens: list[str]) -> list[str]:
    """Drop the leading curl program name, if present."""
    if tokens and tokens[0] == "curl":
        return tokens[1:]
    return tokens


def _is_flag(token: str) -> bool:
    return token.startswith("-") and token != "-"


def _expand_short_flags(token: str) -> Iterator[tuple[str, Optional[str], bool]]:
    """
    Expand a short option group the way curl reads it.

    -sS -> -s, -S; -XPOST -> -X with "POST"; -so -> -s, then -o taking
    the next token. Yields (flag, attached value, consumes next token).
    """
    letters = token[1:]
    for index, letter in enumerate(letters):
        flag = "-" + letter
        if flag in VALUE_FLAGS:
            rest = letters[index + 1 :]
            if rest:
                yield flag, rest, False
            else:
                yield flag, None, True
            return
        yield flag, None, False


def iter_arguments(tokens: list[str]) -> Iterator[tuple[Optional[str], Optional[str]]]:
    """
    Walk curl arguments in order.

    Yields (flag, value) for every option, with bundled short options
    expanded, and (None, token) for positional arguments. Tokens consumed
    as option values are never reported as flags.
    """
    i = 0
    while i < len(tokens):
        token = tokens[i]

        if not _is_flag(token):
            yield None, token
        elif token.startswith("--"):
            if token in VALUE_FLAGS:
                value = tokens[i + 1] if i + 1 < len(tokens) else ""
                i += 1
                yield token, value
            else:
                yield token, None
        else:
            for flag, value, consumes_next in _expand_short_flags(token):
                if consumes_next:
                    value = tokens[i + 1] if i + 1 < len(tokens) else ""
                    i += 1
                yield flag, value

        i += 1


def parse_command(command: str) -> ParsedCommand:
    """
    Parse a curl command string into a structured ParsedCommand.

    Args:
        command: The raw command string

    Returns:
        ParsedCommand with parsed components

    Raises:
        CommandBlockedError: If the command cannot be tokenized

    Examples:
        >>> parse_command("curl -X DELETE 'https://api.example.com/users/1'")
        ParsedCommand(method='DELETE', urls=['https://api.example.com/users/1'], ...)
    """
    tokens = strip_program(split_command(command))
    parsed = ParsedCommand(raw=command)
    explicit_method: Optional[str] = None

    for flag, value in iter_arguments(tokens):
        if flag is None:
            parsed.urls.append(value or "")
        elif flag in METHOD_FLAGS:
            explicit_method = (value or "").upper()
        elif flag in HEADER_FLAGS:
            parsed.headers.append(value or "")
        elif flag in DATA_FLAGS:
            parsed.data.append(value or "")
        elif flag == "--url":
            parsed.urls.append(value or "")
        else:
            parsed.flags[flag] = value

    if explicit_method:
        parsed.method = explicit_method
    elif parsed.has_flag("-I", "--head"):
        parsed.method = "HEAD"
    elif parsed.data and not parsed.has_flag("-G", "--get"):
        parsed.method = "POST"

    return parsed
