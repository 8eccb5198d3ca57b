"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Add app directory to path
APP_DIR = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(APP_DIR))

from swaggbot.config.models import SecuritySettings  # noqa: E402
from swaggbot.executor import CommandBuilder, CommandValidator, ExecutionResult  # noqa: E402
from swaggbot.executor.runner import parse_output  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


class FakeRunner:
    """
    Stands in for CurlRunner.

    Returns queued results in order and records every argument vector.
    Raw curl stdout (body plus the HTTP_CODE marker) can be queued with
    queue_output.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self._results: list[ExecutionResult] = []

    def queue(self, result: ExecutionResult) -> None:
        self._results.append(result)

    def queue_output(self, stdout: str, exit_code: int = 0, stderr: str = "") -> None:
        http_code, clean, response = parse_output(stdout)
        self._results.append(
            ExecutionResult(
                success=exit_code == 0 and 200 <= http_code < 300,
                stdout=clean,
                stderr=stderr,
                exit_code=exit_code,
                response=response,
                http_code=http_code,
            )
        )

    async def execute(self, args: list[str], timeout: Optional[float] = None) -> ExecutionResult:
        self.calls.append(list(args))
        if not self._results:
            raise AssertionError(f"Unexpected curl call: {args}")
        return self._results.pop(0)


@pytest.fixture
def security_settings() -> SecuritySettings:
    return SecuritySettings()


@pytest.fixture
def validator(security_settings: SecuritySettings) -> CommandValidator:
    return CommandValidator(security_settings)


@pytest.fixture
def builder(validator: CommandValidator) -> CommandBuilder:
    return CommandBuilder(validator)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
