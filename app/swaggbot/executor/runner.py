"""
Async curl execution engine.

This module runs curl as a direct child process using asyncio subprocess
management. It includes:
- Argument vector execution (no shell is ever spawned)
- Timeout handling with process kill
- Output size bounding (checked while reading, before decode)
- Status code marker parsing and JSON/text body decoding

CurlRunner.execute never raises: every failure is returned as an
ExecutionResult with success=False.
"""

import asyncio
import json
import re
from typing import Optional

from swaggbot.config.models import ExecutorSettings
from swaggbot.executor.types import ExecutionResult, JsonBody, ResponseBody, TextBody
from swaggbot.utils.logging import get_logger, redact_credentials, truncate_for_log

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024

_HTTP_CODE_PATTERN = re.compile(r"HTTP_CODE:(\d+)\s*$")


class OutputLimitExceeded(Exception):
    """Raised internally when stdout grows past the configured bound."""

    def __init__(self, partial: bytes):
        super().__init__("Output exceeded maximum buffer size")
        self.partial = partial


def parse_output(stdout: str) -> tuple[int, str, Optional[ResponseBody]]:
    """
    Split curl output into status code, clean body and parsed response.

    Returns:
        Tuple of (http_code, clean_body, response). http_code is 0 when the
        marker is missing; response is None when the body is empty.
    """
    match = _HTTP_CODE_PATTERN.search(stdout)
    http_code = int(match.group(1)) if match else 0
    clean = (stdout[: match.start()] if match else stdout).strip()

    if not clean:
        return http_code, clean, None

    try:
        return http_code, clean, JsonBody(json.loads(clean))
    except ValueError:
        return http_code, clean, TextBody(clean)


class CurlRunner:
    """
    Executes curl argument vectors with resource limits.

    Arguments are expected to come from CommandBuilder.build, which has
    already validated the command and appended the required flags.
    """

    def __init__(
        self,
        curl_binary: str = "curl",
        default_timeout: int = 30,
        max_output_size: int = 1024 * 1024,
    ):
        """
        Initialize the runner.

        Args:
            curl_binary: Name or path of the curl executable
            default_timeout: Default timeout in seconds
            max_output_size: Maximum captured stdout in bytes
        """
        self.curl_binary = curl_binary
        self.default_timeout = default_timeout
        self.max_output_size = max_output_size

    async def execute(
        self,
        args: list[str],
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Execute curl with the given arguments.

        Args:
            args: curl arguments, without the program name
            timeout: Optional timeout override in seconds

        Returns:
            ExecutionResult; never raises
        """
        timeout = timeout or self.default_timeout
        logger.debug(
            "Executing curl: %s",
            truncate_for_log(redact_credentials(" ".join(args))),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.curl_binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to start %s: %s", self.curl_binary, e)
            return ExecutionResult.failure(f"Failed to start {self.curl_binary}: {e}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                self._collect(process),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning("curl timed out after %ss", timeout)
            return ExecutionResult.failure(f"Command timed out after {timeout} seconds")
        except OutputLimitExceeded as e:
            await self._kill(process)
            logger.warning("curl output exceeded %d bytes", self.max_output_size)
            return ExecutionResult(
                success=False,
                stdout=e.partial.decode("utf-8", errors="replace"),
                stderr=f"Output exceeded maximum buffer size of {self.max_output_size} bytes",
                exit_code=1,
                truncated=True,
            )
        except Exception as e:
            await self._kill(process)
            logger.exception("curl execution failed")
            return ExecutionResult.failure(f"Execution error: {type(e).__name__}: {e}")

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        exit_code = process.returncode if process.returncode is not None else 1

        http_code, clean, response = parse_output(stdout)

        if exit_code != 0:
            logger.info("curl exited with code %d (http %d)", exit_code, http_code)
            return ExecutionResult(
                success=False,
                stdout=clean,
                stderr=stderr or f"curl exited with code {exit_code}",
                exit_code=exit_code,
                response=response,
                http_code=http_code,
            )

        return ExecutionResult(
            success=200 <= http_code < 300,
            stdout=clean,
            stderr=stderr,
            exit_code=0,
            response=response,
            http_code=http_code,
        )

    async def _collect(self, process: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
        """Read stdout (bounded) and stderr concurrently, then wait for exit."""
        stdout_bytes, stderr_bytes = await asyncio.gather(
            self._read_bounded(process.stdout),
            process.stderr.read(),
        )
        await process.wait()
        return stdout_bytes, stderr_bytes

    async def _read_bounded(self, stream: asyncio.StreamReader) -> bytes:
        buffer = bytearray()
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                return bytes(buffer)
            buffer.extend(chunk)
            if len(buffer) > self.max_output_size:
                raise OutputLimitExceeded(bytes(buffer[: self.max_output_size]))

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass


def create_runner(executor: Optional[ExecutorSettings] = None) -> CurlRunner:
    """
    Factory function to create a CurlRunner.

    Args:
        executor: Executor settings with curl_binary, timeout and output bound

    Returns:
        Configured CurlRunner instance
    """
    executor = executor or ExecutorSettings()
    return CurlRunner(
        curl_binary=executor.curl_binary,
        default_timeout=executor.default_timeout,
        max_output_size=executor.max_output_size,
    )
