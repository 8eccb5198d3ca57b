"""
Fixed-window per-client rate limiting.

State is process-wide and in-memory: entries are created on a client's
first request in a window, incremented until the window elapses, and
pruned by a background sweep that runs independently of request
handling. Nothing is persisted across restarts.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 100


@dataclass
class RateLimitEntry:
    """Request count for one client within the current window."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """
    Decision for a single request.

    Attributes:
        allowed: Whether the request may proceed
        limit: Configured cap per window
        remaining: Requests left in the current window
        retry_after: Seconds until the window resets (only when denied)
        window_seconds: Configured window length
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None
    window_seconds: int = DEFAULT_WINDOW_SECONDS

    def headers(self) -> dict[str, str]:
        """Rate limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Window": str(math.ceil(self.window_seconds / 60)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """
    Fixed-window counter keyed by client address.

    All read-modify-write operations on the entry map happen under an
    asyncio lock, so concurrent requests from the same client are counted
    exactly once each.
    """

    def __init__(
        self,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the limiter.

        Args:
            window_seconds: Window length, also the sweep interval
            max_requests: Requests allowed per client per window
            clock: Time source in seconds (injectable for tests)
        """
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: asyncio.Task | None = None

    @staticmethod
    def _key(client: str) -> str:
        return f"ip:{client}"

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.window_seconds)
                removed = await self.sweep()
                if removed > 0:
                    logger.debug("Rate limit sweep removed %d expired entries", removed)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Rate limit sweep failed")

    async def sweep(self) -> int:
        """Delete entries whose window has passed. Returns the number removed."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    async def check(self, client: str, path: str = "") -> RateLimitResult:
        """
        Count a request from a client and decide whether it is allowed.

        Args:
            client: Client address
            path: Request path, used only for logging

        Returns:
            RateLimitResult for this request
        """
        key = self._key(client)

        async with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.reset_at <= now:
                self._entries[key] = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
                return RateLimitResult(
                    allowed=True,
                    limit=self.max_requests,
                    remaining=self.max_requests - 1,
                    window_seconds=self.window_seconds,
                )

            entry.count += 1

            if entry.count > self.max_requests:
                retry_after = math.ceil(entry.reset_at - now)
                logger.warning(
                    "Rate limit exceeded: client=%s path=%s count=%d limit=%d retry_after=%ds",
                    client,
                    path,
                    entry.count,
                    self.max_requests,
                    retry_after,
                )
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after=retry_after,
                    window_seconds=self.window_seconds,
                )

            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - entry.count,
                window_seconds=self.window_seconds,
            )

    async def status(self, client: str) -> RateLimitResult:
        """Report a client's current standing without counting a request."""
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(self._key(client))

            if entry is None or entry.reset_at <= now:
                return RateLimitResult(
                    allowed=True,
                    limit=self.max_requests,
                    remaining=self.max_requests,
                    window_seconds=self.window_seconds,
                )

            exceeded = entry.count > self.max_requests
            return RateLimitResult(
                allowed=not exceeded,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - entry.count),
                retry_after=math.ceil(entry.reset_at - now) if exceeded else None,
                window_seconds=self.window_seconds,
            )

    def __len__(self) -> int:
        return len(self._entries)
