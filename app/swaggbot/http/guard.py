"""
Edge guard middleware.

Every request that is not on the allow-list passes the session gate and
then the rate limiter before reaching a route or the MCP endpoint:

1. Allow-listed paths (health, login, logout, static assets) pass untouched
2. The ``session`` cookie must hold a valid signed token
3. The client must be within its rate limit window

A failure inside the limiter itself lets the request through.
"""

import math
import re
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from swaggbot.errors import RateLimitedError, UnauthorizedError, error_response
from swaggbot.security.rate_limiter import RateLimiter, RateLimitResult
from swaggbot.security.session_tokens import SESSION_COOKIE, SessionTokenService
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

PUBLIC_PATHS = ("/api/health", "/login", "/api/auth/login", "/api/auth/logout")
STATIC_PREFIXES = ("/static", "/favicon.ico", "/robots.txt")
API_PREFIXES = ("/api/", "/mcp")
LOGIN_PATH = "/login"

_WORKFLOW_EXECUTE = re.compile(r"^/api/workflow/[^/]+/execute")


def is_public_path(path: str) -> bool:
    """Whether a path bypasses both the session gate and the limiter."""
    if path.startswith(STATIC_PREFIXES):
        return True
    return any(path == public or path.startswith(public + "/") for public in PUBLIC_PATHS)


def is_api_path(path: str) -> bool:
    return path.startswith(API_PREFIXES)


def client_address(request: Request, trust_proxy_headers: bool = False) -> str:
    """
    The socket peer, or with trust_proxy_headers the first X-Forwarded-For
    hop, then X-Real-IP. Enable it only behind a proxy that sets them.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def endpoint_name(path: str, method: str) -> Optional[str]:
    """Friendly name for throttled endpoints, used in the 429 message."""
    if path == "/api/workflow" and method == "POST":
        return "workflow creation"
    if _WORKFLOW_EXECUTE.match(path) and method == "POST":
        return "workflow execution"
    if path.startswith("/api/session") and method in ("POST", "PATCH", "DELETE"):
        return "session management"
    if path.startswith("/mcp"):
        return "tool calls"
    return None


def rate_limited_response(result: RateLimitResult, path: str, method: str) -> Response:
    """429 body and headers for a denied request."""
    retry_after = result.retry_after or 1
    window_minutes = math.ceil(result.window_seconds / 60)
    name = endpoint_name(path, method)
    if name:
        message = (
            f"Rate limit exceeded for {name}. You can make {result.limit} requests "
            f"per {window_minutes} minute(s). Please try again in {retry_after} seconds."
        )
    else:
        message = f"Too many requests. Please try again in {retry_after} seconds."

    error = RateLimitedError(message, retry_after=retry_after, limit=result.limit)
    error.details = {
        "endpoint": name or "default",
        "limit": result.limit,
        "windowMinutes": window_minutes,
        "retryAfter": retry_after,
    }
    response = error_response(error)
    response.headers.update(result.headers())
    return response


class EdgeGuardMiddleware(BaseHTTPMiddleware):
    """
    Session gate followed by the rate limiter.

    API-shaped paths (``/api/*``, ``/mcp``) get JSON 401 bodies; page paths
    are redirected to the login page, and a stale cookie is cleared.
    """

    def __init__(
        self,
        app: ASGIApp,
        tokens: SessionTokenService,
        rate_limiter: Optional[RateLimiter] = None,
        trust_proxy_headers: bool = False,
    ):
        super().__init__(app)
        self.tokens = tokens
        self.rate_limiter = rate_limiter
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        method = request.method

        if is_public_path(path):
            return await call_next(request)

        ip = client_address(request, self.trust_proxy_headers)
        request.state.client_ip = ip

        denied = self._authenticate(request, path, method, ip)
        if denied is not None:
            return denied

        if self.rate_limiter is not None:
            try:
                result = await self.rate_limiter.check(ip, path)
            except Exception:
                logger.exception("Rate limiting check failed: ip=%s path=%s", ip, path)
            else:
                if not result.allowed:
                    return rate_limited_response(result, path, method)

        return await call_next(request)

    def _authenticate(self, request: Request, path: str, method: str, ip: str) -> Optional[Response]:
        token = request.cookies.get(SESSION_COOKIE)

        if not token:
            logger.warning("Unauthorized access attempt - no session: %s %s ip=%s", method, path, ip)
            if is_api_path(path):
                return error_response(UnauthorizedError("Authentication required"))
            return RedirectResponse(LOGIN_PATH, status_code=307)

        claims = self.tokens.claims(token)
        if claims is None:
            logger.warning(
                "Unauthorized access attempt - invalid session: %s %s ip=%s", method, path, ip
            )
            if is_api_path(path):
                return error_response(UnauthorizedError("Invalid or expired session"))
            response = RedirectResponse(LOGIN_PATH, status_code=307)
            response.delete_cookie(SESSION_COOKIE, path="/")
            return response

        request.state.user_id = claims.user_id
        return None
