"""
Health check endpoint.

Provides /api/health for liveness probes. It sits on the edge guard's
allow-list, so it answers without a session cookie.
"""

from starlette.requests import Request
from starlette.responses import JSONResponse

from swaggbot import __version__

HEALTH_PATH = "/api/health"


async def health_check(request: Request) -> JSONResponse:
    """
    Liveness probe endpoint.

    Returns:
        JSON response with health status
    """
    return JSONResponse(
        {
            "status": "healthy",
            "version": __version__,
            "service": "swaggbot",
        }
    )
