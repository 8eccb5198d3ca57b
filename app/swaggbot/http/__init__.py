"""
HTTP surface of the service.

Provides:
- /api/health: liveness probe
- REST routes for auth, sessions and workflows
- EdgeGuardMiddleware: session gate and rate limiting
"""

from swaggbot.http.health import HEALTH_PATH, health_check
from swaggbot.http.guard import EdgeGuardMiddleware, client_address, is_public_path
from swaggbot.http.routes import register_api_routes

__all__ = [
    "HEALTH_PATH",
    "health_check",
    "EdgeGuardMiddleware",
    "client_address",
    "is_public_path",
    "register_api_routes",
]
