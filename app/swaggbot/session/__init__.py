"""
Storage for API sessions, workflows and execution history.

Supports multiple persistence modes:

- memory: In-memory storage (single process, dev/testing)
- redis: Redis-backed (survives restarts)
"""

from swaggbot.session.base import ApiSession, SessionStore, WorkflowStore
from swaggbot.session.memory import MemorySessionStore, MemoryWorkflowStore
from swaggbot.session.redis import RedisSessionStore, RedisWorkflowStore

__all__ = [
    "ApiSession",
    "SessionStore",
    "WorkflowStore",
    "MemorySessionStore",
    "MemoryWorkflowStore",
    "RedisSessionStore",
    "RedisWorkflowStore",
    "create_stores",
]


def create_stores(
    persistence: str,
    redis_url: str | None = None,
    retention_days: int = 30,
) -> tuple[SessionStore, WorkflowStore]:
    """
    Factory function to create the session and workflow stores.

    Args:
        persistence: Storage type - "memory" or "redis"
        redis_url: Redis URL (required for "redis" persistence)
        retention_days: Inactive session retention

    Returns:
        (SessionStore, WorkflowStore) pair

    Raises:
        ValueError: If invalid persistence type or missing redis_url
    """
    if persistence == "memory":
        return MemorySessionStore(retention_days=retention_days), MemoryWorkflowStore()

    elif persistence == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for redis persistence")
        return (
            RedisSessionStore(redis_url=redis_url, retention_days=retention_days),
            RedisWorkflowStore(redis_url=redis_url),
        )

    else:
        raise ValueError(
            f"Invalid persistence type: {persistence}. "
            f"Must be one of: memory, redis"
        )
