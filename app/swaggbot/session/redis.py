"""
Redis Stores.

Redis-backed storage so sessions, workflows and execution history
survive restarts.

Key layout (prefix defaults to ``swaggbot:``):
    session:<id>                 session JSON
    sessions                     set of session ids
    workflow:<id>                workflow JSON
    workflows                    set of all workflow ids
    session:<id>:workflows       set of workflow ids of a session
    workflow:<id>:executions     list of step outcome JSON, append-only
"""

import asyncio
from datetime import datetime

import redis.asyncio as redis

from swaggbot.session.base import FINISHED_STATUSES, ApiSession, SessionStore, WorkflowStore
from swaggbot.utils.logging import get_logger
from swaggbot.workflow.models import StepOutcome, Workflow, WorkflowStatus, utcnow

logger = get_logger(__name__)

DEFAULT_KEY_PREFIX = "swaggbot:"


class _RedisConnection:
    """Connection lifecycle shared by the Redis stores."""

    def __init__(self, redis_url: str, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """
        Connect to Redis.

        Raises:
            redis.ConnectionError: If cannot connect to Redis
        """
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
            await self._client.ping()
            logger.info("Connected to Redis for %s", type(self).__name__)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is not connected; call start() first")
        return self._client

    def key(self, *parts: str) -> str:
        return self.key_prefix + ":".join(parts)


class RedisSessionStore(_RedisConnection, SessionStore):
    """
    Redis-backed API session storage.

    Read-modify-write updates are serialized per process with an asyncio
    lock.
    """

    def __init__(
        self,
        redis_url: str,
        retention_days: int = 30,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        _RedisConnection.__init__(self, redis_url, key_prefix)
        SessionStore.__init__(self, retention_days)
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        await self.connect()

    async def stop(self) -> None:
        await self.disconnect()

    async def _save(self, session: ApiSession) -> None:
        await self.client.set(self.key("session", session.id), session.model_dump_json())

    async def _load(self, session_id: str) -> ApiSession | None:
        data = await self.client.get(self.key("session", session_id))
        return ApiSession.model_validate_json(data) if data else None

    async def create(self, session: ApiSession) -> ApiSession:
        await self._save(session)
        await self.client.sadd(self.key("sessions"), session.id)
        return session

    async def get(self, session_id: str) -> ApiSession | None:
        return await self._load(session_id)

    async def list_sessions(self) -> list[ApiSession]:
        sessions = []
        for session_id in await self.client.smembers(self.key("sessions")):
            session = await self._load(session_id)
            if session is not None:
                sessions.append(session)
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def update_credential(self, session_id: str, encrypted_credential: str | None) -> bool:
        async with self._lock:
            session = await self._load(session_id)
            if session is None:
                return False
            session.encrypted_credential = encrypted_credential
            session.updated_at = utcnow()
            await self._save(session)
            return True

    async def touch(self, session_id: str) -> bool:
        async with self._lock:
            session = await self._load(session_id)
            if session is None:
                return False
            session.last_accessed = utcnow()
            await self._save(session)
            return True

    async def delete(self, session_id: str) -> bool:
        removed = await self.client.delete(self.key("session", session_id))
        await self.client.srem(self.key("sessions"), session_id)
        return removed > 0

    async def cleanup_inactive(self) -> list[str]:
        now = utcnow()
        removed = []
        for session in await self.list_sessions():
            if session.is_inactive(self.retention_days, now):
                await self.delete(session.id)
                removed.append(session.id)
        return removed


class RedisWorkflowStore(_RedisConnection, WorkflowStore):
    """Redis-backed workflow and execution history storage."""

    def __init__(self, redis_url: str, key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(redis_url, key_prefix)
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        await self.connect()

    async def stop(self) -> None:
        await self.disconnect()

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        await self.client.set(self.key("workflow", workflow.id), workflow.model_dump_json())
        await self.client.sadd(self.key("workflows"), workflow.id)
        await self.client.sadd(self.key("session", workflow.session_id, "workflows"), workflow.id)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        data = await self.client.get(self.key("workflow", workflow_id))
        return Workflow.model_validate_json(data) if data else None

    async def list_workflows(self, session_id: str) -> list[Workflow]:
        workflows = []
        for workflow_id in await self.client.smembers(self.key("session", session_id, "workflows")):
            workflow = await self.get_workflow(workflow_id)
            if workflow is not None:
                workflows.append(workflow)
        return sorted(workflows, key=lambda w: w.created_at, reverse=True)

    async def set_status(self, workflow_id: str, status: WorkflowStatus) -> bool:
        async with self._lock:
            workflow = await self.get_workflow(workflow_id)
            if workflow is None:
                return False
            workflow.status = status
            workflow.updated_at = utcnow()
            await self.client.set(self.key("workflow", workflow.id), workflow.model_dump_json())
            return True

    async def append_execution(self, workflow_id: str, outcome: StepOutcome) -> None:
        await self.client.rpush(self.key("workflow", workflow_id, "executions"), outcome.model_dump_json())

    async def get_executions(self, workflow_id: str) -> list[StepOutcome]:
        items = await self.client.lrange(self.key("workflow", workflow_id, "executions"), 0, -1)
        return [StepOutcome.model_validate_json(item) for item in items]

    async def _delete_workflow(self, workflow: Workflow) -> None:
        await self.client.delete(
            self.key("workflow", workflow.id),
            self.key("workflow", workflow.id, "executions"),
        )
        await self.client.srem(self.key("workflows"), workflow.id)
        await self.client.srem(self.key("session", workflow.session_id, "workflows"), workflow.id)

    async def delete_for_session(self, session_id: str) -> int:
        index = self.key("session", session_id, "workflows")
        workflow_ids = await self.client.smembers(index)
        for workflow_id in workflow_ids:
            await self.client.delete(
                self.key("workflow", workflow_id),
                self.key("workflow", workflow_id, "executions"),
            )
            await self.client.srem(self.key("workflows"), workflow_id)
        await self.client.delete(index)
        return len(workflow_ids)

    async def delete_finished(self, before: datetime) -> list[str]:
        removed = []
        async with self._lock:
            for workflow_id in await self.client.smembers(self.key("workflows")):
                workflow = await self.get_workflow(workflow_id)
                if workflow is None:
                    await self.client.srem(self.key("workflows"), workflow_id)
                elif workflow.status in FINISHED_STATUSES and workflow.updated_at < before:
                    await self._delete_workflow(workflow)
                    removed.append(workflow_id)
        return removed
