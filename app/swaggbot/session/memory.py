"""
In-Memory Stores.

Simple in-memory storage for single-process deployments, development,
and testing.

Note: Sessions, workflows and history are lost on server restart.
"""

import asyncio
from collections import defaultdict
from datetime import datetime

from swaggbot.session.base import FINISHED_STATUSES, ApiSession, SessionStore, WorkflowStore
from swaggbot.workflow.models import StepOutcome, Workflow, WorkflowStatus, utcnow


class MemorySessionStore(SessionStore):
    """
    In-memory API session storage.

    Uses a simple dictionary to store sessions. Safe under concurrent
    requests through an asyncio lock.
    """

    def __init__(self, retention_days: int = 30):
        super().__init__(retention_days)
        self._sessions: dict[str, ApiSession] = {}
        self._lock = asyncio.Lock()

    async def create(self, session: ApiSession) -> ApiSession:
        async with self._lock:
            self._sessions[session.id] = session
        return session.model_copy(deep=True)

    async def get(self, session_id: str) -> ApiSession | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    async def list_sessions(self) -> list[ApiSession]:
        async with self._lock:
            sessions = [s.model_copy(deep=True) for s in self._sessions.values()]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def update_credential(self, session_id: str, encrypted_credential: str | None) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.encrypted_credential = encrypted_credential
            session.updated_at = utcnow()
            return True

    async def touch(self, session_id: str) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_accessed = utcnow()
            return True

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def cleanup_inactive(self) -> list[str]:
        async with self._lock:
            now = utcnow()
            inactive = [
                sid
                for sid, session in self._sessions.items()
                if session.is_inactive(self.retention_days, now)
            ]
            for sid in inactive:
                del self._sessions[sid]
            return inactive


class MemoryWorkflowStore(WorkflowStore):
    """In-memory workflow and execution history storage."""

    def __init__(self):
        self._workflows: dict[str, Workflow] = {}
        self._executions: dict[str, list[StepOutcome]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        async with self._lock:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        async with self._lock:
            workflow = self._workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    async def list_workflows(self, session_id: str) -> list[Workflow]:
        async with self._lock:
            workflows = [
                w.model_copy(deep=True)
                for w in self._workflows.values()
                if w.session_id == session_id
            ]
        return sorted(workflows, key=lambda w: w.created_at, reverse=True)

    async def set_status(self, workflow_id: str, status: WorkflowStatus) -> bool:
        async with self._lock:
            workflow = self._workflows.get(workflow_id)
            if workflow is None:
                return False
            workflow.status = status
            workflow.updated_at = utcnow()
            return True

    async def append_execution(self, workflow_id: str, outcome: StepOutcome) -> None:
        async with self._lock:
            self._executions[workflow_id].append(outcome.model_copy(deep=True))

    async def get_executions(self, workflow_id: str) -> list[StepOutcome]:
        async with self._lock:
            return [o.model_copy(deep=True) for o in self._executions.get(workflow_id, [])]

    async def delete_for_session(self, session_id: str) -> int:
        async with self._lock:
            doomed = [wid for wid, w in self._workflows.items() if w.session_id == session_id]
            for wid in doomed:
                del self._workflows[wid]
                self._executions.pop(wid, None)
            return len(doomed)

    async def delete_finished(self, before: datetime) -> list[str]:
        async with self._lock:
            doomed = [
                wid
                for wid, w in self._workflows.items()
                if w.status in FINISHED_STATUSES and w.updated_at < before
            ]
            for wid in doomed:
                del self._workflows[wid]
                self._executions.pop(wid, None)
            return doomed
