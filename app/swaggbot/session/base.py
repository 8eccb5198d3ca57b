"""
Store Base Interfaces.

Defines the abstract interfaces for API session and workflow storage
backends. An API session is a registered third-party API (its description
document, base URL and encrypted credential); workflows and their
execution records belong to a session.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field

from swaggbot.workflow.models import StepOutcome, Workflow, WorkflowStatus, utcnow

FINISHED_STATUSES = frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.FAILED})


class ApiSession(BaseModel):
    """
    Data stored for each registered API.

    Attributes:
        id: Unique session identifier
        name: Display name
        spec_url: Where the API description was fetched from, if anywhere
        api_spec: Parsed API description document
        base_url: Base URL every relative endpoint is joined to
        encrypted_credential: Serialized encrypted bearer credential
        created_at: When session was created
        updated_at: When session data last changed
        last_accessed: When session was last used
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    spec_url: Optional[str] = None
    api_spec: Optional[dict[str, Any]] = None
    base_url: str
    encrypted_credential: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed: datetime = Field(default_factory=utcnow)

    def is_inactive(self, retention_days: int, now: Optional[datetime] = None) -> bool:
        """Check if session has not been used within the retention period."""
        now = now or utcnow()
        return now - self.last_accessed > timedelta(days=retention_days)

    def summary(self) -> dict[str, Any]:
        """Public view; never includes the credential."""
        return {
            "id": self.id,
            "name": self.name,
            "specUrl": self.spec_url,
            "baseUrl": self.base_url,
            "hasCredential": self.encrypted_credential is not None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "lastAccessed": self.last_accessed.isoformat(),
        }


class SessionStore(ABC):
    """
    Abstract interface for API session storage backends.

    Implementations:
    - MemorySessionStore: In-memory storage (single process, dev/testing)
    - RedisSessionStore: Redis-backed (survives restarts)
    """

    def __init__(self, retention_days: int = 30):
        """
        Initialize session store.

        Args:
            retention_days: Inactive sessions older than this are removed by cleanup
        """
        self.retention_days = retention_days

    async def start(self) -> None:
        """Acquire resources (connections, background tasks)."""

    async def stop(self) -> None:
        """Release resources."""

    @abstractmethod
    async def create(self, session: ApiSession) -> ApiSession:
        """
        Store a new session.

        Args:
            session: Session to store

        Returns:
            The stored ApiSession
        """
        pass

    @abstractmethod
    async def get(self, session_id: str) -> ApiSession | None:
        """
        Retrieve a session.

        Args:
            session_id: Session identifier

        Returns:
            ApiSession if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_sessions(self) -> list[ApiSession]:
        """All sessions, most recently updated first."""
        pass

    @abstractmethod
    async def update_credential(self, session_id: str, encrypted_credential: Optional[str]) -> bool:
        """
        Replace the stored (already encrypted) credential.

        Returns:
            True if session was updated, False if not found
        """
        pass

    @abstractmethod
    async def touch(self, session_id: str) -> bool:
        """
        Update session last_accessed time.

        Returns:
            True if session was touched, False if not found
        """
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if session was deleted, False if not found
        """
        pass

    @abstractmethod
    async def cleanup_inactive(self) -> list[str]:
        """
        Remove sessions inactive past the retention period.

        Returns:
            IDs of the removed sessions
        """
        pass


class WorkflowStore(ABC):
    """
    Abstract interface for workflow and execution record storage.

    Step outcomes are append-only: they are never modified or removed
    except together with their workflow.
    """

    async def start(self) -> None:
        """Acquire resources (connections, background tasks)."""

    async def stop(self) -> None:
        """Release resources."""

    @abstractmethod
    async def save_workflow(self, workflow: Workflow) -> Workflow:
        pass

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        pass

    @abstractmethod
    async def list_workflows(self, session_id: str) -> list[Workflow]:
        """Workflows of a session, newest first."""
        pass

    @abstractmethod
    async def set_status(self, workflow_id: str, status: WorkflowStatus) -> bool:
        """
        Update a workflow's status.

        Returns:
            True if the workflow exists
        """
        pass

    @abstractmethod
    async def append_execution(self, workflow_id: str, outcome: StepOutcome) -> None:
        """Append one step outcome to a workflow's execution history."""
        pass

    @abstractmethod
    async def get_executions(self, workflow_id: str) -> list[StepOutcome]:
        """Execution history of a workflow, oldest first."""
        pass

    @abstractmethod
    async def delete_for_session(self, session_id: str) -> int:
        """
        Delete all workflows (and their history) of a session.

        Returns:
            Number of workflows removed
        """
        pass

    @abstractmethod
    async def delete_finished(self, before: datetime) -> list[str]:
        """
        Delete completed or failed workflows (and their history) last
        updated before the cutoff. Pending and running workflows are kept.

        Returns:
            IDs of the removed workflows
        """
        pass
