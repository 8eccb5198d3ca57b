"""
Retention cleanup.

Periodically removes API sessions inactive past their retention period,
together with their workflows and history, and finished workflows older
than the workflow retention period.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from swaggbot.session.base import SessionStore, WorkflowStore
from swaggbot.utils.logging import get_logger
from swaggbot.workflow.models import utcnow

logger = get_logger(__name__)


@dataclass
class CleanupResult:
    sessions: list[str] = field(default_factory=list)
    workflows: int = 0


class CleanupService:
    """Retention sweeps over the session and workflow stores."""

    def __init__(
        self,
        sessions: SessionStore,
        workflows: WorkflowStore,
        workflow_retention_days: int = 7,
        interval: float = 3600,
    ):
        """
        Args:
            sessions: Session store; its retention_days governs session expiry
            workflows: Workflow store
            workflow_retention_days: Completed or failed workflows older than
                this are removed
            interval: Seconds between sweeps
        """
        self.sessions = sessions
        self.workflows = workflows
        self.workflow_retention_days = workflow_retention_days
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the periodic sweep."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Retention cleanup failed")

    async def run_once(self, now: Optional[datetime] = None) -> CleanupResult:
        """
        Run one sweep.

        Inactive sessions go first and take their workflows with them, so
        no workflow outlives its session.
        """
        result = CleanupResult()

        result.sessions = await self.sessions.cleanup_inactive()
        for session_id in result.sessions:
            result.workflows += await self.workflows.delete_for_session(session_id)

        cutoff = (now or utcnow()) - timedelta(days=self.workflow_retention_days)
        result.workflows += len(await self.workflows.delete_finished(cutoff))

        if result.sessions or result.workflows:
            logger.info(
                "Retention cleanup: removed %d sessions and %d workflows",
                len(result.sessions),
                result.workflows,
            )
        return result
