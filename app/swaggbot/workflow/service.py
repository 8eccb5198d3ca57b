"""
Workflow lifecycle: create from a plan, execute, and read history.
"""

import asyncio
from typing import Any, Optional, Union

import pydantic

from swaggbot.errors import NotFoundError, SecurityRejectionError, ValidationError
from swaggbot.security.url_guard import validate_url
from swaggbot.session.base import WorkflowStore
from swaggbot.session.service import SessionService
from swaggbot.utils.logging import get_logger
from swaggbot.workflow.models import (
    StepOutcome,
    Workflow,
    WorkflowExecutionRecord,
    WorkflowPlan,
    WorkflowStatus,
    generate_workflow_name,
)
from swaggbot.workflow.orchestrator import WorkflowOrchestrator

logger = get_logger(__name__)


def _validation_fields(error: pydantic.ValidationError) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "plan"
        fields.setdefault(location, []).append(item["msg"])
    return fields


class WorkflowService:
    """
    Wires the orchestrator to the stores.

    Tracks runs in progress so a workflow runs at most once at a time
    and a run can be cancelled between steps.
    """

    def __init__(
        self,
        sessions: SessionService,
        workflows: WorkflowStore,
        orchestrator: WorkflowOrchestrator,
    ):
        self.sessions = sessions
        self.workflows = workflows
        self.orchestrator = orchestrator
        self._active: dict[str, asyncio.Event] = {}

    async def create(
        self,
        session_id: str,
        plan: Union[WorkflowPlan, dict[str, Any]],
        description: Optional[str] = None,
    ) -> Workflow:
        """
        Store a plan produced by the planner.

        Raises:
            NotFoundError: If the session does not exist
            ValidationError: If the plan is malformed
        """
        await self.sessions.get(session_id)

        if not isinstance(plan, WorkflowPlan):
            try:
                plan = WorkflowPlan.model_validate(plan)
            except pydantic.ValidationError as e:
                raise ValidationError("Invalid workflow plan", fields=_validation_fields(e)) from e

        description = description or plan.description
        workflow = Workflow(
            session_id=session_id,
            name=plan.name or generate_workflow_name(description),
            description=description,
            plan=plan,
        )
        await self.workflows.save_workflow(workflow)
        logger.info("Workflow %s created with %d steps", workflow.id, len(plan.steps))
        return workflow

    async def get(self, workflow_id: str) -> Workflow:
        workflow = await self.workflows.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def list_for_session(self, session_id: str) -> list[Workflow]:
        await self.sessions.get(session_id)
        return await self.workflows.list_workflows(session_id)

    async def execute(
        self,
        workflow_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowExecutionRecord:
        """
        Run a stored workflow against its session's API.

        Step outcomes are appended to the history as they complete. A
        credential harvested by an auth step is stored, encrypted, on the
        session.

        Raises:
            NotFoundError: If the workflow or its session does not exist
            ValidationError: If the workflow is already running
            SecurityRejectionError: If the session base URL is no longer allowed
            CorruptedSecretError: If the stored credential cannot be decrypted
        """
        workflow = await self.get(workflow_id)
        if workflow_id in self._active:
            raise ValidationError(f"Workflow {workflow_id} is already running")

        # Claimed before the next await so a concurrent execute sees it.
        event = cancel_event or asyncio.Event()
        self._active[workflow_id] = event
        try:
            session = await self.sessions.get(workflow.session_id)
            check = validate_url(session.base_url)
            if not check.valid:
                raise SecurityRejectionError(check.error or "Invalid URL", rule="url")
            credential = self.sessions.credential(session)

            await self.workflows.set_status(workflow_id, WorkflowStatus.RUNNING)

            async def store_outcome(outcome: StepOutcome) -> None:
                await self.workflows.append_execution(workflow_id, outcome)

            async def store_credential(token: str) -> None:
                await self.sessions.set_credential(session.id, token)
                logger.info("Stored credential harvested by workflow %s", workflow_id)

            try:
                record = await self.orchestrator.run(
                    workflow_id,
                    workflow.plan,
                    session.base_url,
                    credential=credential,
                    cancel_event=event,
                    on_credential=store_credential,
                    on_outcome=store_outcome,
                )
            except BaseException:
                await self.workflows.set_status(workflow_id, WorkflowStatus.FAILED)
                raise
        finally:
            self._active.pop(workflow_id, None)

        await self.workflows.set_status(workflow_id, record.status)
        return record

    def cancel(self, workflow_id: str) -> bool:
        """Request cancellation of a running workflow before its next step."""
        event = self._active.get(workflow_id)
        if event is None:
            return False
        event.set()
        return True

    async def history(self, workflow_id: str) -> list[StepOutcome]:
        await self.get(workflow_id)
        return await self.workflows.get_executions(workflow_id)
