"""
Sequential workflow execution.

A run walks the plan in step order. For each step it resolves
placeholders from values captured by earlier steps, asks the command
generator for curl text, builds and executes it, then captures the
step's extract fields. The first failing step ends the run; calls that
already happened are not undone.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from swaggbot.executor.builder import CommandBuilder
from swaggbot.executor.runner import CurlRunner
from swaggbot.executor.types import CommandBlockedError, ExecutionResult
from swaggbot.extraction.expression import MISSING, ExpressionSyntaxError, evaluate
from swaggbot.extraction.token import extract_token, find_token, strip_bearer
from swaggbot.utils.logging import get_logger, redact_credentials, redact_secrets, truncate_for_log
from swaggbot.workflow.models import (
    StepOutcome,
    StepStatus,
    WorkflowExecutionRecord,
    WorkflowPlan,
    WorkflowStep,
)
from swaggbot.workflow.renderer import CommandGenerator, CurlCommandRenderer
from swaggbot.workflow.templates import (
    ID_FALLBACK_PATTERNS,
    CapturedValues,
    UnresolvedPlaceholderError,
    resolve_action,
)

logger = get_logger(__name__)

CANCELLED = "cancelled"
TOKEN_EXPIRED = "Authentication token expired"

CredentialHook = Callable[[str], Awaitable[None]]
OutcomeHook = Callable[[StepOutcome], Awaitable[None]]


def _extract(response: Any, expression: str) -> Any:
    try:
        value = evaluate(expression, response)
    except ExpressionSyntaxError as e:
        logger.warning("Skipping malformed extract field %r: %s", expression, e)
        return MISSING

    if value is MISSING and expression.endswith("_id"):
        for pattern in ID_FALLBACK_PATTERNS:
            value = evaluate(pattern, response)
            if value is not MISSING:
                logger.info("Field %r resolved via fallback pattern %r", expression, pattern)
                break
    return value


def _conceal(outcome: StepOutcome, secrets: set[str]) -> StepOutcome:
    """Mask credentials in what gets recorded; captured values keep the originals."""
    if not secrets:
        return outcome
    return outcome.model_copy(
        update={
            "command": redact_secrets(outcome.command, secrets),
            "response": redact_secrets(outcome.response, secrets),
            "extracted": redact_secrets(outcome.extracted, secrets),
            "error": redact_secrets(outcome.error, secrets),
        }
    )


class WorkflowOrchestrator:
    """
    Runs workflow plans one step at a time.

    The orchestrator holds no per-run state, so one instance can serve
    concurrent runs of different workflows.
    """

    def __init__(
        self,
        builder: CommandBuilder,
        runner: CurlRunner,
        generator: Optional[CommandGenerator] = None,
    ):
        self.builder = builder
        self.runner = runner
        self.generator = generator or CurlCommandRenderer()

    async def run(
        self,
        workflow_id: str,
        plan: WorkflowPlan,
        base_url: str,
        credential: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_credential: Optional[CredentialHook] = None,
        on_outcome: Optional[OutcomeHook] = None,
    ) -> WorkflowExecutionRecord:
        """
        Execute every step of a plan.

        Args:
            workflow_id: Workflow the record belongs to
            plan: Validated plan
            base_url: Base URL of the target API
            credential: Bearer credential from the session, if any
            cancel_event: Checked before each step; when set, the run fails
                with reason "cancelled" without issuing the next call
            on_credential: Called with the credential harvested by an auth step
            on_outcome: Called with each step outcome as soon as it is recorded

        Returns:
            The completed or failed execution record
        """
        record = WorkflowExecutionRecord(workflow_id=workflow_id)
        record.start()
        values = CapturedValues()
        secrets = {strip_bearer(credential)} if credential else set()

        logger.info("Workflow %s run %s started (%d steps)", workflow_id, record.id, len(plan.steps))

        for step in sorted(plan.steps, key=lambda s: s.step_number):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Workflow %s run %s cancelled before step %d",
                    workflow_id,
                    record.id,
                    step.step_number,
                )
                record.fail(CANCELLED, step.step_number)
                return record

            outcome, harvested = await self._run_step(record.id, step, base_url, credential, values)
            if harvested:
                secrets.add(strip_bearer(harvested))
            outcome = _conceal(outcome, secrets)

            record.append(outcome)
            if on_outcome is not None:
                await on_outcome(outcome)

            if not outcome.succeeded:
                logger.error(
                    "Workflow %s step %d failed: %s",
                    workflow_id,
                    step.step_number,
                    outcome.error,
                )
                record.fail(f"Step {step.step_number} failed: {outcome.error}", step.step_number)
                return record

            if harvested:
                credential = harvested
                if on_credential is not None:
                    await on_credential(harvested)

        record.complete()
        logger.info("Workflow %s run %s completed", workflow_id, record.id)
        return record

    async def _run_step(
        self,
        execution_id: str,
        step: WorkflowStep,
        base_url: str,
        credential: Optional[str],
        values: CapturedValues,
    ) -> tuple[StepOutcome, Optional[str]]:
        def failed(
            error: str,
            command: Optional[str] = None,
            result: Optional[ExecutionResult] = None,
        ) -> StepOutcome:
            return StepOutcome(
                execution_id=execution_id,
                step_number=step.step_number,
                description=step.description,
                status=StepStatus.FAILED,
                command=redact_credentials(command) if command else None,
                http_code=result.http_code if result else 0,
                response=result.body if result else None,
                error=error,
            )

        try:
            action = resolve_action(step.action, values, before_step=step.step_number)
        except UnresolvedPlaceholderError as e:
            return failed(str(e)), None

        command = await self.generator.generate(action, base_url, credential)
        logger.info(
            "Step %d command: %s",
            step.step_number,
            truncate_for_log(redact_credentials(command)),
        )

        try:
            args = self.builder.build(command)
        except CommandBlockedError as e:
            return failed(e.reason, command), None

        result = await self.runner.execute(args)
        if not result.success:
            if result.http_code == 401 and not step.action.is_auth_endpoint:
                error = TOKEN_EXPIRED
            else:
                error = result.stderr or f"HTTP {result.http_code}: Request failed"
            return failed(error, command, result), None

        response = result.body
        for expression in step.extract_fields:
            value = _extract(response, expression)
            if value is MISSING:
                logger.warning("Field %r not found in step %d response", expression, step.step_number)
                continue
            values.record(step.step_number, expression, value)

        harvested = None
        if step.action.is_auth_endpoint:
            harvested = self._harvest_credential(response, step.action.token_path)
            if harvested is None:
                logger.warning("Auth step %d returned no recognizable token", step.step_number)

        outcome = StepOutcome(
            execution_id=execution_id,
            step_number=step.step_number,
            description=step.description,
            status=StepStatus.SUCCEEDED,
            command=redact_credentials(command),
            http_code=result.http_code,
            response=response,
            extracted=values.step_values(step.step_number),
        )
        return outcome, harvested

    @staticmethod
    def _harvest_credential(response: Any, token_path: Optional[str]) -> Optional[str]:
        if token_path:
            token = extract_token(response, token_path)
            if token:
                return token
        match = find_token(response)
        return match.bearer if match else None
