"""
Pydantic models for workflow plans and execution records.

Plans arrive as JSON from the planner in camelCase
(``stepNumber``, ``extractFields``, ``isAuthEndpoint``); both camelCase
and snake_case field names are accepted.
"""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}

# {{step2.id}} or {step2.id}
_QUALIFIED_REFERENCE = re.compile(r"\{\{?\s*step(\d+)\.")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _PlanModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class WorkflowStatus(str, Enum):
    """Lifecycle of a workflow and of each of its runs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowAction(_PlanModel):
    """The HTTP request a step makes, possibly holding placeholders."""

    endpoint: str = Field(min_length=1)
    method: str = "GET"
    purpose: str = ""
    body: Optional[dict[str, Any]] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    is_auth_endpoint: bool = False
    token_path: Optional[str] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        method = v.strip().upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {v}")
        return method


class WorkflowStep(_PlanModel):
    step_number: int = Field(ge=1)
    description: str = ""
    action: WorkflowAction
    extract_fields: list[str] = Field(default_factory=list)
    notes: Optional[str] = None


class WorkflowPlan(_PlanModel):
    """
    An ordered list of steps produced by the planner.

    Step numbers must run 1..n in order, and a placeholder qualified with
    a step number may only refer to an earlier step.
    """

    name: Optional[str] = Field(default=None, alias="workflowName")
    description: str = ""
    steps: list[WorkflowStep] = Field(min_length=1)
    estimated_total_steps: Optional[int] = None

    @model_validator(mode="after")
    def validate_step_order(self) -> "WorkflowPlan":
        numbers = [step.step_number for step in self.steps]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(
                f"Step numbers must be unique, contiguous and ascending from 1, got {numbers}"
            )

        for step in self.steps:
            text = step.action.model_dump_json(include={"endpoint", "parameters", "body"})
            for match in _QUALIFIED_REFERENCE.finditer(text):
                referenced = int(match.group(1))
                if referenced >= step.step_number:
                    raise ValueError(
                        f"Step {step.step_number} references step {referenced}, "
                        "which has not run yet"
                    )
        return self


class Workflow(BaseModel):
    """A stored plan bound to an API session."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    name: str
    description: str = ""
    plan: WorkflowPlan
    status: WorkflowStatus = WorkflowStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "steps": len(self.plan.steps),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class StepOutcome(_PlanModel):
    """What happened when one step ran."""

    execution_id: str
    step_number: int
    description: str = ""
    status: StepStatus
    command: Optional[str] = None
    http_code: int = 0
    response: Any = None
    extracted: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    recorded_at: datetime = Field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCEEDED


class RecordClosedError(RuntimeError):
    """Raised when writing to a record that reached a terminal state."""


class WorkflowExecutionRecord(_PlanModel):
    """
    Append-only log of one workflow run.

    Outcomes are only ever appended; once the run is completed or failed
    the record rejects further writes.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    steps: list[StepOutcome] = Field(default_factory=list)
    error: Optional[str] = None
    failed_step: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def _ensure_open(self) -> None:
        if self.status.is_terminal:
            raise RecordClosedError(f"Execution {self.id} is already {self.status.value}")

    def start(self) -> None:
        self._ensure_open()
        self.status = WorkflowStatus.RUNNING
        self.started_at = utcnow()

    def append(self, outcome: StepOutcome) -> None:
        self._ensure_open()
        self.steps.append(outcome)

    def complete(self) -> None:
        self._ensure_open()
        self.status = WorkflowStatus.COMPLETED
        self.finished_at = utcnow()

    def fail(self, error: str, step_number: Optional[int] = None) -> None:
        self._ensure_open()
        self.status = WorkflowStatus.FAILED
        self.error = error
        self.failed_step = step_number
        self.finished_at = utcnow()


def generate_workflow_name(description: str) -> str:
    """First 50 word characters of a description, or a placeholder name."""
    cleaned = re.sub(r"[^\w\s]", "", description).strip()
    cleaned = re.sub(r"\s+", " ", cleaned)[:50].strip()
    return cleaned or "Untitled Workflow"
