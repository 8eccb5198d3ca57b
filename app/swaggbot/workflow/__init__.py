"""
Multi-step workflow planning and execution.

This module handles:
- Plan and execution record models
- Placeholder substitution from captured values
- Sequential orchestration over the executor
"""

from swaggbot.workflow.models import (
    StepOutcome,
    StepStatus,
    Workflow,
    WorkflowAction,
    WorkflowExecutionRecord,
    WorkflowPlan,
    WorkflowStatus,
    WorkflowStep,
    RecordClosedError,
    generate_workflow_name,
)
from swaggbot.workflow.templates import (
    CapturedValues,
    UnresolvedPlaceholderError,
    resolve_action,
)
from swaggbot.workflow.renderer import CommandGenerator, CurlCommandRenderer
from swaggbot.workflow.orchestrator import WorkflowOrchestrator

__all__ = [
    "StepOutcome",
    "StepStatus",
    "Workflow",
    "WorkflowAction",
    "WorkflowExecutionRecord",
    "WorkflowPlan",
    "WorkflowStatus",
    "WorkflowStep",
    "RecordClosedError",
    "generate_workflow_name",
    "CapturedValues",
    "UnresolvedPlaceholderError",
    "resolve_action",
    "CommandGenerator",
    "CurlCommandRenderer",
    "WorkflowOrchestrator",
]
