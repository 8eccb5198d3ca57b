"""
Unit tests for workflow plan and execution record models.
"""

import pydantic
import pytest

from swaggbot.workflow import (
    RecordClosedError,
    StepOutcome,
    StepStatus,
    WorkflowExecutionRecord,
    WorkflowPlan,
    WorkflowStatus,
    generate_workflow_name,
)


def plan_data(*steps: dict) -> dict:
    return {"workflowName": "Test", "description": "d", "steps": list(steps)}


def step(number: int, endpoint: str = "/users", **action) -> dict:
    return {"stepNumber": number, "description": f"step {number}", "action": {"endpoint": endpoint, **action}}


class TestPlanValidation:
    def test_camel_case_plan(self):
        plan = WorkflowPlan.model_validate(
            plan_data(
                {
                    "stepNumber": 1,
                    "description": "login",
                    "action": {
                        "endpoint": "/login",
                        "method": "post",
                        "isAuthEndpoint": True,
                        "tokenPath": "data.token",
                    },
                    "extractFields": ["data.token"],
                }
            )
        )
        assert plan.name == "Test"
        action = plan.steps[0].action
        assert action.method == "POST"
        assert action.is_auth_endpoint
        assert action.token_path == "data.token"
        assert plan.steps[0].extract_fields == ["data.token"]

    @pytest.mark.parametrize("numbers", [[2], [1, 3], [1, 1], [2, 1]])
    def test_step_numbers_must_run_from_one(self, numbers: list[int]):
        with pytest.raises(pydantic.ValidationError, match="Step numbers"):
            WorkflowPlan.model_validate(plan_data(*(step(n) for n in numbers)))

    def test_empty_plan_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            WorkflowPlan.model_validate(plan_data())

    def test_forward_reference_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="has not run yet"):
            WorkflowPlan.model_validate(plan_data(step(1, "/users/{{step2.id}}"), step(2)))

    def test_self_reference_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="has not run yet"):
            WorkflowPlan.model_validate(plan_data(step(1), step(2, body={"id": "{{step2.id}}"})))

    def test_backward_reference_allowed(self):
        plan = WorkflowPlan.model_validate(plan_data(step(1), step(2, "/users/{{step1.id}}")))
        assert len(plan.steps) == 2

    def test_unknown_method_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="Unsupported HTTP method"):
            WorkflowPlan.model_validate(plan_data(step(1, method="FETCH")))


class TestExecutionRecord:
    def outcome(self, number: int) -> StepOutcome:
        return StepOutcome(execution_id="e", step_number=number, status=StepStatus.SUCCEEDED)

    def test_lifecycle(self):
        record = WorkflowExecutionRecord(workflow_id="w")
        record.start()
        record.append(self.outcome(1))
        record.complete()

        assert record.status == WorkflowStatus.COMPLETED
        assert record.finished_at is not None
        assert [s.step_number for s in record.steps] == [1]

    def test_closed_after_failure(self):
        record = WorkflowExecutionRecord(workflow_id="w")
        record.start()
        record.fail("Step 1 failed: boom", 1)

        assert record.failed_step == 1
        with pytest.raises(RecordClosedError):
            record.append(self.outcome(2))
        with pytest.raises(RecordClosedError):
            record.complete()

    def test_camel_case_view(self):
        record = WorkflowExecutionRecord(workflow_id="w")
        record.start()
        data = record.to_dict()
        assert data["workflowId"] == "w"
        assert data["status"] == "running"
        assert "startedAt" in data


class TestWorkflowName:
    def test_strips_punctuation(self):
        assert generate_workflow_name("Create a user, then delete it!") == "Create a user then delete it"

    def test_truncated(self):
        assert len(generate_workflow_name("word " * 40)) <= 50

    def test_fallback(self):
        assert generate_workflow_name("!!!") == "Untitled Workflow"
