#!/usr/bin/env python3
"""
Functional tests for the session and workflow services over the
in-memory stores.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from swaggbot.errors import NotFoundError, SecurityRejectionError, ValidationError
from swaggbot.security import SecretBox, is_encrypted
from swaggbot.session import ApiSession, MemorySessionStore, MemoryWorkflowStore, create_stores
from swaggbot.session.cleanup import CleanupService
from swaggbot.session.service import SessionService
from swaggbot.workflow import StepStatus, WorkflowOrchestrator, WorkflowStatus
from swaggbot.workflow.models import Workflow, WorkflowPlan, utcnow
from swaggbot.workflow.service import WorkflowService

SPEC = json.dumps(
    {
        "openapi": "3.0.0",
        "servers": [{"url": "https://api.example.com"}],
        "paths": {"/users": {"get": {"summary": "List users"}}},
    }
)

PLAN = {
    "workflowName": "Login then read",
    "description": "Log in and read the profile",
    "steps": [
        {
            "stepNumber": 1,
            "action": {
                "endpoint": "/login",
                "method": "POST",
                "isAuthEndpoint": True,
                "tokenPath": "token",
            },
        },
        {"stepNumber": 2, "action": {"endpoint": "/me", "method": "GET"}},
    ],
}


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore(retention_days=30)


@pytest.fixture
def workflow_store() -> MemoryWorkflowStore:
    return MemoryWorkflowStore()


@pytest.fixture
def sessions(session_store, workflow_store) -> SessionService:
    return SessionService(session_store, workflow_store, SecretBox("unit-test-master-key"))


@pytest.fixture
def workflows(sessions, workflow_store, builder, fake_runner) -> WorkflowService:
    return WorkflowService(sessions, workflow_store, WorkflowOrchestrator(builder, fake_runner))


class GatedSessionStore(MemorySessionStore):
    """Session lookups wait until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.waiting = 0

    async def get(self, session_id: str):
        self.waiting += 1
        await self.gate.wait()
        return await super().get(session_id)


def stored_workflow(session_id: str, status: WorkflowStatus, age_days: float) -> Workflow:
    stamp = utcnow() - timedelta(days=age_days)
    return Workflow(
        session_id=session_id,
        name=f"{status.value} {age_days}d",
        plan=WorkflowPlan.model_validate(PLAN),
        status=status,
        created_at=stamp,
        updated_at=stamp,
    )


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_from_content(self, sessions: SessionService):
        session = await sessions.create("Users API", spec_content=SPEC)
        assert session.base_url == "https://api.example.com"
        assert (await sessions.get(session.id)).name == "Users API"
        endpoints = await sessions.endpoints(session.id)
        assert endpoints[0]["path"] == "/users"

    @pytest.mark.asyncio
    async def test_explicit_base_url_wins(self, sessions: SessionService):
        session = await sessions.create("x", spec_content=SPEC, base_url="https://other.example.com")
        assert session.base_url == "https://other.example.com"

    @pytest.mark.asyncio
    async def test_private_base_url_rejected(self, sessions: SessionService):
        with pytest.raises(SecurityRejectionError):
            await sessions.create("x", spec_content=SPEC, base_url="http://192.168.1.5")

    @pytest.mark.asyncio
    async def test_missing_inputs(self, sessions: SessionService):
        with pytest.raises(ValidationError):
            await sessions.create("   ", spec_content=SPEC)
        with pytest.raises(ValidationError):
            await sessions.create("x")
        with pytest.raises(ValidationError):
            await sessions.create("x", spec_content='{"paths": {}}')

    @pytest.mark.asyncio
    async def test_credential_encrypted_at_rest(self, sessions: SessionService, session_store):
        session = await sessions.create("x", spec_content=SPEC)
        await sessions.set_credential(session.id, "Bearer secret-token")

        stored = await session_store.get(session.id)
        assert is_encrypted(stored.encrypted_credential)
        assert "secret-token" not in stored.encrypted_credential
        assert sessions.credential(stored) == "Bearer secret-token"
        assert stored.summary()["hasCredential"] is True
        assert "encryptedCredential" not in stored.summary()

        await sessions.set_credential(session.id, None)
        assert sessions.credential(await session_store.get(session.id)) is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, sessions: SessionService):
        with pytest.raises(NotFoundError):
            await sessions.get("missing")
        with pytest.raises(NotFoundError):
            await sessions.delete("missing")
        with pytest.raises(NotFoundError):
            await sessions.set_credential("missing", "x")

    @pytest.mark.asyncio
    async def test_cleanup_inactive(self, session_store: MemorySessionStore):
        old = ApiSession(name="old", base_url="https://a.example.com")
        old.last_accessed = utcnow() - timedelta(days=31)
        fresh = ApiSession(name="fresh", base_url="https://b.example.com")
        await session_store.create(old)
        await session_store.create(fresh)

        assert await session_store.cleanup_inactive() == [old.id]
        assert [s.id for s in await session_store.list_sessions()] == [fresh.id]


class TestWorkflows:
    @pytest.mark.asyncio
    async def test_execute_records_history_and_stores_credential(
        self, sessions, workflows, session_store, fake_runner
    ):
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)
        assert workflow.name == "Login then read"
        assert workflow.status == WorkflowStatus.PENDING

        fake_runner.queue_output('{"token": "tok-abc"}\nHTTP_CODE:200')
        fake_runner.queue_output('{"name": "demo"}\nHTTP_CODE:200')

        record = await workflows.execute(workflow.id)

        assert record.status == WorkflowStatus.COMPLETED
        assert (await workflows.get(workflow.id)).status == WorkflowStatus.COMPLETED
        history = await workflows.history(workflow.id)
        assert [o.status for o in history] == [StepStatus.SUCCEEDED, StepStatus.SUCCEEDED]

        stored = await session_store.get(session.id)
        assert sessions.credential(stored) == "Bearer tok-abc"

    @pytest.mark.asyncio
    async def test_failed_run_marks_workflow_failed(self, sessions, workflows, fake_runner):
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)
        fake_runner.queue_output('{"error": "bad credentials"}\nHTTP_CODE:401')

        record = await workflows.execute(workflow.id)

        assert record.status == WorkflowStatus.FAILED
        assert (await workflows.get(workflow.id)).status == WorkflowStatus.FAILED
        assert len(await workflows.history(workflow.id)) == 1

    @pytest.mark.asyncio
    async def test_invalid_plan(self, sessions, workflows):
        session = await sessions.create("x", spec_content=SPEC)
        with pytest.raises(ValidationError) as exc_info:
            await workflows.create(session.id, {"steps": [{"stepNumber": 2, "action": {"endpoint": "/a"}}]})
        assert exc_info.value.details["fields"]

    @pytest.mark.asyncio
    async def test_name_generated_from_description(self, sessions, workflows):
        session = await sessions.create("x", spec_content=SPEC)
        plan = {"steps": [{"stepNumber": 1, "action": {"endpoint": "/users"}}]}
        workflow = await workflows.create(session.id, plan, "List all users!")
        assert workflow.name == "List all users"

    @pytest.mark.asyncio
    async def test_session_delete_cascades(self, sessions, workflows, workflow_store):
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)

        await sessions.delete(session.id)

        assert await workflow_store.get_workflow(workflow.id) is None
        with pytest.raises(NotFoundError):
            await workflows.history(workflow.id)

    @pytest.mark.asyncio
    async def test_cancel_without_active_run(self, sessions, workflows):
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)
        assert workflows.cancel(workflow.id) is False

    @pytest.mark.asyncio
    async def test_unknown_session(self, workflows):
        with pytest.raises(NotFoundError):
            await workflows.create("missing", PLAN)

    @pytest.mark.asyncio
    async def test_concurrent_execute_rejected(self, workflow_store, builder, fake_runner):
        store = GatedSessionStore()
        sessions = SessionService(store, workflow_store, SecretBox("unit-test-master-key"))
        workflows = WorkflowService(sessions, workflow_store, WorkflowOrchestrator(builder, fake_runner))
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)
        fake_runner.queue_output('{"token": "tok-abc"}\nHTTP_CODE:200')
        fake_runner.queue_output('{"name": "demo"}\nHTTP_CODE:200')

        store.gate.clear()
        store.waiting = 0
        first = asyncio.create_task(workflows.execute(workflow.id))
        while not store.waiting:
            await asyncio.sleep(0)

        with pytest.raises(ValidationError, match="already running"):
            await workflows.execute(workflow.id)

        store.gate.set()
        record = await first
        assert record.status == WorkflowStatus.COMPLETED
        assert len(fake_runner.calls) == 2

    @pytest.mark.asyncio
    async def test_rejected_start_releases_workflow(self, sessions, workflows, session_store):
        session = await sessions.create("x", spec_content=SPEC)
        workflow = await workflows.create(session.id, PLAN)
        session_store._sessions[session.id].base_url = "http://10.0.0.1"

        for _ in range(2):
            with pytest.raises(SecurityRejectionError):
                await workflows.execute(workflow.id)
        assert workflows.cancel(workflow.id) is False


class TestStoreFactory:
    def test_memory(self):
        session_store, workflow_store = create_stores("memory")
        assert isinstance(session_store, MemorySessionStore)
        assert isinstance(workflow_store, MemoryWorkflowStore)

    def test_redis_requires_url(self):
        with pytest.raises(ValueError):
            create_stores("redis")

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_stores("sqlite")


class TestRetentionCleanup:
    @pytest.mark.asyncio
    async def test_inactive_session_takes_workflows_along(self, session_store, workflow_store):
        old = ApiSession(name="old", base_url="https://a.example.com")
        old.last_accessed = utcnow() - timedelta(days=31)
        fresh = ApiSession(name="fresh", base_url="https://b.example.com")
        await session_store.create(old)
        await session_store.create(fresh)
        orphan = await workflow_store.save_workflow(stored_workflow(old.id, WorkflowStatus.PENDING, 0))
        kept = await workflow_store.save_workflow(stored_workflow(fresh.id, WorkflowStatus.PENDING, 0))

        result = await CleanupService(session_store, workflow_store).run_once()

        assert result.sessions == [old.id]
        assert result.workflows == 1
        assert await workflow_store.get_workflow(orphan.id) is None
        assert await workflow_store.list_workflows(old.id) == []
        assert (await workflow_store.get_workflow(kept.id)).id == kept.id

    @pytest.mark.asyncio
    async def test_finished_workflows_expire(self, session_store, workflow_store):
        session = await session_store.create(ApiSession(name="x", base_url="https://a.example.com"))
        expired = [
            stored_workflow(session.id, WorkflowStatus.COMPLETED, 8),
            stored_workflow(session.id, WorkflowStatus.FAILED, 30),
        ]
        retained = [
            stored_workflow(session.id, WorkflowStatus.COMPLETED, 6),
            stored_workflow(session.id, WorkflowStatus.PENDING, 30),
            stored_workflow(session.id, WorkflowStatus.RUNNING, 30),
        ]
        for workflow in expired + retained:
            await workflow_store.save_workflow(workflow)

        result = await CleanupService(session_store, workflow_store, workflow_retention_days=7).run_once()

        assert result.sessions == []
        assert result.workflows == 2
        remaining = {w.id for w in await workflow_store.list_workflows(session.id)}
        assert remaining == {w.id for w in retained}

    @pytest.mark.asyncio
    async def test_periodic_sweep(self, session_store, workflow_store):
        old = ApiSession(name="old", base_url="https://a.example.com")
        old.last_accessed = utcnow() - timedelta(days=31)
        await session_store.create(old)
        await workflow_store.save_workflow(stored_workflow(old.id, WorkflowStatus.COMPLETED, 0))

        cleanup = CleanupService(session_store, workflow_store, interval=0.01)
        await cleanup.start()
        for _ in range(100):
            if not await workflow_store.list_workflows(old.id):
                break
            await asyncio.sleep(0.01)
        await cleanup.stop()

        assert await session_store.get(old.id) is None
        assert await workflow_store.list_workflows(old.id) == []
