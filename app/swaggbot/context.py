"""
Application wiring.

Builds every long-lived component from the configuration once, so the
MCP tools and the HTTP routes share the same stores, limiter and
executor.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from swaggbot.config import SwaggbotConfig
from swaggbot.executor import CommandBuilder, CurlRunner, ExecutionResult, create_runner, create_validator
from swaggbot.security import RateLimiter, SecretBox, SessionTokenService
from swaggbot.session import SessionStore, WorkflowStore, create_stores
from swaggbot.session.cleanup import CleanupService
from swaggbot.session.service import SessionService
from swaggbot.utils.logging import get_logger, redact_credentials, truncate_for_log
from swaggbot.workflow import CurlCommandRenderer, WorkflowOrchestrator
from swaggbot.workflow.service import WorkflowService

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Components shared by tools and routes."""

    config: SwaggbotConfig
    session_store: SessionStore
    workflow_store: WorkflowStore
    sessions: SessionService
    workflows: WorkflowService
    builder: CommandBuilder
    runner: CurlRunner
    tokens: SessionTokenService
    rate_limiter: Optional[RateLimiter]
    cleanup: CleanupService

    async def start(self) -> None:
        await self.session_store.start()
        await self.workflow_store.start()
        await self.cleanup.start()
        if self.rate_limiter is not None:
            await self.rate_limiter.start()
        logger.info(
            "Stores started (persistence=%s)", self.config.storage.persistence.value
        )

    async def stop(self) -> None:
        await self.cleanup.stop()
        if self.rate_limiter is not None:
            await self.rate_limiter.stop()
        await self.workflow_store.stop()
        await self.session_store.stop()
        logger.info("Stores stopped")

    @asynccontextmanager
    async def running(self) -> AsyncIterator["AppContext"]:
        await self.start()
        try:
            yield self
        finally:
            await self.stop()

    async def execute_command(self, command: str, timeout: Optional[float] = None) -> ExecutionResult:
        """
        Validate, build and run one curl command.

        Raises:
            CommandBlockedError: If the command violates policy
        """
        args = self.builder.build(command)
        result = await self.runner.execute(args, timeout=timeout)
        logger.info(
            "Executed %s -> exit=%d http=%d",
            truncate_for_log(redact_credentials(command)),
            result.exit_code,
            result.http_code,
        )
        return result


def build_context(config: SwaggbotConfig) -> AppContext:
    """Create all components from configuration. Nothing is started yet."""
    session_store, workflow_store = create_stores(
        persistence=config.storage.persistence.value,
        redis_url=config.storage.redis_url,
        retention_days=config.storage.session_retention_days,
    )

    builder = CommandBuilder(create_validator(config.security), config.executor)
    runner = create_runner(config.executor)

    sessions = SessionService(
        session_store,
        workflow_store,
        SecretBox(config.security.encryption_key),
        fetch_timeout=config.executor.default_timeout,
    )
    orchestrator = WorkflowOrchestrator(builder, runner, CurlCommandRenderer())
    workflows = WorkflowService(sessions, workflow_store, orchestrator)

    rate_limiter = None
    if config.rate_limit.enabled:
        rate_limiter = RateLimiter(
            window_seconds=config.rate_limit.window_seconds,
            max_requests=config.rate_limit.max_requests,
        )

    return AppContext(
        config=config,
        session_store=session_store,
        workflow_store=workflow_store,
        sessions=sessions,
        workflows=workflows,
        builder=builder,
        runner=runner,
        tokens=SessionTokenService(config.auth.session_secret, config.auth.session_max_age),
        rate_limiter=rate_limiter,
        cleanup=CleanupService(
            session_store,
            workflow_store,
            workflow_retention_days=config.storage.workflow_retention_days,
            interval=config.storage.cleanup_interval,
        ),
    )
