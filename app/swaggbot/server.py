"""
FastMCP Server Setup.

This module creates and configures the MCP server instance and the
ASGI application that serves it together with the REST routes.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.routing import Mount

from swaggbot import __version__
from swaggbot.config import SwaggbotConfig
from swaggbot.context import AppContext, build_context
from swaggbot.http import EdgeGuardMiddleware, register_api_routes
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServerBundle:
    """Bundle containing server and related components."""

    server: FastMCP
    context: AppContext


def create_server(config: SwaggbotConfig, context: Optional[AppContext] = None) -> ServerBundle:
    """
    Create and configure the MCP server.

    Components are built but not started; run the server inside
    ``context.running()`` or through create_http_app().

    Args:
        config: Server configuration
        context: Prebuilt components (tests inject fakes here)

    Returns:
        ServerBundle containing the FastMCP instance and its components
    """
    ctx = context or build_context(config)

    mcp = FastMCP(name="swaggbot")

    _register_builtin_tools(mcp)
    _register_session_tools(mcp, ctx)
    _register_execution_tools(mcp, ctx)
    _register_workflow_tools(mcp, ctx)

    register_api_routes(mcp, ctx)

    return ServerBundle(server=mcp, context=ctx)


def create_http_app(bundle: ServerBundle) -> Starlette:
    """
    Build the ASGI application for the streamable-http transport.

    The edge guard wraps both the REST routes and the ``/mcp`` endpoint.
    Stores and the rate limiter sweep run for the lifetime of the app.
    """
    ctx = bundle.context
    mcp_app = bundle.server.http_app()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info("Swaggbot v%s starting", __version__)
        async with ctx.running():
            async with mcp_app.lifespan(app):
                yield
        logger.info("Swaggbot shut down")

    return Starlette(
        routes=[Mount("/", app=mcp_app)],
        middleware=[
            Middleware(
                EdgeGuardMiddleware,
                tokens=ctx.tokens,
                rate_limiter=ctx.rate_limiter,
                trust_proxy_headers=ctx.config.server.trust_proxy_headers,
            ),
        ],
        lifespan=lifespan,
    )


async def run_stdio(bundle: ServerBundle) -> None:
    """Serve MCP over stdio; the edge guard does not apply to a local pipe."""
    async with bundle.context.running():
        await bundle.server.run_async(transport="stdio")


def _register_builtin_tools(mcp: FastMCP) -> None:
    """
    Register built-in MCP tools.

    These are always-available tools that don't depend on stored state.
    """

    @mcp.tool(
        name="swaggbot_ping",
        annotations={
            "title": "Ping",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def swaggbot_ping() -> str:
        """
        Simple ping tool to verify server is responding.

        Returns:
            str: Pong response with server version
        """
        return f"pong from swaggbot v{__version__}"


def _register_session_tools(mcp: FastMCP, ctx: AppContext) -> None:
    """Register tools that manage API sessions."""

    @mcp.tool(
        name="swaggbot_create_session",
        annotations={
            "title": "Register API",
            "readOnlyHint": False,
            "destructiveHint": False,
        },
    )
    async def swaggbot_create_session(
        name: str,
        spec_url: Optional[str] = None,
        spec_content: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Register a third-party API from its OpenAPI or Swagger description.

        Args:
            name: Display name for the session
            spec_url: Public URL of the description document
            spec_content: The description document itself (JSON or YAML)
            base_url: API base URL; read from the document when omitted
        """
        session = await ctx.sessions.create(name, spec_url, spec_content, base_url)
        return session.summary()

    @mcp.tool(
        name="swaggbot_list_sessions",
        annotations={
            "title": "List APIs",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def swaggbot_list_sessions() -> list[dict[str, Any]]:
        """List registered API sessions."""
        return [session.summary() for session in await ctx.sessions.list_sessions()]

    @mcp.tool(
        name="swaggbot_delete_session",
        annotations={
            "title": "Delete API",
            "readOnlyHint": False,
            "destructiveHint": True,
        },
    )
    async def swaggbot_delete_session(session_id: str) -> str:
        """Delete an API session together with its workflows and history."""
        await ctx.sessions.delete(session_id)
        return f"Session {session_id} deleted"

    @mcp.tool(
        name="swaggbot_set_auth_token",
        annotations={
            "title": "Set API credential",
            "readOnlyHint": False,
            "destructiveHint": False,
        },
    )
    async def swaggbot_set_auth_token(session_id: str, token: Optional[str] = None) -> str:
        """
        Store the bearer credential used for a session's API calls.

        The token is encrypted at rest. Pass no token to clear it.
        """
        await ctx.sessions.set_credential(session_id, token)
        return f"Credential {'stored' if token else 'cleared'} for session {session_id}"

    @mcp.tool(
        name="swaggbot_list_endpoints",
        annotations={
            "title": "List API endpoints",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def swaggbot_list_endpoints(session_id: str) -> list[dict[str, Any]]:
        """List the operations described by a session's API document."""
        return await ctx.sessions.endpoints(session_id)


def _register_execution_tools(mcp: FastMCP, ctx: AppContext) -> None:
    """Register the single-command execution tool."""

    @mcp.tool(
        name="swaggbot_execute_command",
        annotations={
            "title": "Execute curl command",
            "readOnlyHint": False,
            "destructiveHint": True,
            "openWorldHint": True,
        },
    )
    async def swaggbot_execute_command(command: str, timeout: Optional[int] = None) -> dict[str, Any]:
        """
        Execute one curl command against a registered API.

        The command is checked against the command policy and the URL
        guard before anything runs. Shell metacharacters, file upload and
        output flags, and private or loopback targets are rejected.

        Args:
            command: Complete curl command text
            timeout: Timeout in seconds (defaults to the configured value)

        Returns:
            success, stdout, stderr, exitCode, httpCode and the parsed response
        """
        result = await ctx.execute_command(command, timeout=timeout)
        return result.to_dict()


def _register_workflow_tools(mcp: FastMCP, ctx: AppContext) -> None:
    """Register tools that create and run multi-step workflows."""

    @mcp.tool(
        name="swaggbot_create_workflow",
        annotations={
            "title": "Create workflow",
            "readOnlyHint": False,
            "destructiveHint": False,
        },
    )
    async def swaggbot_create_workflow(
        session_id: str,
        plan: dict[str, Any],
        description: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Store a workflow plan for a session.

        The plan lists steps numbered from 1. Each step has an action
        (endpoint, method, body, parameters) and may capture values with
        extractFields, e.g. ``["data.id"]`` or ``["[name=John].id"]``.
        Later steps reference a captured value by its last field name,
        ``{{id}}``, or qualified with its step, ``{{step1.id}}``.
        """
        workflow = await ctx.workflows.create(session_id, plan, description)
        return workflow.summary()

    @mcp.tool(
        name="swaggbot_list_workflows",
        annotations={
            "title": "List workflows",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def swaggbot_list_workflows(session_id: str) -> list[dict[str, Any]]:
        """List the workflows stored for a session."""
        return [workflow.summary() for workflow in await ctx.workflows.list_for_session(session_id)]

    @mcp.tool(
        name="swaggbot_execute_workflow",
        annotations={
            "title": "Execute workflow",
            "readOnlyHint": False,
            "destructiveHint": True,
            "openWorldHint": True,
        },
    )
    async def swaggbot_execute_workflow(workflow_id: str) -> dict[str, Any]:
        """
        Run every step of a stored workflow in order.

        Execution stops at the first failing step. Returns the execution
        record with one outcome per step that ran.
        """
        record = await ctx.workflows.execute(workflow_id)
        return record.to_dict()

    @mcp.tool(
        name="swaggbot_workflow_history",
        annotations={
            "title": "Workflow history",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def swaggbot_workflow_history(workflow_id: str) -> list[dict[str, Any]]:
        """List recorded step outcomes of a workflow, oldest first."""
        return [outcome.to_dict() for outcome in await ctx.workflows.history(workflow_id)]
