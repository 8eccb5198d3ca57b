"""
REST routes for sessions, workflows and edge authentication.

Every handler returns ``{"success": true, "data": ...}`` on success and
the shared JSON error body on failure.
"""

import functools
import json
from typing import Any, Awaitable, Callable

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from swaggbot.context import AppContext
from swaggbot.errors import UnauthorizedError, ValidationError, error_response, success_response
from swaggbot.http.health import HEALTH_PATH, health_check
from swaggbot.security.session_tokens import SESSION_COOKIE, verify_password
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


def handle_errors(handler: Handler) -> Handler:
    """Render any exception raised by a handler as a JSON error response."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            return await handler(request)
        except Exception as e:
            return error_response(e)

    return wrapper


async def read_json(request: Request) -> dict[str, Any]:
    """
    Parse a JSON object request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def register_api_routes(mcp: FastMCP, ctx: AppContext) -> None:
    """Register health, auth, session and workflow routes on the server."""

    mcp.custom_route(HEALTH_PATH, methods=["GET"])(health_check)

    # Auth

    @mcp.custom_route("/api/auth/login", methods=["POST"])
    @handle_errors
    async def login(request: Request) -> Response:
        body = await read_json(request)
        password = body.get("password")
        if not password or not isinstance(password, str):
            raise ValidationError("Password is required", fields={"password": ["required"]})

        if not verify_password(password, ctx.config.auth.app_password):
            logger.warning("Failed login attempt")
            raise UnauthorizedError("Invalid password")

        response = success_response({"authenticated": True})
        response.set_cookie(
            SESSION_COOKIE,
            ctx.tokens.create(),
            max_age=ctx.config.auth.session_max_age,
            path="/",
            secure=ctx.config.auth.cookie_secure,
            httponly=True,
            samesite="strict",
        )
        return response

    @mcp.custom_route("/api/auth/logout", methods=["POST"])
    async def logout(request: Request) -> Response:
        response = success_response({"authenticated": False})
        response.delete_cookie(SESSION_COOKIE, path="/")
        return response

    # API sessions

    @mcp.custom_route("/api/session", methods=["GET"])
    @handle_errors
    async def list_sessions(request: Request) -> JSONResponse:
        sessions = await ctx.sessions.list_sessions()
        return success_response([session.summary() for session in sessions])

    @mcp.custom_route("/api/session", methods=["POST"])
    @handle_errors
    async def create_session(request: Request) -> JSONResponse:
        body = await read_json(request)
        session = await ctx.sessions.create(
            name=body.get("name", ""),
            spec_url=body.get("specUrl"),
            spec_content=body.get("specContent"),
            base_url=body.get("baseUrl"),
        )
        return success_response(session.summary(), status_code=201)

    @mcp.custom_route("/api/session/{session_id}", methods=["GET"])
    @handle_errors
    async def get_session(request: Request) -> JSONResponse:
        session_id = request.path_params["session_id"]
        session = await ctx.sessions.get(session_id)
        data = session.summary()
        data["endpoints"] = await ctx.sessions.endpoints(session_id)
        return success_response(data)

    @mcp.custom_route("/api/session/{session_id}", methods=["DELETE"])
    @handle_errors
    async def delete_session(request: Request) -> JSONResponse:
        session_id = request.path_params["session_id"]
        await ctx.sessions.delete(session_id)
        return success_response({"id": session_id, "deleted": True})

    # Workflows

    @mcp.custom_route("/api/workflow", methods=["GET"])
    @handle_errors
    async def list_workflows(request: Request) -> JSONResponse:
        session_id = request.query_params.get("sessionId")
        if not session_id:
            raise ValidationError("sessionId is required", fields={"sessionId": ["required"]})
        workflows = await ctx.workflows.list_for_session(session_id)
        return success_response([workflow.summary() for workflow in workflows])

    @mcp.custom_route("/api/workflow", methods=["POST"])
    @handle_errors
    async def create_workflow(request: Request) -> JSONResponse:
        body = await read_json(request)
        session_id = body.get("sessionId")
        plan = body.get("plan")
        if not session_id:
            raise ValidationError("sessionId is required", fields={"sessionId": ["required"]})
        if not isinstance(plan, dict):
            raise ValidationError("plan must be a JSON object", fields={"plan": ["required"]})

        workflow = await ctx.workflows.create(session_id, plan, body.get("description"))
        data = workflow.summary()
        data["plan"] = workflow.plan.to_dict()
        return success_response(data, status_code=201)

    @mcp.custom_route("/api/workflow/{workflow_id}", methods=["GET"])
    @handle_errors
    async def get_workflow(request: Request) -> JSONResponse:
        workflow = await ctx.workflows.get(request.path_params["workflow_id"])
        data = workflow.summary()
        data["plan"] = workflow.plan.to_dict()
        return success_response(data)

    @mcp.custom_route("/api/workflow/{workflow_id}/execute", methods=["POST"])
    @handle_errors
    async def execute_workflow(request: Request) -> JSONResponse:
        record = await ctx.workflows.execute(request.path_params["workflow_id"])
        return success_response(record.to_dict())

    @mcp.custom_route("/api/workflow/{workflow_id}/cancel", methods=["POST"])
    @handle_errors
    async def cancel_workflow(request: Request) -> JSONResponse:
        workflow_id = request.path_params["workflow_id"]
        await ctx.workflows.get(workflow_id)
        return success_response({"id": workflow_id, "cancelled": ctx.workflows.cancel(workflow_id)})

    @mcp.custom_route("/api/workflow/{workflow_id}/history", methods=["GET"])
    @handle_errors
    async def workflow_history(request: Request) -> JSONResponse:
        outcomes = await ctx.workflows.history(request.path_params["workflow_id"])
        return success_response([outcome.to_dict() for outcome in outcomes])
