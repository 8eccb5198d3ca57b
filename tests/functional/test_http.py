#!/usr/bin/env python3
"""
Functional tests for the HTTP surface: the edge guard in front of every
route and the REST routes for sessions and workflows.
"""

import json

import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from swaggbot.config import SwaggbotConfig
from swaggbot.http import EdgeGuardMiddleware
from swaggbot.security import SESSION_COOKIE, RateLimiter, SessionTokenService
from swaggbot.server import create_http_app, create_server

SECRET = "functional-test-session-secret-for-hs256"

SPEC = json.dumps(
    {
        "openapi": "3.0.0",
        "servers": [{"url": "https://api.example.com"}],
        "paths": {"/users": {"get": {"summary": "List users"}}},
    }
)


async def whoami(request: Request) -> JSONResponse:
    return JSONResponse({"user": request.state.user_id, "ip": request.state.client_ip})


async def page(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


class BrokenLimiter:
    async def check(self, client: str, path: str = ""):
        raise RuntimeError("limiter backend down")


def guarded_app(rate_limiter=None, trust_proxy_headers: bool = False) -> Starlette:
    return Starlette(
        routes=[
            Route("/api/whoami", whoami),
            Route("/api/health", page),
            Route("/mcp", page, methods=["GET", "POST"]),
            Route("/dashboard", page),
            Route("/static/app.js", page),
        ],
        middleware=[
            Middleware(
                EdgeGuardMiddleware,
                tokens=SessionTokenService(SECRET),
                rate_limiter=rate_limiter,
                trust_proxy_headers=trust_proxy_headers,
            )
        ],
    )


def signed_in(client: TestClient) -> TestClient:
    client.cookies.set(SESSION_COOKIE, SessionTokenService(SECRET).create("alice"))
    return client


class TestSessionGate:
    @pytest.mark.parametrize("path", ["/api/whoami", "/mcp"])
    def test_api_paths_need_session(self, path: str):
        with TestClient(guarded_app()) as client:
            response = client.get(path)
        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Authentication required",
        }

    def test_page_redirects_to_login(self):
        with TestClient(guarded_app(), follow_redirects=False) as client:
            response = client.get("/dashboard")
        assert response.status_code == 307
        assert response.headers["location"] == "/login"

    def test_invalid_cookie_on_api(self):
        with TestClient(guarded_app()) as client:
            client.cookies.set(SESSION_COOKIE, "forged.token")
            response = client.get("/api/whoami")
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired session"

    def test_invalid_cookie_on_page_is_cleared(self):
        with TestClient(guarded_app(), follow_redirects=False) as client:
            client.cookies.set(SESSION_COOKIE, "forged.token")
            response = client.get("/dashboard")
        assert response.status_code == 307
        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"{SESSION_COOKIE}=")
        assert "Max-Age=0" in cookie

    @pytest.mark.parametrize("path", ["/api/health", "/static/app.js"])
    def test_public_paths_bypass(self, path: str):
        with TestClient(guarded_app()) as client:
            assert client.get(path).status_code == 200

    def test_valid_session_reaches_route(self):
        with TestClient(guarded_app()) as client:
            response = signed_in(client).get("/api/whoami")
        assert response.status_code == 200
        assert response.json()["user"] == "alice"


class TestRateLimiting:
    def test_denied_after_limit(self):
        app = guarded_app(RateLimiter(window_seconds=60, max_requests=2))
        with TestClient(app) as client:
            signed_in(client)
            assert client.get("/api/whoami").status_code == 200
            second = client.get("/api/whoami")
            third = client.get("/api/whoami")

        assert second.status_code == 200
        assert third.status_code == 429
        assert third.headers["X-RateLimit-Limit"] == "2"
        assert third.headers["X-RateLimit-Remaining"] == "0"
        assert int(third.headers["Retry-After"]) >= 1
        error = third.json()["error"]
        assert error["code"] == "RATE_LIMIT_EXCEEDED"
        assert error["details"]["limit"] == 2
        assert error["details"]["windowMinutes"] == 1

    def test_tool_calls_named_in_message(self):
        app = guarded_app(RateLimiter(window_seconds=60, max_requests=1))
        with TestClient(app) as client:
            signed_in(client)
            client.post("/mcp")
            response = client.post("/mcp")
        assert response.status_code == 429
        assert response.json()["error"]["message"].startswith("Rate limit exceeded for tool calls")

    def test_forwarded_clients_counted_separately_behind_proxy(self):
        app = guarded_app(RateLimiter(window_seconds=60, max_requests=1), trust_proxy_headers=True)
        with TestClient(app) as client:
            signed_in(client)
            first = client.get("/api/whoami", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
            repeat = client.get("/api/whoami", headers={"X-Forwarded-For": "203.0.113.7"})
            other = client.get("/api/whoami", headers={"X-Real-IP": "198.51.100.2"})

        assert first.json()["ip"] == "203.0.113.7"
        assert repeat.status_code == 429
        assert other.status_code == 200
        assert other.json()["ip"] == "198.51.100.2"

    def test_forwarded_headers_ignored_without_proxy(self):
        app = guarded_app(RateLimiter(window_seconds=60, max_requests=1))
        with TestClient(app) as client:
            signed_in(client)
            first = client.get("/api/whoami", headers={"X-Forwarded-For": "203.0.113.7"})
            spoofed = client.get("/api/whoami", headers={"X-Forwarded-For": "203.0.113.8"})
            real_ip = client.get("/api/whoami", headers={"X-Real-IP": "198.51.100.2"})

        assert first.json()["ip"] == "testclient"
        assert spoofed.status_code == 429
        assert real_ip.status_code == 429

    def test_limiter_failure_lets_request_through(self):
        with TestClient(guarded_app(BrokenLimiter())) as client:
            response = signed_in(client).get("/api/whoami")
        assert response.status_code == 200


@pytest.fixture
def config() -> SwaggbotConfig:
    return SwaggbotConfig.model_validate(
        {
            "auth": {"session_secret": SECRET, "app_password": "open-sesame"},
            "security": {"encryption_key": "functional-test-encryption-key"},
            "rate_limit": {"enabled": False},
        }
    )


@pytest.fixture
def client(config, fake_runner):
    bundle = create_server(config)
    bundle.context.workflows.orchestrator.runner = fake_runner
    with TestClient(create_http_app(bundle)) as client:
        yield client


def login(client: TestClient) -> None:
    response = client.post("/api/auth/login", json={"password": "open-sesame"})
    assert response.status_code == 200


class TestRoutes:
    def test_health_is_public(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_login(self, client):
        assert client.post("/api/auth/login", json={"password": "wrong"}).status_code == 401
        assert client.post("/api/auth/login", json={}).status_code == 400

        response = client.post("/api/auth/login", json={"password": "open-sesame"})
        assert response.json() == {"success": True, "data": {"authenticated": True}}
        cookie = response.headers["set-cookie"]
        assert "HttpOnly" in cookie
        assert "SameSite=strict" in cookie

    def test_logout_clears_session(self, client):
        login(client)
        assert client.get("/api/session").status_code == 200
        client.post("/api/auth/logout")
        assert client.get("/api/session").status_code == 401

    def test_session_lifecycle(self, client):
        login(client)

        created = client.post("/api/session", json={"name": "Users", "specContent": SPEC})
        assert created.status_code == 201
        session = created.json()["data"]
        assert session["baseUrl"] == "https://api.example.com"
        assert session["hasCredential"] is False

        listed = client.get("/api/session").json()["data"]
        assert [s["id"] for s in listed] == [session["id"]]

        detail = client.get(f"/api/session/{session['id']}").json()["data"]
        assert detail["endpoints"][0]["path"] == "/users"

        assert client.delete(f"/api/session/{session['id']}").status_code == 200
        missing = client.get(f"/api/session/{session['id']}")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"

    def test_private_base_url_rejected(self, client):
        login(client)
        response = client.post(
            "/api/session",
            json={"name": "Local", "specContent": SPEC, "baseUrl": "http://127.0.0.1:8000"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "SECURITY_REJECTION"

    def test_malformed_body(self, client):
        login(client)
        response = client.post(
            "/api/session",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_workflow_flow(self, client, fake_runner):
        login(client)
        session_id = client.post("/api/session", json={"name": "Users", "specContent": SPEC}).json()["data"]["id"]

        plan = {
            "workflowName": "List then fetch",
            "steps": [
                {
                    "stepNumber": 1,
                    "action": {"endpoint": "/users", "method": "GET"},
                    "extractFields": ["[0].id"],
                },
                {"stepNumber": 2, "action": {"endpoint": "/users/{{id}}", "method": "GET"}},
            ],
        }
        created = client.post("/api/workflow", json={"sessionId": session_id, "plan": plan})
        assert created.status_code == 201
        workflow = created.json()["data"]
        assert workflow["plan"]["steps"][1]["action"]["endpoint"] == "/users/{{id}}"

        fake_runner.queue_output('[{"id": 7}]\nHTTP_CODE:200')
        fake_runner.queue_output('{"id": 7}\nHTTP_CODE:200')

        record = client.post(f"/api/workflow/{workflow['id']}/execute").json()["data"]
        assert record["status"] == "completed"
        assert fake_runner.calls[1][2] == "https://api.example.com/users/7"

        history = client.get(f"/api/workflow/{workflow['id']}/history").json()["data"]
        assert [o["stepNumber"] for o in history] == [1, 2]

        listed = client.get("/api/workflow", params={"sessionId": session_id}).json()["data"]
        assert listed[0]["status"] == "completed"

        cancelled = client.post(f"/api/workflow/{workflow['id']}/cancel").json()["data"]
        assert cancelled == {"id": workflow["id"], "cancelled": False}

    def test_invalid_plan(self, client):
        login(client)
        session_id = client.post("/api/session", json={"name": "Users", "specContent": SPEC}).json()["data"]["id"]
        response = client.post("/api/workflow", json={"sessionId": session_id, "plan": {"steps": []}})
        assert response.status_code == 400
        assert response.json()["error"]["details"]["fields"]

    def test_workflow_list_needs_session_id(self, client):
        login(client)
        assert client.get("/api/workflow").status_code == 400
