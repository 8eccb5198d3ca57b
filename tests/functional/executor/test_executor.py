#!/usr/bin/env python3
"""
Functional tests for the executor module.

These tests verify:
1. Command parsing accuracy
2. Security validation behavior
3. Argument vector building
4. Command execution with real subprocesses
"""

from pathlib import Path

import pytest
import yaml

from swaggbot.config.models import ExecutorSettings, SecuritySettings
from swaggbot.errors import SecurityRejectionError
from swaggbot.executor import (
    CommandBlockedError,
    CommandBuilder,
    CommandValidator,
    CurlRunner,
    JsonBody,
    TextBody,
    ensure_required_flags,
    parse_command,
    parse_output,
    rewrite_loopback_args,
)
from swaggbot.executor.builder import WRITE_OUT_FORMAT

# Load test data
TEST_DATA_PATH = Path(__file__).parent / "test_data.yaml"
with open(TEST_DATA_PATH) as f:
    TEST_DATA = yaml.safe_load(f)


# =============================================================================
# Parser Tests
# =============================================================================
class TestParser:
    """Test command parsing functionality."""

    @pytest.mark.parametrize(
        "test_case",
        TEST_DATA["parser_tests"],
        ids=lambda tc: tc["name"],
    )
    def test_parse_commands(self, test_case: dict):
        """Parsed method, targets, headers and data match expectations."""
        parsed = parse_command(test_case["command"])
        expected = test_case["expected"]

        if "method" in expected:
            assert parsed.method == expected["method"]
        if "urls" in expected:
            assert parsed.urls == expected["urls"]
        if "headers" in expected:
            assert parsed.headers == expected["headers"]
        if "data" in expected:
            assert parsed.data == expected["data"]

    def test_header_lookup_is_case_insensitive(self):
        parsed = parse_command("curl -H 'authorization: Bearer abc' https://api.example.com/")
        assert parsed.header("Authorization") == "Bearer abc"
        assert parsed.header("X-Missing") is None

    def test_malformed_quoting_raises(self):
        with pytest.raises(CommandBlockedError) as exc_info:
            parse_command("curl 'https://api.example.com/")
        assert exc_info.value.rule == "syntax"


# =============================================================================
# Validator Tests
# =============================================================================
class TestValidator:
    """Test layered command validation."""

    @pytest.mark.parametrize(
        "test_case",
        TEST_DATA["validator_tests"]["allowed"],
        ids=lambda tc: tc["name"],
    )
    def test_allowed_commands(self, validator: CommandValidator, test_case: dict):
        result = validator.validate(test_case["command"])
        assert result.allowed, f"Unexpectedly blocked: {result.reason}"
        assert result.reason is None

    @pytest.mark.parametrize(
        "test_case",
        TEST_DATA["validator_tests"]["blocked"],
        ids=lambda tc: tc["name"],
    )
    def test_blocked_commands(self, validator: CommandValidator, test_case: dict):
        result = validator.validate(test_case["command"])
        assert not result.allowed
        assert result.rule == test_case["rule"]
        if "reason" in test_case:
            assert result.reason == test_case["reason"]

    def test_ensure_allowed_raises_security_rejection(self, validator: CommandValidator):
        with pytest.raises(SecurityRejectionError) as exc_info:
            validator.ensure_allowed("curl -o out.txt https://api.example.com/")
        assert exc_info.value.rule == "dangerous_flags"
        assert exc_info.value.code == "SECURITY_REJECTION"

    def test_url_revalidation_can_be_disabled(self):
        validator = CommandValidator(SecuritySettings(revalidate_urls=False))
        assert validator.validate("curl http://10.0.0.5/internal").allowed

    def test_custom_dangerous_flags(self):
        validator = CommandValidator(SecuritySettings(dangerous_flags=["-K", "--config"]))
        result = validator.validate("curl -K /etc/curlrc https://api.example.com/")
        assert not result.allowed
        assert result.reason == "Potentially dangerous flag detected: -K"


# =============================================================================
# Builder Tests
# =============================================================================
class TestBuilder:
    """Test argument vector construction."""

    def test_required_flags_appended(self):
        args = ensure_required_flags(["https://api.example.com/"])
        assert args == ["https://api.example.com/", "-s", "-w", WRITE_OUT_FORMAT]

    def test_required_flags_idempotent(self):
        once = ensure_required_flags(["-X", "GET", "https://api.example.com/"])
        assert ensure_required_flags(once) == once

    def test_existing_silent_and_marked_write_out_kept(self):
        args = [
            "--silent",
            "--write-out",
            "%{size_download}\nHTTP_CODE:%{http_code}",
            "https://api.example.com/",
        ]
        assert ensure_required_flags(args) == args

    def test_bundled_silent_flag_recognized(self):
        args = ensure_required_flags(["-sS", "https://api.example.com/"])
        assert args == ["-sS", "https://api.example.com/", "-w", WRITE_OUT_FORMAT]

    def test_write_out_without_marker_overridden(self):
        args = ensure_required_flags(["-s", "-w", "%{http_code}", "https://api.example.com/"])
        assert args[-2:] == ["-w", WRITE_OUT_FORMAT]

    def test_values_resembling_write_out_ignored(self):
        args = ensure_required_flags(["-s", "-d", "-wat", "https://api.example.com/"])
        assert args == ["-s", "-d", "-wat", "https://api.example.com/", "-w", WRITE_OUT_FORMAT]

    def test_build_strips_program_and_keeps_quoted_arguments(self, builder: CommandBuilder):
        args = builder.build(
            "curl -X POST 'https://api.example.com/users' "
            "-H 'Content-Type: application/json' -d '{\"name\": \"Ann Lee\"}'"
        )
        assert args[:6] == [
            "-X",
            "POST",
            "https://api.example.com/users",
            "-H",
            "Content-Type: application/json",
            "-d",
        ]
        assert args[6] == '{"name": "Ann Lee"}'
        assert args[-3:] == ["-s", "-w", WRITE_OUT_FORMAT]

    def test_build_rejects_blocked_command(self, builder: CommandBuilder):
        with pytest.raises(CommandBlockedError) as exc_info:
            builder.build("curl https://api.example.com/ && reboot")
        assert exc_info.value.rule == "forbidden_characters"

    def test_loopback_rewritten_in_container_mode(self, validator: CommandValidator):
        builder = CommandBuilder(
            validator,
            ExecutorSettings(container_mode=True, host_gateway="host.docker.internal"),
        )
        args = builder.build("curl http://localhost:3000/users")
        assert args[0] == "http://host.docker.internal:3000/users"

    def test_loopback_untouched_outside_container_mode(self, builder: CommandBuilder):
        args = builder.build("curl http://127.0.0.1:3000/users")
        assert args[0] == "http://127.0.0.1:3000/users"

    def test_rewrite_does_not_touch_lookalike_hosts(self):
        args = rewrite_loopback_args(
            ["http://localhost.example.com/", "https://127.0.0.1/x"],
            "gateway",
        )
        assert args == ["http://localhost.example.com/", "https://gateway/x"]


# =============================================================================
# Output Parsing Tests
# =============================================================================
class TestParseOutput:
    """Test status marker and body parsing."""

    def test_json_body(self):
        http_code, clean, response = parse_output('{"id": 1}\nHTTP_CODE:201')
        assert http_code == 201
        assert clean == '{"id": 1}'
        assert response == JsonBody({"id": 1})

    def test_text_body(self):
        http_code, clean, response = parse_output("not json\nHTTP_CODE:500")
        assert http_code == 500
        assert response == TextBody("not json")

    def test_empty_body(self):
        http_code, clean, response = parse_output("\nHTTP_CODE:204")
        assert http_code == 204
        assert clean == ""
        assert response is None

    def test_missing_marker(self):
        http_code, clean, response = parse_output('{"ok": true}')
        assert http_code == 0
        assert response == JsonBody({"ok": True})


# =============================================================================
# Runner Tests
# =============================================================================
class TestRunner:
    """
    Test subprocess execution.

    Standard utilities stand in for the curl binary so the tests need no
    network access.
    """

    @pytest.mark.asyncio
    async def test_successful_execution(self):
        runner = CurlRunner(curl_binary="printf")
        result = await runner.execute(["%s\nHTTP_CODE:%s", '{"id": 7}', "200"])

        assert result.success
        assert result.exit_code == 0
        assert result.http_code == 200
        assert result.body == {"id": 7}

    @pytest.mark.asyncio
    async def test_http_error_status_is_not_success(self):
        runner = CurlRunner(curl_binary="printf")
        result = await runner.execute(["%s\nHTTP_CODE:%s", "Not Found", "404"])

        assert not result.success
        assert result.exit_code == 0
        assert result.http_code == 404
        assert result.body == "Not Found"

    @pytest.mark.asyncio
    async def test_timeout_handling(self):
        runner = CurlRunner(curl_binary="sleep", default_timeout=30)
        result = await runner.execute(["5"], timeout=0.2)

        assert not result.success
        assert "timed out" in result.stderr

    @pytest.mark.asyncio
    async def test_nonzero_exit_preserved(self):
        runner = CurlRunner(curl_binary="false")
        result = await runner.execute([])

        assert not result.success
        assert result.exit_code != 0
        assert result.stderr

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        runner = CurlRunner(curl_binary="/nonexistent/curl-binary")
        result = await runner.execute(["https://api.example.com/"])

        assert not result.success
        assert result.exit_code == 1
        assert "Failed to start" in result.stderr

    @pytest.mark.asyncio
    async def test_output_truncation(self):
        runner = CurlRunner(curl_binary="head", max_output_size=1024)
        result = await runner.execute(["-c", "200000", "/dev/zero"])

        assert not result.success
        assert result.truncated
        assert len(result.stdout) <= 1024
        assert "maximum buffer size" in result.stderr
        assert result.to_dict()["truncated"] is True
