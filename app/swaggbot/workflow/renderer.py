"""
Command text generation for workflow steps.

The orchestrator asks a CommandGenerator for the curl text of each
resolved action. The default renderer builds it deterministically; an
LLM-backed generator can be plugged in instead, and its output goes
through the same validation as any other command text.
"""

import json
import shlex
from typing import Optional, Protocol

from swaggbot.extraction.expression import as_text
from swaggbot.workflow.models import WorkflowAction


class CommandGenerator(Protocol):
    async def generate(
        self,
        action: WorkflowAction,
        base_url: str,
        credential: Optional[str] = None,
    ) -> str:
        """Return curl command text for a fully resolved action."""
        ...


def join_url(base_url: str, endpoint: str) -> str:
    """Absolute endpoints are kept; relative ones are joined to the base URL."""
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    if not base_url:
        return endpoint
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


class CurlCommandRenderer:
    """
    Render ``curl -X <METHOD> '<url>' -H 'Content-Type: application/json'``
    plus an Authorization header when a credential is known, query
    parameters as ``--url-query`` arguments and the body as ``-d``.

    Every argument is shell-quoted, so the text tokenizes back to exactly
    these arguments.
    """

    async def generate(
        self,
        action: WorkflowAction,
        base_url: str,
        credential: Optional[str] = None,
    ) -> str:
        return self.render(action, base_url, credential)

    def render(
        self,
        action: WorkflowAction,
        base_url: str,
        credential: Optional[str] = None,
    ) -> str:
        url = join_url(base_url, action.endpoint)
        parts = [
            "curl",
            "-X",
            action.method,
            shlex.quote(url),
            "-H",
            shlex.quote("Content-Type: application/json"),
        ]

        if credential:
            header = credential if credential.startswith("Bearer ") else f"Bearer {credential}"
            parts += ["-H", shlex.quote(f"Authorization: {header}")]

        for name, value in action.parameters.items():
            if value is None:
                continue
            parts += ["--url-query", shlex.quote(f"{name}={as_text(value)}")]

        if action.body:
            parts += ["-d", shlex.quote(json.dumps(action.body, separators=(",", ":")))]

        return " ".join(parts)
