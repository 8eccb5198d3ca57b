"""
API description documents (OpenAPI 3 / Swagger 2).

Fetches a document from a validated URL, parses it as JSON or YAML, and
derives what the rest of the service needs: the base URL and the list of
endpoints.
"""

import json
from typing import Any, Optional
from urllib.parse import urljoin

import httpx
import yaml

from swaggbot.errors import ExternalServiceError, SecurityRejectionError, ValidationError
from swaggbot.security.url_guard import validate_url
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")
MAX_DOCUMENT_SIZE = 10 * 1024 * 1024


def parse_api_document(content: str) -> dict[str, Any]:
    """
    Parse an API description, trying JSON first and then YAML.

    Raises:
        ValidationError: If the content is neither, or is not a mapping
    """
    try:
        document = json.loads(content)
    except ValueError:
        try:
            document = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValidationError(
                "Failed to parse API description: invalid JSON or YAML format"
            ) from e

    if not isinstance(document, dict):
        raise ValidationError("Failed to parse API description: expected a mapping at the top level")
    return document


def extract_base_url(document: dict[str, Any], source_url: Optional[str] = None) -> Optional[str]:
    """
    Base URL of the described API.

    OpenAPI 3 uses the first server entry; a relative server URL is
    resolved against the document's own URL. Swagger 2 combines scheme
    (https by default), host and basePath.
    """
    servers = document.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        url = servers[0].get("url")
        if isinstance(url, str) and url:
            if source_url and not url.startswith(("http://", "https://")):
                return urljoin(source_url, url)
            return url

    host = document.get("host")
    if isinstance(host, str) and host:
        schemes = document.get("schemes") or ["https"]
        base_path = document.get("basePath") or ""
        return f"{schemes[0]}://{host}{base_path}"

    return None


def list_endpoints(document: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten the paths object into one entry per operation."""
    endpoints = []
    paths = document.get("paths") or {}
    for path, operations in paths.items():
        if not isinstance(operations, dict):
            continue
        for method, operation in operations.items():
            if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            endpoints.append(
                {
                    "method": method.upper(),
                    "path": path,
                    "summary": operation.get("summary", ""),
                    "operationId": operation.get("operationId"),
                    "parameters": [
                        {
                            "name": p.get("name"),
                            "in": p.get("in"),
                            "required": bool(p.get("required", False)),
                        }
                        for p in operation.get("parameters", [])
                        if isinstance(p, dict) and "name" in p
                    ],
                    "hasBody": "requestBody" in operation
                    or any(
                        isinstance(p, dict) and p.get("in") == "body"
                        for p in operation.get("parameters", [])
                    ),
                }
            )
    return endpoints


async def fetch_api_document(
    url: str,
    timeout: float = 30.0,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """
    Download and parse an API description.

    Redirects are not followed, so a validated URL cannot bounce to an
    internal address.

    Raises:
        SecurityRejectionError: If the URL fails the URL guard
        ExternalServiceError: On network failure or a non-2xx response
        ValidationError: If the body cannot be parsed
    """
    check = validate_url(url)
    if not check.valid:
        raise SecurityRejectionError(check.error or "Invalid URL", rule="url")

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
    try:
        response = await client.get(url, headers={"Accept": "application/json, application/yaml"})
    except httpx.HTTPError as e:
        logger.warning("Fetching API description from %s failed: %s", url, e)
        raise ExternalServiceError("api-description", str(e)) from e
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise ExternalServiceError(
            "api-description",
            f"Failed to fetch API description: {response.status_code} {response.reason_phrase}",
        )

    if len(response.content) > MAX_DOCUMENT_SIZE:
        raise ValidationError("API description exceeds the maximum size")

    return parse_api_document(response.text)
