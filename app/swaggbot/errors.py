"""
Boundary error taxonomy.

Failures that cross the service boundary (HTTP routes, MCP tools) are
raised as AppError subclasses and rendered into a stable JSON body by
error_response(). Failures inside the execution pipeline (a failed curl
call, a missing extracted value) are returned as result values instead.
"""

from typing import Any, Optional

from starlette.responses import JSONResponse

from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for errors with a stable code and HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        operational: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.operational = operational

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON error body shape."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(AppError):
    """Request input failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, fields: Optional[dict[str, list[str]]] = None):
        super().__init__(message, details={"fields": fields} if fields else None)
        self.fields = fields or {}


class NotFoundError(AppError):
    """A referenced session or workflow does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class RateLimitedError(AppError):
    """Caller exceeded the request window; retry after the given delay."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, message: str, retry_after: int, limit: int):
        super().__init__(
            message, details={"limit": limit, "retryAfter": retry_after}
        )
        self.retry_after = retry_after
        self.limit = limit

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["retry"] = {"allowed": False, "after": self.retry_after}
        return body


class SecurityRejectionError(AppError):
    """
    Blocked by the URL guard or the command validator.

    Never retried automatically; the policy reason is surfaced verbatim.
    """

    code = "SECURITY_REJECTION"
    status_code = 400

    def __init__(self, reason: str, rule: Optional[str] = None):
        super().__init__(reason, details={"rule": rule} if rule else None)
        self.reason = reason
        self.rule = rule


class CorruptedSecretError(AppError):
    """Stored secret could not be decoded or decrypted."""

    code = "CORRUPTED_SECRET"
    status_code = 500

    def __init__(self, message: str = "Failed to decrypt data - data may be corrupted or key may be invalid"):
        super().__init__(message, operational=False)


class ExternalServiceError(AppError):
    """An upstream dependency (the API description host) failed."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, service: str, reason: Optional[str] = None):
        message = f"External service '{service}' failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConfigurationError(AppError):
    """A feature was used without the configuration it needs."""

    code = "CONFIGURATION_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, operational=False)


def error_body(error: BaseException) -> tuple[dict[str, Any], int]:
    """
    Map any exception to a JSON error body and status code.

    Operational AppErrors are logged as warnings. Everything else is
    logged with its traceback and reported as INTERNAL_ERROR.
    """
    if isinstance(error, AppError):
        body = error.to_dict()
        if error.operational:
            logger.warning("Operational error: %s (%s)", error.code, error.message)
        else:
            logger.error("Non-operational error: %s (%s)", error.code, error.message)
        if error.operational and error.status_code >= 500:
            body["retry"] = {"allowed": True, "after": 1}
        return body, error.status_code

    logger.exception("Unhandled error", exc_info=error)
    return {
        "success": False,
        "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
    }, 500


def error_response(error: BaseException) -> JSONResponse:
    """Render an exception as a Starlette JSON response."""
    body, status_code = error_body(error)
    headers = None
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(error.retry_after)}
    return JSONResponse(body, status_code=status_code, headers=headers)


def success_response(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)
