"""
API session management.

Registers third-party APIs from their description documents, keeps the
bearer credential encrypted at rest, and removes a session together with
its workflows.
"""

from typing import Any, Optional

from swaggbot.errors import NotFoundError, SecurityRejectionError, ValidationError
from swaggbot.openapi import extract_base_url, fetch_api_document, list_endpoints, parse_api_document
from swaggbot.security.secrets import SecretBox
from swaggbot.security.url_guard import validate_url
from swaggbot.session.base import ApiSession, SessionStore, WorkflowStore
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)


class SessionService:
    def __init__(
        self,
        sessions: SessionStore,
        workflows: WorkflowStore,
        secrets: SecretBox,
        fetch_timeout: float = 30.0,
    ):
        self.sessions = sessions
        self.workflows = workflows
        self.secrets = secrets
        self.fetch_timeout = fetch_timeout

    async def create(
        self,
        name: str,
        spec_url: Optional[str] = None,
        spec_content: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> ApiSession:
        """
        Register an API.

        The description is fetched from spec_url or parsed from
        spec_content. The base URL comes from the argument or, failing
        that, from the document, and must pass the URL guard.

        Raises:
            ValidationError: Missing input, unparsable document or no base URL
            SecurityRejectionError: The description URL or base URL is not allowed
            ExternalServiceError: The description could not be fetched
        """
        if not name or not name.strip():
            raise ValidationError("Session name is required", fields={"name": ["required"]})

        if spec_url:
            document = await fetch_api_document(spec_url, timeout=self.fetch_timeout)
        elif spec_content:
            document = parse_api_document(spec_content)
        else:
            raise ValidationError(
                "Either specUrl or specContent is required",
                fields={"specUrl": ["required"]},
            )

        base_url = base_url or extract_base_url(document, spec_url)
        if not base_url:
            raise ValidationError(
                "Could not determine the API base URL; pass baseUrl explicitly",
                fields={"baseUrl": ["required"]},
            )

        check = validate_url(base_url)
        if not check.valid:
            raise SecurityRejectionError(check.error or "Invalid URL", rule="url")

        session = await self.sessions.create(
            ApiSession(name=name.strip(), spec_url=spec_url, api_spec=document, base_url=base_url)
        )
        logger.info("Session %s created for %s", session.id, base_url)
        return session

    async def get(self, session_id: str) -> ApiSession:
        """
        Raises:
            NotFoundError: If the session does not exist
        """
        session = await self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        await self.sessions.touch(session_id)
        return session

    async def list_sessions(self) -> list[ApiSession]:
        return await self.sessions.list_sessions()

    async def delete(self, session_id: str) -> None:
        if not await self.sessions.delete(session_id):
            raise NotFoundError("Session", session_id)
        removed = await self.workflows.delete_for_session(session_id)
        logger.info("Session %s deleted with %d workflows", session_id, removed)

    async def set_credential(self, session_id: str, token: Optional[str]) -> None:
        """Store a bearer credential encrypted, or clear it with None."""
        sealed = self.secrets.seal(token) if token else None
        if not await self.sessions.update_credential(session_id, sealed):
            raise NotFoundError("Session", session_id)

    def credential(self, session: ApiSession) -> Optional[str]:
        """
        Decrypt a session's credential.

        Raises:
            CorruptedSecretError: If the stored value cannot be decrypted
        """
        if not session.encrypted_credential:
            return None
        return self.secrets.open(session.encrypted_credential)

    async def endpoints(self, session_id: str) -> list[dict[str, Any]]:
        session = await self.get(session_id)
        return list_endpoints(session.api_spec or {})
