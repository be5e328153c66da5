"""Chat Bridge: hand a finished diary entry to the chat service.

The chat service stores the entry as a user message tagged with
``source="cbt-diary"`` so it shows up in session reports.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from cbt_diary.core.config import get_settings
from cbt_diary.middleware.correlation import outbound_headers

logger = structlog.get_logger(__name__)

MESSAGE_SOURCE = "cbt-diary"
NO_SESSION_ERROR = "No active chat session"


@dataclass(frozen=True)
class ChatHandoffResult:
    success: bool
    error: str | None = None


class ChatBridge(Protocol):
    async def add_message(self, session_id: str | None, content: str) -> ChatHandoffResult: ...


class HttpChatBridge:
    """Posts diary content to ``{chat_api_url}/api/messages``.

    Never raises: transport errors and non-2xx responses come back as
    ``ChatHandoffResult(success=False, error=...)``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.chat_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.chat_api_timeout_seconds
        self._transport = transport

    async def add_message(self, session_id: str | None, content: str) -> ChatHandoffResult:
        if not session_id:
            logger.warning("chat_handoff_skipped", reason="no_session")
            return ChatHandoffResult(success=False, error=NO_SESSION_ERROR)

        body = {
            "sessionId": session_id,
            "role": "user",
            "content": content,
            "source": MESSAGE_SOURCE,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/api/messages",
                    json=body,
                    headers=outbound_headers(),
                )
        except httpx.HTTPError as exc:
            logger.warning("chat_handoff_failed", session_id=session_id, error_type=type(exc).__name__)
            return ChatHandoffResult(success=False, error=f"Chat service unreachable: {type(exc).__name__}")

        if response.is_success:
            logger.info("chat_handoff_sent", session_id=session_id, content_length=len(content))
            return ChatHandoffResult(success=True)

        logger.warning("chat_handoff_rejected", session_id=session_id, status_code=response.status_code)
        return ChatHandoffResult(success=False, error=f"Chat service returned {response.status_code}")
