"""Chat-completion backend client.

Sends one OpenAI-style chat completion request per call, bounded by an
explicit deadline. No retries here: the orchestrator decides whether a
second attempt happens, and with which deadline.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from linerelay.observability.logging import get_logger
from linerelay.observability.redaction import safe_log_context

logger = get_logger(__name__)


class CompletionError(Exception):
    """Completion request failed (transport error or bad response)."""


class CompletionTimeoutError(CompletionError):
    """Completion request exceeded its deadline and was cancelled."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"completion timeout after {int(timeout * 1000)}ms")


class UpstreamError(CompletionError):
    """Backend answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"completion backend failed: {status_code} {body}")


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionRequest:
    """Chat completion payload.

    Attributes:
        messages: Optional system message followed by exactly one user message.
        temperature: Sampling temperature.
        model: Backend model name; omitted from the payload when empty.
        user: End-user id forwarded to the backend; omitted when empty.
    """

    messages: tuple[ChatMessage, ...]
    temperature: float
    model: str = ""
    user: str = ""

    @classmethod
    def for_text(
        cls,
        text: str,
        *,
        system_prompt: str = "",
        temperature: float,
        model: str = "",
        user: str = "",
    ) -> "CompletionRequest":
        messages = []
        if system_prompt:
            messages.append(ChatMessage("system", system_prompt))
        messages.append(ChatMessage("user", text))
        return cls(
            messages=tuple(messages),
            temperature=temperature,
            model=model,
            user=user,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body sent to the backend."""
        payload: dict[str, Any] = {}
        if self.model:
            payload["model"] = self.model
        payload["messages"] = [m.to_dict() for m in self.messages]
        payload["temperature"] = self.temperature
        if self.user:
            payload["user"] = self.user
        return payload


def extract_reply_text(data: Any) -> str:
    """Pull reply text out of a completion response body.

    Accepts `choices[0].message.content` (chat shape) or `choices[0].text`
    (legacy completion shape). Anything missing yields an empty string.
    """
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""

    text = None
    message = first.get("message")
    if isinstance(message, dict):
        text = message.get("content")
    if text is None:
        text = first.get("text")
    if text is None:
        return ""
    return str(text).strip()


class CompletionClient:
    """Async client for the configured completion endpoint."""

    def __init__(self, http: httpx.AsyncClient, url: str, api_key: str = ""):
        self._http = http
        self._url = url
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _send(self, request: CompletionRequest) -> httpx.Response:
        try:
            # Deadline is enforced by the caller via cancellation
            return await self._http.post(
                self._url,
                json=request.to_dict(),
                headers=self._headers(),
                timeout=None,
            )
        except httpx.HTTPError as e:
            raise CompletionError(f"completion request failed: {type(e).__name__}: {e}") from e

    async def complete(
        self,
        request: CompletionRequest,
        timeout: float | None = None,
    ) -> str:
        """Run one completion and return its text.

        Args:
            request: Payload to send.
            timeout: Deadline in seconds; None or <= 0 means unbounded.

        Returns:
            Reply text, possibly empty.

        Raises:
            CompletionTimeoutError: Deadline exceeded; the request is cancelled.
            UpstreamError: Non-2xx response.
            CompletionError: Transport failure.
        """
        bounded = timeout is not None and timeout > 0
        try:
            if bounded:
                response = await asyncio.wait_for(self._send(request), timeout)
            else:
                response = await self._send(request)
        except asyncio.TimeoutError as e:
            raise CompletionTimeoutError(timeout) from e

        if not response.is_success:
            logger.warning(
                "completion backend returned error status",
                extra={
                    "extra_fields": safe_log_context(
                        status_code=response.status_code,
                        body=response.text,
                    )
                },
            )
            raise UpstreamError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            data = {}

        return extract_reply_text(data)
