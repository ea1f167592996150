"""Outbound LINE Messaging API calls: reply, push and loading indicator.

Security: NEVER log user ids, reply tokens or text. Only hashes and lengths.

All sends are one-shot: no retry, no queueing. A reply token is single use,
so retrying a reply is never safe from here.
"""

from typing import Any

import httpx

from linerelay.observability.logging import get_logger, hash_identifier
from linerelay.observability.redaction import safe_log_context

logger = get_logger(__name__)

LINE_API_BASE = "https://api.line.me"
REPLY_PATH = "/v2/bot/message/reply"
PUSH_PATH = "/v2/bot/message/push"
LOADING_PATH = "/v2/bot/chat/loading/start"

# Per-call bound for LINE API requests (seconds)
HTTP_TIMEOUT = 10.0

ALLOWED_LOADING_SECONDS = frozenset(range(5, 61, 5))
DEFAULT_LOADING_SECONDS = 20


class LineApiError(Exception):
    """Base error for a failed LINE Messaging API call.

    status_code is None when the request never got a response.
    """

    operation = "line"

    def __init__(self, status_code: int | None, body: str = ""):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(f"LINE {self.operation} failed: {body}")
        else:
            super().__init__(f"LINE {self.operation} failed: {status_code} {body}")


class ReplyError(LineApiError):
    operation = "reply"


class PushError(LineApiError):
    operation = "push"


class LoadingError(LineApiError):
    operation = "loading"


def normalize_loading_seconds(value: Any) -> int:
    """Snap a loading duration to LINE's allowed set (5..60, step 5).

    Anything outside the set, including non-numbers and NaN, becomes 20.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_LOADING_SECONDS
    if value != value or value not in ALLOWED_LOADING_SECONDS:
        return DEFAULT_LOADING_SECONDS
    return int(value)


def _text_messages(text: str) -> list[dict[str, str]]:
    return [{"type": "text", "text": text}]


class LineMessagingClient:
    """Thin async client for the three LINE endpoints the relay uses."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: str,
        *,
        api_base: str = LINE_API_BASE,
    ):
        self._http = http
        self._access_token = access_token
        self._api_base = api_base.rstrip("/")

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        error_cls: type[LineApiError],
    ) -> None:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._http.post(
                f"{self._api_base}{path}",
                json=payload,
                headers=headers,
                timeout=HTTP_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise error_cls(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise error_cls(response.status_code, response.text)

    async def reply(self, reply_token: str, text: str) -> None:
        """Reply to one inbound event, consuming its reply token.

        No-op when reply_token is empty.

        Raises:
            ReplyError: On non-2xx or transport failure.
        """
        if not reply_token:
            return

        log_ctx = safe_log_context(text_len=len(text), operation="reply")
        logger.debug("sending LINE reply", extra={"extra_fields": log_ctx})

        await self._post(
            REPLY_PATH,
            {"replyToken": reply_token, "messages": _text_messages(text)},
            ReplyError,
        )

    async def push(self, to: str, text: str) -> None:
        """Push a message to a durable recipient id.

        No-op when the recipient is empty.

        Raises:
            PushError: On non-2xx or transport failure.
        """
        if not to:
            return

        log_ctx = safe_log_context(
            to_hash=hash_identifier(to), text_len=len(text), operation="push"
        )
        logger.debug("sending LINE push", extra={"extra_fields": log_ctx})

        await self._post(
            PUSH_PATH,
            {"to": to, "messages": _text_messages(text)},
            PushError,
        )

    async def start_loading(self, chat_id: str, seconds: Any) -> None:
        """Show the loading animation in a one-to-one chat.

        Raises:
            LoadingError: On non-2xx or transport failure.
        """
        if not chat_id:
            return

        await self._post(
            LOADING_PATH,
            {"chatId": chat_id, "loadingSeconds": normalize_loading_seconds(seconds)},
            LoadingError,
        )
