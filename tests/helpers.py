"""Shared test helpers for linerelay tests.

Regular functions and classes (not fixtures) importable by any test module.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from linerelay.config import RelayConfig
from linerelay.line.signature import compute_signature

COMPLETION_URL = "http://backend.test/v1/chat/completions"
TEST_SECRET = "test-channel-secret"
TEST_TOKEN = "test-access-token"
TEST_USER_ID = "U" + "a" * 32


def make_config(**overrides: Any) -> RelayConfig:
    """RelayConfig with test credentials; loading indicator off by default."""
    values: dict[str, Any] = {
        "channel_secret": TEST_SECRET,
        "channel_access_token": TEST_TOKEN,
        "completion_url": COMPLETION_URL,
        "loading_seconds": 0,
        "pending_text": "PENDING",
        "fail_text": "FAIL",
        "timeout_ms": 200,
        "long_timeout_ms": 1000,
        "shutdown_grace_seconds": 0,
    }
    values.update(overrides)
    return RelayConfig(**values)


def text_event(
    text: str = "hello",
    user_id: str | None = TEST_USER_ID,
    reply_token: str = "reply-token-1",
    event_id: str = "01EVT",
) -> dict[str, Any]:
    """Build a LINE text message event."""
    source: dict[str, Any] = {"type": "user"}
    if user_id is not None:
        source["userId"] = user_id
    return {
        "type": "message",
        "webhookEventId": event_id,
        "replyToken": reply_token,
        "source": source,
        "message": {"type": "text", "id": "m-1", "text": text},
        "deliveryContext": {"isRedelivery": False},
    }


def signed_headers(body: bytes, secret: str = TEST_SECRET) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Line-Signature": compute_signature(body, secret),
    }


def completion_body(content: str) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@dataclass
class RecordedCall:
    path: str
    headers: dict[str, str]
    body: dict[str, Any]


# A completion behaviour is (status, body) or the string "hang";
# a dict body is sent as JSON, a str body as plain text
CompletionBehaviour = Any


@dataclass
class FakeUpstream:
    """Recording fake of the LINE API and the completion backend.

    completions: responses returned for successive completion calls; the
        last one repeats. The string "hang" sleeps far past any deadline.
    line_status: status code per LINE path (default 200).
    line_hang: LINE paths that sleep far past any deadline before answering.
    """

    completions: list[CompletionBehaviour] = field(
        default_factory=lambda: [(200, completion_body("hi"))]
    )
    line_status: dict[str, int] = field(default_factory=dict)
    line_hang: set[str] = field(default_factory=set)
    calls: list[RecordedCall] = field(default_factory=list)
    completion_calls: int = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.calls.append(
            RecordedCall(path=request.url.path, headers=dict(request.headers), body=body)
        )

        if str(request.url) == COMPLETION_URL:
            index = min(self.completion_calls, len(self.completions) - 1)
            self.completion_calls += 1
            behaviour = self.completions[index]
            if behaviour == "hang":
                await asyncio.sleep(30)
                return httpx.Response(200, json=completion_body("too late"))
            status, payload = behaviour
            if isinstance(payload, str):
                return httpx.Response(status, text=payload)
            return httpx.Response(status, json=payload)

        if request.url.path in self.line_hang:
            await asyncio.sleep(30)
        return httpx.Response(self.line_status.get(request.url.path, 200), json={})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def line_calls(self) -> list[tuple[str, Any]]:
        """LINE calls as (kind, payload-summary) in order, loading excluded."""
        result: list[tuple[str, Any]] = []
        for call in self.calls:
            if call.path == "/v2/bot/message/reply":
                result.append(("reply", call.body["messages"][0]["text"]))
            elif call.path == "/v2/bot/message/push":
                result.append(("push", call.body["to"], call.body["messages"][0]["text"]))
        return result

    def paths(self) -> list[str]:
        return [call.path for call in self.calls]


class LogRecorder:
    """Records logger calls so tests can assert on what was logged."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def critical(self, *args, **kwargs):
        self._record("critical", *args, **kwargs)

    def messages(self, level: str | None = None) -> list[str]:
        return [args[0] for lvl, args, _ in self.calls if level is None or lvl == level]

    def get_all_logged_content(self) -> str:
        """Concatenate all args and kwargs from all calls into one string."""
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)

    def has_extra_field(self, key: str) -> bool:
        for _, _, kwargs in self.calls:
            extra_fields = kwargs.get("extra", {}).get("extra_fields", {})
            if key in extra_fields:
                return True
        return False
