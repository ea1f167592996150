"""Relay configuration loaded once from the environment at startup.

Required env vars:
- LINE_CHANNEL_SECRET: HMAC key for X-Line-Signature verification
- LINE_CHANNEL_ACCESS_TOKEN: bearer token for the LINE Messaging API
- OPENCLAW_INGEST_URL: chat-completion endpoint
  (e.g. http://127.0.0.1:9383/v1/chat/completions)

Everything else is optional, see RelayConfig for defaults.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_LONG_TIMEOUT_MS = 60000
DEFAULT_LOADING_SECONDS = 20
DEFAULT_PENDING_TEXT = "已收到，稍後以推播回覆。"
DEFAULT_FAIL_TEXT = "系統忙碌中，請稍後再試。"
DEFAULT_WEBHOOK_PATH = "/webhook/line"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BODY_BYTES = 2 * 1024 * 1024

_REQUIRED = (
    "LINE_CHANNEL_SECRET",
    "LINE_CHANNEL_ACCESS_TOKEN",
    "OPENCLAW_INGEST_URL",
)


class ConfigError(Exception):
    """Raised when required configuration is missing."""


def _parse_int(raw: str | None, default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _parse_float(raw: str | None, default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def _parse_loading_seconds(raw: str | None) -> int:
    # Unset means the default; set but unparseable disables the indicator
    if raw is None or raw.strip() == "":
        return DEFAULT_LOADING_SECONDS
    return _parse_int(raw, 0)


def _parse_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() == "true"


def _parse_log_level(raw: str | None) -> str:
    name = (raw or "").strip().upper()
    # getLevelName maps known names to ints and anything else to a string
    if name and isinstance(logging.getLevelName(name), int):
        return name
    return DEFAULT_LOG_LEVEL


@dataclass(frozen=True)
class RelayConfig:
    """Immutable relay settings shared by every component."""

    channel_secret: str
    channel_access_token: str
    completion_url: str
    completion_api_key: str = ""
    completion_model: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    system_prompt: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    long_timeout_ms: int = DEFAULT_LONG_TIMEOUT_MS
    loading_seconds: int = DEFAULT_LOADING_SECONDS
    push_on_timeout: bool = False
    pending_text: str = DEFAULT_PENDING_TEXT
    fail_text: str = DEFAULT_FAIL_TEXT
    host: str = "0.0.0.0"
    port: int = 3000
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    shutdown_grace_seconds: float = 10.0
    log_level: str = DEFAULT_LOG_LEVEL
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES

    @property
    def timeout_seconds(self) -> float | None:
        """Short deadline tier in seconds, None when disabled."""
        return self.timeout_ms / 1000 if self.timeout_ms > 0 else None

    @property
    def long_timeout_seconds(self) -> float | None:
        """Long deadline tier in seconds, None when disabled."""
        return self.long_timeout_ms / 1000 if self.long_timeout_ms > 0 else None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelayConfig":
        """Build config from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ).

        Returns:
            Frozen RelayConfig.

        Raises:
            ConfigError: If any required variable is missing or empty.
        """
        env = os.environ if environ is None else environ

        missing = [name for name in _REQUIRED if not env.get(name)]
        if missing:
            raise ConfigError(f"Missing required config: {', '.join(missing)}")

        webhook_path = env.get("WEBHOOK_PATH") or DEFAULT_WEBHOOK_PATH
        if not webhook_path.startswith("/"):
            webhook_path = f"/{webhook_path}"

        return cls(
            channel_secret=env["LINE_CHANNEL_SECRET"],
            channel_access_token=env["LINE_CHANNEL_ACCESS_TOKEN"],
            completion_url=env["OPENCLAW_INGEST_URL"],
            completion_api_key=env.get("OPENCLAW_API_KEY", ""),
            completion_model=env.get("OPENCLAW_MODEL", ""),
            temperature=_parse_float(env.get("OPENCLAW_TEMPERATURE"), DEFAULT_TEMPERATURE),
            system_prompt=env.get("OPENCLAW_SYSTEM_PROMPT", ""),
            timeout_ms=_parse_int(env.get("OPENCLAW_TIMEOUT_MS"), DEFAULT_TIMEOUT_MS),
            long_timeout_ms=_parse_int(
                env.get("OPENCLAW_LONG_TIMEOUT_MS"), DEFAULT_LONG_TIMEOUT_MS
            ),
            loading_seconds=_parse_loading_seconds(env.get("LINE_LOADING_SECONDS")),
            push_on_timeout=_parse_bool(env.get("USE_PUSH_ON_TIMEOUT")),
            pending_text=env.get("LINE_PENDING_TEXT") or DEFAULT_PENDING_TEXT,
            fail_text=env.get("LINE_FAIL_TEXT") or DEFAULT_FAIL_TEXT,
            host=env.get("HOST") or "0.0.0.0",
            port=_parse_int(env.get("PORT"), 3000),
            webhook_path=webhook_path,
            shutdown_grace_seconds=_parse_float(env.get("SHUTDOWN_GRACE_SECONDS"), 10.0),
            log_level=_parse_log_level(env.get("LOG_LEVEL")),
            max_body_bytes=_parse_int(env.get("MAX_BODY_BYTES"), DEFAULT_MAX_BODY_BYTES),
        )
