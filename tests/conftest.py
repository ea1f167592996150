"""Shared pytest fixtures for linerelay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

RELAY_ENV_VARS = (
    "LINE_CHANNEL_SECRET",
    "LINE_CHANNEL_ACCESS_TOKEN",
    "OPENCLAW_INGEST_URL",
    "OPENCLAW_API_KEY",
    "OPENCLAW_MODEL",
    "OPENCLAW_TEMPERATURE",
    "OPENCLAW_SYSTEM_PROMPT",
    "OPENCLAW_TIMEOUT_MS",
    "OPENCLAW_LONG_TIMEOUT_MS",
    "LINE_LOADING_SECONDS",
    "USE_PUSH_ON_TIMEOUT",
    "LINE_PENDING_TEXT",
    "LINE_FAIL_TEXT",
    "PORT",
    "HOST",
    "WEBHOOK_PATH",
    "SHUTDOWN_GRACE_SECONDS",
    "LOG_LEVEL",
    "MAX_BODY_BYTES",
)


@pytest.fixture(autouse=True)
def _isolate_relay_env(monkeypatch):
    """Keep the developer's shell config out of tests that read os.environ."""
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
