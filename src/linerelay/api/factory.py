"""FastAPI application factory.

Builds every component from one RelayConfig and wires them onto app.state.
The shared httpx client and the detached task runner live for the app's
lifetime and are drained/closed in the lifespan shutdown.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response

from linerelay.completion.client import CompletionClient
from linerelay.config import RelayConfig
from linerelay.line.messaging import LineMessagingClient
from linerelay.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from linerelay.observability.logging import get_logger
from linerelay.observability.redaction import safe_log_context
from linerelay.relay.orchestrator import EventOrchestrator
from linerelay.relay.tasks import TaskRunner

from .routers import public
from .routes import webhooks_line

logger = get_logger(__name__)


def create_app(
    config: RelayConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the relay app.

    Args:
        config: Relay settings. If None, loaded with RelayConfig.from_env().
        http_client: Shared outbound client (tests inject one with a mock
            transport). If None, the app creates and owns one.

    Returns:
        Configured FastAPI application.

    Raises:
        ConfigError: If config is None and required env vars are missing.
    """
    if config is None:
        config = RelayConfig.from_env()

    owns_client = http_client is None
    http = http_client or httpx.AsyncClient()
    runner = TaskRunner()
    orchestrator = EventOrchestrator(
        config,
        CompletionClient(http, config.completion_url, config.completion_api_key),
        LineMessagingClient(http, config.channel_access_token),
        runner,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "relay started",
            extra={
                "extra_fields": safe_log_context(
                    webhook_path=config.webhook_path,
                    completion_url=config.completion_url,
                    push_on_timeout=config.push_on_timeout,
                )
            },
        )
        try:
            yield
        finally:
            await runner.shutdown(config.shutdown_grace_seconds)
            if owns_client:
                await http.aclose()

    app = FastAPI(
        title="LINE relay",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.runner = runner
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(webhooks_line.create_router(config.webhook_path))

    return app
