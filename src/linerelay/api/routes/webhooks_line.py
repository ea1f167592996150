"""LINE webhook route.

Security:
- Bodies over the configured size limit are refused with 413 unread
- Signature verified over the raw body before anything is parsed
- Reply tokens, user ids and message text are never logged

The handler only verifies, parses and schedules. The response goes back to
LINE before any event task runs, so webhook latency never depends on the
completion backend.
"""

import json

from fastapi import APIRouter, Header, Request, Response

from linerelay.line.models import extract_events
from linerelay.line.signature import (
    SIGNATURE_HEADER,
    SignatureVerificationError,
    verify_signature,
)
from linerelay.observability.logging import get_logger
from linerelay.observability.redaction import safe_log_context

logger = get_logger(__name__)


class PayloadTooLargeError(Exception):
    """Raised when a webhook body exceeds the configured limit."""


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the raw body, stopping as soon as it passes max_bytes.

    A max_bytes of 0 or less disables the limit.

    Raises:
        PayloadTooLargeError: If Content-Length or the received bytes exceed
            the limit.
    """
    if max_bytes <= 0:
        return await request.body()

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeError(f"declared body of {declared} bytes")

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLargeError(f"body passed {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def line_webhook(
    request: Request,
    x_line_signature: str | None = Header(None, alias=SIGNATURE_HEADER),
) -> Response:
    """Receive a LINE webhook batch.

    Returns:
        200 once the signature passes and events are scheduled.
        413 if the body is over the size limit.
        403 if the body or signature is missing or wrong.
        500 if the batch cannot be parsed or scheduled.
    """
    state = request.app.state

    try:
        body_bytes = await read_limited_body(request, state.config.max_body_bytes)
    except PayloadTooLargeError as e:
        logger.warning(
            "webhook body too large",
            extra={"extra_fields": safe_log_context(error=str(e))},
        )
        return Response(status_code=413, content="payload too large")

    try:
        verify_signature(body_bytes, x_line_signature, state.config.channel_secret)
    except SignatureVerificationError as e:
        logger.warning(
            "invalid LINE signature",
            extra={"extra_fields": safe_log_context(error=str(e))},
        )
        return Response(status_code=403, content="invalid signature")

    try:
        events = extract_events(json.loads(body_bytes))
        for index, raw_event in enumerate(events):
            event_id = raw_event.get("webhookEventId") if isinstance(raw_event, dict) else None
            state.runner.spawn(
                f"event:{event_id or index}",
                state.orchestrator.handle_event(raw_event, index=index),
            )
    except Exception:
        logger.exception("webhook handler failed before response")
        return Response(status_code=500, content="server error")

    logger.info(
        "received events",
        extra={"extra_fields": safe_log_context(count=len(events))},
    )
    return Response(status_code=200, content="ok")


def create_router(webhook_path: str) -> APIRouter:
    """Build the webhook router mounted at the configured path."""
    router = APIRouter(tags=["webhooks"])
    router.add_api_route(webhook_path, line_webhook, methods=["POST"])
    return router
