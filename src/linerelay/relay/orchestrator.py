"""Per-event relay pipeline: LINE text message -> completion -> reply or push.

Flow for one actionable event:

    loading indicator (detached, best effort)
    complete(short deadline)
      ok       -> reply(text)                          => replied
      timeout  -> reply(pending) -> complete(long)     (push-on-timeout + userId)
                    ok   -> push(text)                 => deferred-and-pushed
                    fail -> push(fail_text)            => deferred-and-push-failed
      other    -> fallback reply(fail_text)            => failed-with-fallback-reply
                                                          | failed-fallback-also-failed

Once the pending reply has consumed the reply token, only push is used.
Every path makes at most one fallback attempt and never raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from linerelay.completion.client import (
    CompletionClient,
    CompletionRequest,
    CompletionTimeoutError,
    UpstreamError,
)
from linerelay.config import RelayConfig
from linerelay.line.messaging import LineApiError, LineMessagingClient
from linerelay.line.models import InboundEvent, MalformedEventError, parse_event
from linerelay.observability.logging import get_logger, hash_identifier
from linerelay.observability.redaction import safe_log_context
from linerelay.relay.tasks import TaskRunner

logger = get_logger(__name__)

# Sent when the backend answers with empty text
EMPTY_REPLY_TEXT = "（沒有回覆內容）"


class DeliveryOutcome(str, Enum):
    """Terminal state of one event. Reported in logs, never stored."""

    SKIPPED = "skipped"
    REPLIED = "replied"
    DEFERRED_AND_PUSHED = "deferred-and-pushed"
    DEFERRED_AND_PUSH_FAILED = "deferred-and-push-failed"
    FAILED_WITH_FALLBACK_REPLY = "failed-with-fallback-reply"
    FAILED_FALLBACK_ALSO_FAILED = "failed-fallback-also-failed"


def _error_context(error: BaseException) -> dict[str, Any]:
    ctx: dict[str, Any] = {"error_type": type(error).__name__}
    if isinstance(error, (UpstreamError, LineApiError)):
        ctx["status_code"] = error.status_code
        ctx["error_body"] = error.body
    else:
        ctx["error"] = str(error)
    return ctx


class EventOrchestrator:
    """Runs the relay pipeline for one inbound event at a time.

    Stateless across events: concurrent calls share only the HTTP clients.
    """

    def __init__(
        self,
        config: RelayConfig,
        completion: CompletionClient,
        messaging: LineMessagingClient,
        runner: TaskRunner,
    ):
        self._config = config
        self._completion = completion
        self._messaging = messaging
        self._runner = runner

    def build_request(self, text: str, user_id: str) -> CompletionRequest:
        return CompletionRequest.for_text(
            text,
            system_prompt=self._config.system_prompt,
            temperature=self._config.temperature,
            model=self._config.completion_model,
            user=user_id,
        )

    async def handle_event(self, raw_event: Any, *, index: int = 0) -> DeliveryOutcome:
        """Process one raw webhook event to a terminal outcome. Never raises."""
        try:
            event = parse_event(raw_event)
        except MalformedEventError as e:
            logger.warning(
                "malformed event skipped",
                extra={"extra_fields": safe_log_context(index=index, error=str(e))},
            )
            return DeliveryOutcome.SKIPPED

        if not event.is_text_message:
            logger.debug(
                "non-text event ignored",
                extra={
                    "extra_fields": safe_log_context(
                        index=index,
                        kind=event.kind,
                        message_type=event.message.type if event.message else None,
                    )
                },
            )
            return DeliveryOutcome.SKIPPED

        outcome = await self._relay(event, index)
        logger.info(
            "event processed",
            extra={
                "extra_fields": safe_log_context(
                    **self._log_context(event, index), outcome=outcome.value
                )
            },
        )
        return outcome

    def _log_context(self, event: InboundEvent, index: int) -> dict[str, Any]:
        return {
            "index": index,
            "event_id": event.webhook_event_id or "",
            "user_hash": hash_identifier(event.user_id),
            "text_len": len(event.text),
            "redelivery": event.delivery_context.is_redelivery,
        }

    async def _relay(self, event: InboundEvent, index: int) -> DeliveryOutcome:
        text = event.text
        user_id = event.user_id
        reply_token = event.reply_token or ""
        log_ctx = self._log_context(event, index)

        try:
            if self._config.loading_seconds > 0 and user_id:
                self._runner.spawn(
                    f"loading:{event.webhook_event_id or index}",
                    self._start_loading(user_id, log_ctx),
                )

            request = self.build_request(text, user_id)

            try:
                reply_text = await self._completion.complete(
                    request, timeout=self._config.timeout_seconds
                )
            except CompletionTimeoutError:
                if not (self._config.push_on_timeout and user_id):
                    raise
                await self._messaging.reply(reply_token, self._config.pending_text)
                logger.info(
                    "deferred to push",
                    extra={"extra_fields": safe_log_context(**log_ctx)},
                )
                return await self._deferred_push(request, user_id, log_ctx)

            await self._messaging.reply(reply_token, reply_text or EMPTY_REPLY_TEXT)
            return DeliveryOutcome.REPLIED

        except Exception as e:
            logger.error(
                "event processing failed",
                extra={"extra_fields": safe_log_context(**log_ctx, **_error_context(e))},
            )
            return await self._fallback_reply(reply_token, log_ctx)

    async def _deferred_push(
        self,
        request: CompletionRequest,
        user_id: str,
        log_ctx: dict[str, Any],
    ) -> DeliveryOutcome:
        # The reply token is spent; from here on only push may reach the user
        try:
            reply_text = await self._completion.complete(
                request, timeout=self._config.long_timeout_seconds
            )
            await self._messaging.push(user_id, reply_text or EMPTY_REPLY_TEXT)
            return DeliveryOutcome.DEFERRED_AND_PUSHED
        except Exception as e:
            logger.error(
                "push flow failed",
                extra={"extra_fields": safe_log_context(**log_ctx, **_error_context(e))},
            )

        try:
            await self._messaging.push(user_id, self._config.fail_text)
        except Exception as e:
            logger.error(
                "push fallback failed",
                extra={"extra_fields": safe_log_context(**log_ctx, **_error_context(e))},
            )
        return DeliveryOutcome.DEFERRED_AND_PUSH_FAILED

    async def _fallback_reply(
        self,
        reply_token: str,
        log_ctx: dict[str, Any],
    ) -> DeliveryOutcome:
        try:
            await self._messaging.reply(reply_token, self._config.fail_text)
        except Exception as e:
            logger.error(
                "fallback reply failed",
                extra={"extra_fields": safe_log_context(**log_ctx, **_error_context(e))},
            )
            return DeliveryOutcome.FAILED_FALLBACK_ALSO_FAILED
        return DeliveryOutcome.FAILED_WITH_FALLBACK_REPLY

    async def _start_loading(self, user_id: str, log_ctx: dict[str, Any]) -> None:
        """Best-effort loading indicator. Failures are logged, never raised."""
        try:
            await self._messaging.start_loading(user_id, self._config.loading_seconds)
        except LineApiError as e:
            logger.warning(
                "loading indicator failed",
                extra={"extra_fields": safe_log_context(**log_ctx, **_error_context(e))},
            )
