"""LINE webhook event models.

Only the fields the relay acts on are modelled; everything else in the
payload is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class MalformedEventError(Exception):
    """Raised when a webhook event does not have the expected shape."""


class _LineModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EventSource(_LineModel):
    type: str | None = None
    user_id: str | None = Field(default=None, alias="userId")


class EventMessage(_LineModel):
    type: str
    id: str | None = None
    text: str | None = None


class DeliveryContext(_LineModel):
    is_redelivery: bool = Field(default=False, alias="isRedelivery")


class InboundEvent(_LineModel):
    """A single event from the webhook body's `events` array."""

    kind: str = Field(alias="type")
    message: EventMessage | None = None
    source: EventSource = Field(default_factory=EventSource)
    reply_token: str | None = Field(default=None, alias="replyToken")
    webhook_event_id: str | None = Field(default=None, alias="webhookEventId")
    delivery_context: DeliveryContext = Field(
        default_factory=DeliveryContext, alias="deliveryContext"
    )

    @property
    def is_text_message(self) -> bool:
        return (
            self.kind == "message"
            and self.message is not None
            and self.message.type == "text"
        )

    @property
    def text(self) -> str:
        if self.message is None:
            return ""
        return self.message.text or ""

    @property
    def user_id(self) -> str:
        return self.source.user_id or ""


def parse_event(raw: Any) -> InboundEvent:
    """Validate one raw event.

    Raises:
        MalformedEventError: If the event is not an object or lacks `type`.
    """
    try:
        return InboundEvent.model_validate(raw)
    except ValidationError as e:
        raise MalformedEventError(
            f"invalid event shape ({e.error_count()} errors)"
        ) from e


def extract_events(payload: Any) -> list[Any]:
    """Return the raw `events` list of a webhook body.

    A body without an `events` array is an empty batch. Events are returned
    unvalidated so one malformed entry cannot reject its siblings.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise ValueError("webhook body is not a JSON object")
    events = payload.get("events")
    return events if isinstance(events, list) else []
