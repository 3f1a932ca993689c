"""Data models for LINE webhook deliveries.

Field names follow Python conventions; the platform's camelCase keys are
accepted through aliases. Unknown keys are ignored so new platform fields
never break parsing.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _Inbound(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class Mention(_Inbound):
    """Half-open span ``[index, index + length)`` in UTF-16 code units."""

    index: int
    length: int
    user_id: str | None = Field(default=None, alias="userId")
    type: str | None = None


class MentionSet(_Inbound):
    mentionees: list[Mention] = Field(default_factory=list)


class TextMessage(_Inbound):
    type: Literal["text"] = "text"
    id: str
    text: str
    mention: MentionSet | None = None


class UnsupportedMessage(_Inbound):
    """Any message content other than plain text (image, sticker, ...)."""

    type: str
    id: str | None = None


def _message_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "text" if value.get("type") == "text" else "other"
    return "text" if getattr(value, "type", None) == "text" else "other"


MessageContent = Annotated[
    Annotated[TextMessage, Tag("text")] | Annotated[UnsupportedMessage, Tag("other")],
    Discriminator(_message_kind),
]


class EventSource(_Inbound):
    type: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    group_id: str | None = Field(default=None, alias="groupId")
    room_id: str | None = Field(default=None, alias="roomId")

    @property
    def is_direct_chat(self) -> bool:
        """One-to-one conversation: a user id with no group or room."""
        return bool(self.user_id) and not self.group_id and not self.room_id


class DeliveryContext(_Inbound):
    is_redelivery: bool = Field(default=False, alias="isRedelivery")


class WebhookEvent(_Inbound):
    type: str
    webhook_event_id: str | None = Field(default=None, alias="webhookEventId")
    reply_token: str = Field(default="", alias="replyToken")
    source: EventSource = Field(default_factory=EventSource)
    timestamp: int | None = None
    mode: str | None = None
    delivery_context: DeliveryContext | None = Field(default=None, alias="deliveryContext")
    message: MessageContent | None = None

    @property
    def is_redelivery(self) -> bool:
        return self.delivery_context is not None and self.delivery_context.is_redelivery


class WebhookBatch(_Inbound):
    destination: str | None = None
    events: list[WebhookEvent]
