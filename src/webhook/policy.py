"""Decide whether a webhook event deserves an automated reply."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.webhook.models import TextMessage, WebhookEvent

if TYPE_CHECKING:
    from src.config import RelayConfig


def is_bot_mentioned(message: TextMessage, bot_user_id: str) -> bool:
    if message.mention is None:
        return False
    return any(m.user_id == bot_user_id for m in message.mention.mentionees)


def should_respond(event: WebhookEvent, config: RelayConfig) -> bool:
    """Apply the reply rules in order.

    1. Only ``message`` events.
    2. Only text messages.
    3. Direct chats reply unconditionally when ``direct_chat_allowed``.
    4. Otherwise the bot itself must be mentioned.
    """
    if event.type != "message":
        return False
    if not isinstance(event.message, TextMessage):
        return False
    if event.source.is_direct_chat and config.direct_chat_allowed:
        return True
    return is_bot_mentioned(event.message, config.bot_user_id)
