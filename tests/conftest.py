"""Shared test fixtures for line-mention-relay."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import RelayConfig
from src.webhook.models import WebhookEvent
from src.webhook.signature import compute_signature

BOT_USER_ID = "Ubot0000000000000000000000000000"
USER_ID = "Uuser000000000000000000000000000"
GROUP_ID = "Cgroup00000000000000000000000000"
CHANNEL_SECRET = "test-channel-secret"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def relay_config() -> RelayConfig:
    return make_config()


# --- Factory functions for test data ---


def make_config(**kwargs: Any) -> RelayConfig:
    """Factory for RelayConfig with sensible defaults."""
    defaults: dict[str, Any] = {
        "channel_secret": CHANNEL_SECRET,
        "channel_access_token": "test-access-token",
        "bot_user_id": BOT_USER_ID,
        "openai_api_key": "sk-test",
    }
    defaults.update(kwargs)
    return RelayConfig(**defaults)


def make_mention(index: int, length: int, user_id: str | None = BOT_USER_ID) -> dict[str, Any]:
    mention: dict[str, Any] = {"index": index, "length": length, "type": "user"}
    if user_id is not None:
        mention["userId"] = user_id
    return mention


def make_text_message(
    text: str = "@Bot hello",
    mentions: list[dict[str, Any]] | None = None,
    message_id: str = "m1",
) -> dict[str, Any]:
    """Raw text message JSON; ``mentions=None`` omits the mention object."""
    message: dict[str, Any] = {"type": "text", "id": message_id, "text": text}
    if mentions is not None:
        message["mention"] = {"mentionees": mentions}
    return message


def make_event_payload(
    message: dict[str, Any] | None = None,
    event_type: str = "message",
    source: dict[str, Any] | None = None,
    reply_token: str = "reply-token-1",
    event_id: str = "evt-1",
    **extra: Any,
) -> dict[str, Any]:
    """Raw webhook event JSON; defaults to a group text message mentioning the bot."""
    payload: dict[str, Any] = {
        "type": event_type,
        "webhookEventId": event_id,
        "replyToken": reply_token,
        "source": source or {"type": "group", "groupId": GROUP_ID, "userId": USER_ID},
        "timestamp": 1700000000000,
        "mode": "active",
        "deliveryContext": {"isRedelivery": False},
    }
    if event_type == "message":
        payload["message"] = message or make_text_message(mentions=[make_mention(0, 4)])
    payload.update(extra)
    return payload


def make_event(**kwargs: Any) -> WebhookEvent:
    return WebhookEvent.model_validate(make_event_payload(**kwargs))


def make_body(events: list[dict[str, Any]]) -> bytes:
    return json.dumps({"destination": BOT_USER_ID, "events": events}).encode()


def sign(body: bytes, secret: str = CHANNEL_SECRET) -> dict[str, str]:
    return {"x-line-signature": compute_signature(body, secret)}
