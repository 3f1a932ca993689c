"""Decode a raw webhook body into a validated ``WebhookBatch``."""

from __future__ import annotations

from pydantic import ValidationError

from src.webhook.models import WebhookBatch


class MalformedPayloadError(Exception):
    """Raised when a webhook body is not a well-formed event batch."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed webhook payload: {reason}")


def parse_webhook_batch(body: bytes) -> WebhookBatch:
    """Parse and shape-check a webhook body.

    Mention spans are not bounds-checked here; that happens per message when
    the question is extracted.
    """
    try:
        return WebhookBatch.model_validate_json(body)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid payload")
        raise MalformedPayloadError(f"{location}: {message}" if location else message) from exc
