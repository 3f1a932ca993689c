"""Per-event reply pipeline and concurrent batch fan-out.

Pipeline stages for each event:
1. Eligibility policy (message type, direct chat, bot mention)
2. Question extraction (mention removal)
3. Answer backend
4. Truncation to the platform's single-message cap
5. Reply delivery
6. Audit log

Failures are contained per event: one event failing never prevents its
siblings in the same batch from being answered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, cast

from src.backends.line import DeliveryError
from src.backends.openai import BackendError
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.webhook.extractor import InvalidMentionError, extract_question
from src.webhook.models import TextMessage, WebhookBatch, WebhookEvent
from src.webhook.policy import should_respond

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.backends.base import AnswerService, ReplyDispatcher
    from src.config import RelayConfig

logger = logging.getLogger(__name__)

MAX_REPLY_CHARS = 1900


class EventOutcome(str, Enum):
    REPLIED = "replied"
    IGNORED = "ignored"
    NO_QUESTION = "no_question"
    INVALID_MENTION = "invalid_mention"
    BACKEND_FAILED = "backend_failed"
    DELIVERY_FAILED = "delivery_failed"
    FAILED = "failed"


_FAILURES = frozenset({
    EventOutcome.INVALID_MENTION,
    EventOutcome.BACKEND_FAILED,
    EventOutcome.DELIVERY_FAILED,
    EventOutcome.FAILED,
})


@dataclass
class EventResult:
    event_id: str | None
    outcome: EventOutcome
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome not in _FAILURES


def truncate_reply(text: str, limit: int = MAX_REPLY_CHARS) -> str:
    return text[:limit]


class EventOrchestrator:
    """Runs the reply pipeline for each event of a webhook batch."""

    def __init__(
        self,
        config: RelayConfig,
        answer_service: AnswerService,
        reply_dispatcher: ReplyDispatcher,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._config = config
        self._answer = answer_service
        self._reply = reply_dispatcher
        self._audit = audit_logger

    async def handle_batch(self, batch: WebhookBatch) -> list[EventResult]:
        """Process every event concurrently and wait for all of them to settle.

        Results are returned in arrival order.
        """
        if not batch.events:
            return []

        settled = await asyncio.gather(
            *(self.handle_event(event) for event in batch.events),
            return_exceptions=True,
        )

        results: list[EventResult] = []
        for event, item in zip(batch.events, settled, strict=True):
            if isinstance(item, BaseException):
                if not isinstance(item, Exception):
                    raise item
                logger.error(
                    "Unexpected error handling event %s",
                    event.webhook_event_id, exc_info=item,
                )
                item = EventResult(event.webhook_event_id, EventOutcome.FAILED, repr(item))
            results.append(item)

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning("%d of %d webhook events failed", failed, len(results))
        return results

    async def handle_event(self, event: WebhookEvent) -> EventResult:
        if not should_respond(event, self._config):
            return EventResult(event.webhook_event_id, EventOutcome.IGNORED)
        message = cast(TextMessage, event.message)

        if event.is_redelivery:
            logger.debug("Processing redelivered event %s", event.webhook_event_id)

        try:
            question = extract_question(message).strip()
        except InvalidMentionError as exc:
            logger.warning("Skipping event %s: %s", event.webhook_event_id, exc)
            return await self._finish(event, EventOutcome.INVALID_MENTION, str(exc))

        if not question:
            return await self._finish(event, EventOutcome.NO_QUESTION)

        try:
            answer = await self._answer.answer(question)
        except BackendError as exc:
            logger.error("Answer backend failed for event %s: %s", event.webhook_event_id, exc)
            return await self._finish(event, EventOutcome.BACKEND_FAILED, str(exc))

        try:
            await self._reply.reply(event.reply_token, truncate_reply(answer))
        except DeliveryError as exc:
            logger.error("Reply delivery failed for event %s: %s", event.webhook_event_id, exc)
            return await self._finish(event, EventOutcome.DELIVERY_FAILED, str(exc))

        return await self._finish(event, EventOutcome.REPLIED)

    async def _finish(
        self, event: WebhookEvent, outcome: EventOutcome, error: str | None = None,
    ) -> EventResult:
        result = EventResult(event.webhook_event_id, outcome, error)
        if self._audit:
            await asyncio.to_thread(self._audit.log, AuditEvent(
                event_type=AuditEventType.EVENT_PROCESSED,
                user_id=event.source.user_id,
                action="reply",
                result="success" if result.ok else "failure",
                risk_level=RiskLevel.INFO if result.ok else RiskLevel.MEDIUM,
                details={
                    "event_id": event.webhook_event_id,
                    "outcome": outcome.value,
                    "group_id": event.source.group_id,
                    "room_id": event.source.room_id,
                    "error": error,
                },
            ))
        return result
