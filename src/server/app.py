"""FastAPI application receiving LINE webhook deliveries."""

from __future__ import annotations

import logging
import os

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from src.audit.logger import AuditLogger
from src.backends.base import AnswerService, ReplyDispatcher
from src.backends.line import LineReplyDispatcher
from src.backends.openai import build_answer_service
from src.config import RelayConfig
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.webhook.orchestrator import EventOrchestrator
from src.webhook.parser import MalformedPayloadError, parse_webhook_batch
from src.webhook.signature import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhook"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    config = RelayConfig.from_env()
    audit_log = os.environ.get("AUDIT_LOG_PATH")
    audit_logger = AuditLogger.from_env(audit_log) if audit_log else None
    return create_app(config, audit_logger=audit_logger)


def create_app(
    config: RelayConfig,
    answer_service: AnswerService | None = None,
    reply_dispatcher: ReplyDispatcher | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the webhook app; collaborators default to the OpenAI and LINE clients."""
    app = FastAPI(docs_url=None, redoc_url=None)
    orchestrator = EventOrchestrator(
        config,
        answer_service or build_answer_service(config),
        reply_dispatcher or LineReplyDispatcher(
            config.channel_access_token, timeout=config.http_timeout_seconds,
        ),
        audit_logger=audit_logger,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(WEBHOOK_PATH)
    async def webhook(request: Request, background_tasks: BackgroundTasks) -> Response:
        body = await request.body()
        source_ip = request.client.host if request.client else None

        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), config.channel_secret):
            _audit_rejection(
                audit_logger, AuditEventType.AUTH_FAILURE, source_ip, RiskLevel.HIGH,
                {"reason": "invalid_signature"},
            )
            return PlainTextResponse("Invalid signature", status_code=401)

        try:
            batch = parse_webhook_batch(body)
        except MalformedPayloadError as exc:
            logger.error("Failed to parse webhook payload: %s", exc.reason)
            _audit_rejection(
                audit_logger, AuditEventType.PAYLOAD_REJECTED, source_ip, RiskLevel.MEDIUM,
                {"reason": exc.reason},
            )
            return PlainTextResponse("Bad Request", status_code=400)

        # The platform is acknowledged either way so it never retries the batch.
        if config.ack_before_processing:
            background_tasks.add_task(orchestrator.handle_batch, batch)
        else:
            await orchestrator.handle_batch(batch)
        return PlainTextResponse("OK", status_code=200)

    return app


def _audit_rejection(
    audit_logger: AuditLogger | None,
    event_type: AuditEventType,
    source_ip: str | None,
    risk_level: RiskLevel,
    details: dict[str, object],
) -> None:
    if audit_logger:
        audit_logger.log(AuditEvent(
            event_type=event_type,
            source_ip=source_ip,
            action=f"POST {WEBHOOK_PATH}",
            result="rejected",
            risk_level=risk_level,
            details=details,
        ))
