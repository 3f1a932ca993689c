"""LINE Messaging API reply delivery."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

LINE_REPLY_URL = "https://api.line.me/v2/bot/message/reply"


class DeliveryError(Exception):
    """Raised when the reply endpoint rejects or cannot receive a reply."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class LineReplyDispatcher:
    """Sends a single text reply per reply token. No retries: tokens are single-use."""

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        reply_url: str = LINE_REPLY_URL,
    ) -> None:
        self._access_token = access_token
        self._timeout = timeout
        self._reply_url = reply_url

    async def reply(self, reply_token: str, text: str) -> None:
        if not reply_token:
            logger.warning("Skipping reply: event has no reply token")
            return

        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        }
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._reply_url, json=payload, headers=headers, timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"LINE reply request failed: {exc}") from exc

        if not resp.is_success:
            logger.error("LINE reply error %s: %s", resp.status_code, resp.text)
            raise DeliveryError(
                f"LINE reply failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
