"""OpenAI answer backends.

Two request shapes are supported behind the same ``AnswerService`` interface:
plain chat completions, and the Responses API with a ``file_search`` tool
pointed at a knowledge base (vector store).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from src.backends.base import AnswerService
    from src.config import RelayConfig

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"


class BackendError(Exception):
    """Raised when the answer backend fails or returns no usable text."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class _OpenAIAnswerService(ABC):
    """Shared transport for the OpenAI request variants."""

    endpoint = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_output_tokens: int = 400,
        system_prompt: str | None = None,
        prompt_id: str | None = None,
        timeout: float = 30.0,
        api_base: str = OPENAI_API_BASE,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_output_tokens = max_output_tokens
        self._system_prompt = system_prompt
        self._prompt_id = prompt_id
        self._timeout = timeout
        self._api_base = api_base

    @abstractmethod
    def build_request(self, question: str) -> dict[str, Any]:
        """Return the JSON body for ``question``."""
        ...

    @abstractmethod
    def extract_text(self, data: dict[str, Any]) -> str | None:
        """Pull the answer text out of a decoded response body."""
        ...

    async def answer(self, question: str) -> str:
        url = f"{self._api_base.rstrip('/')}/{self.endpoint}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    url, json=self.build_request(question), headers=headers,
                    timeout=self._timeout,
                )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise BackendError(f"OpenAI API unavailable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"OpenAI API request failed: {exc}") from exc

        if not resp.is_success:
            logger.error("OpenAI API error %s: %s", resp.status_code, resp.text)
            raise BackendError(
                f"OpenAI API failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            text = self.extract_text(resp.json())
        except (json.JSONDecodeError, AttributeError, IndexError, KeyError, TypeError) as exc:
            raise BackendError("OpenAI response is not parseable") from exc

        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise BackendError("OpenAI response is empty")
        return text


class ChatCompletionsAnswerService(_OpenAIAnswerService):
    """``/chat/completions`` with an optional stored prompt id."""

    endpoint = "chat/completions"

    def build_request(self, question: str) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        # A stored prompt carries its own instructions.
        if not self._prompt_id and self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": question})

        body: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self._max_output_tokens,
        }
        if self._prompt_id:
            body["prompt_id"] = self._prompt_id
        return body

    def extract_text(self, data: dict[str, Any]) -> str | None:
        return data["choices"][0].get("message", {}).get("content")


class ResponsesAnswerService(_OpenAIAnswerService):
    """``/responses`` grounded on a knowledge base through ``file_search``."""

    endpoint = "responses"

    def __init__(self, *args: Any, knowledge_base_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._knowledge_base_id = knowledge_base_id

    def build_request(self, question: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "input": [{"role": "user", "content": question}],
            "max_output_tokens": self._max_output_tokens,
        }
        if self._prompt_id:
            body["prompt"] = {"id": self._prompt_id}
        elif self._system_prompt:
            body["instructions"] = self._system_prompt
        if self._knowledge_base_id:
            body["tools"] = [{
                "type": "file_search",
                "vector_store_ids": [self._knowledge_base_id],
            }]
        return body

    def extract_text(self, data: dict[str, Any]) -> str | None:
        if isinstance(data.get("output_text"), str):
            return data["output_text"]
        parts = [
            content.get("text", "")
            for item in data.get("output", [])
            if item.get("type") == "message"
            for content in item.get("content", [])
            if content.get("type") == "output_text"
        ]
        return "".join(parts)


def build_answer_service(config: RelayConfig) -> AnswerService:
    """Pick the backend variant for the configured knowledge base."""
    common: dict[str, Any] = {
        "api_key": config.openai_api_key,
        "model": config.openai_model,
        "max_output_tokens": config.max_output_tokens,
        "system_prompt": config.system_prompt,
        "prompt_id": config.openai_prompt_id,
        "timeout": config.http_timeout_seconds,
    }
    if config.knowledge_base_id:
        return ResponsesAnswerService(knowledge_base_id=config.knowledge_base_id, **common)
    return ChatCompletionsAnswerService(**common)
