"""Tests for the OpenAI answer backends."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.backends.base import AnswerService
from src.backends.openai import (
    BackendError,
    ChatCompletionsAnswerService,
    ResponsesAnswerService,
    _OpenAIAnswerService,
    build_answer_service,
)
from tests.conftest import make_config


def _chat_service(**kwargs: Any) -> ChatCompletionsAnswerService:
    defaults: dict[str, Any] = {
        "api_key": "sk-test",
        "model": "gpt-4o-mini",
        "max_output_tokens": 400,
        "system_prompt": "You are helpful.",
        "timeout": 10.0,
    }
    defaults.update(kwargs)
    return ChatCompletionsAnswerService(**defaults)


def _responses_service(**kwargs: Any) -> ResponsesAnswerService:
    defaults: dict[str, Any] = {
        "api_key": "sk-test",
        "model": "gpt-4o-mini",
        "max_output_tokens": 300,
        "system_prompt": "You are helpful.",
        "knowledge_base_id": "vs_123",
    }
    defaults.update(kwargs)
    return ResponsesAnswerService(**defaults)


def _patched_client(response: httpx.Response | Exception) -> tuple[Any, AsyncMock]:
    patcher = patch("src.backends.openai.httpx.AsyncClient")
    mock_client_cls = patcher.start()
    mock_client = AsyncMock()
    if isinstance(response, Exception):
        mock_client.post.side_effect = response
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return patcher, mock_client


@pytest.fixture
def client_factory():
    patchers: list[Any] = []

    def _make(response: httpx.Response | Exception) -> AsyncMock:
        patcher, mock_client = _patched_client(response)
        patchers.append(patcher)
        return mock_client

    yield _make
    for patcher in patchers:
        patcher.stop()


def _chat_response(content: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json={"choices": [{"message": {"content": content}}]})


class TestChatCompletions:
    def test_request_includes_system_prompt(self) -> None:
        body = _chat_service().build_request("hi")
        assert body == {
            "model": "gpt-4o-mini",
            "messages": [
                {"role": "system", "content": "You are helpful."},
                {"role": "user", "content": "hi"},
            ],
            "max_tokens": 400,
        }

    def test_prompt_id_replaces_system_prompt(self) -> None:
        body = _chat_service(prompt_id="pmpt_1").build_request("hi")
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert body["prompt_id"] == "pmpt_1"

    @pytest.mark.asyncio
    async def test_returns_stripped_content(self, client_factory) -> None:
        client = client_factory(_chat_response("  Paris.  \n"))
        assert await _chat_service().answer("capital of France?") == "Paris."

        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["timeout"] == 10.0
        assert kwargs["json"]["messages"][-1]["content"] == "capital of France?"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, client_factory) -> None:
        client_factory(httpx.Response(429, text="rate limited"))
        with pytest.raises(BackendError) as exc_info:
            await _chat_service().answer("q")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_content_raises(self, client_factory, content: Any) -> None:
        client_factory(_chat_response(content))
        with pytest.raises(BackendError, match="empty"):
            await _chat_service().answer("q")

    @pytest.mark.asyncio
    async def test_missing_choices_raises(self, client_factory) -> None:
        client_factory(httpx.Response(200, json={"choices": []}))
        with pytest.raises(BackendError, match="parseable"):
            await _chat_service().answer("q")

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self, client_factory) -> None:
        client_factory(httpx.Response(200, text="<html>"))
        with pytest.raises(BackendError):
            await _chat_service().answer("q")

    @pytest.mark.asyncio
    async def test_timeout_raises(self, client_factory) -> None:
        client_factory(httpx.ReadTimeout("slow"))
        with pytest.raises(BackendError, match="unavailable"):
            await _chat_service().answer("q")


class TestResponses:
    def test_request_uses_file_search(self) -> None:
        body = _responses_service().build_request("hi")
        assert body == {
            "model": "gpt-4o-mini",
            "input": [{"role": "user", "content": "hi"}],
            "max_output_tokens": 300,
            "instructions": "You are helpful.",
            "tools": [{"type": "file_search", "vector_store_ids": ["vs_123"]}],
        }

    def test_prompt_id_sent_as_prompt_reference(self) -> None:
        body = _responses_service(prompt_id="pmpt_1").build_request("hi")
        assert body["prompt"] == {"id": "pmpt_1"}
        assert "instructions" not in body

    @pytest.mark.asyncio
    async def test_collects_output_text(self, client_factory) -> None:
        client = client_factory(httpx.Response(200, json={
            "output": [
                {"type": "file_search_call", "id": "fs_1"},
                {"type": "message", "content": [
                    {"type": "output_text", "text": "Part one. "},
                    {"type": "output_text", "text": "Part two."},
                ]},
            ],
        }))
        assert await _responses_service().answer("q") == "Part one. Part two."
        assert client.post.call_args.args[0] == "https://api.openai.com/v1/responses"

    @pytest.mark.asyncio
    async def test_prefers_output_text_field(self, client_factory) -> None:
        client_factory(httpx.Response(200, json={"output_text": "direct", "output": []}))
        assert await _responses_service().answer("q") == "direct"

    @pytest.mark.asyncio
    async def test_no_message_output_raises(self, client_factory) -> None:
        client_factory(httpx.Response(200, json={"output": []}))
        with pytest.raises(BackendError, match="empty"):
            await _responses_service().answer("q")


def test_shared_base_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        _OpenAIAnswerService("sk-test", "gpt-4o-mini")  # type: ignore[abstract]


class TestBuildAnswerService:
    def test_chat_completions_without_knowledge_base(self) -> None:
        service = build_answer_service(make_config())
        assert isinstance(service, ChatCompletionsAnswerService)
        assert isinstance(service, AnswerService)

    def test_responses_with_knowledge_base(self) -> None:
        service = build_answer_service(make_config(knowledge_base_id="vs_9"))
        assert isinstance(service, ResponsesAnswerService)
        assert service.build_request("q")["tools"][0]["vector_store_ids"] == ["vs_9"]

    def test_config_values_threaded_through(self) -> None:
        config = make_config(openai_model="gpt-4.1", max_output_tokens=123, openai_prompt_id="p")
        body = build_answer_service(config).build_request("q")  # type: ignore[attr-defined]
        assert body["model"] == "gpt-4.1"
        assert body["max_tokens"] == 123
        assert body["prompt_id"] == "p"
