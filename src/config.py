"""Process-wide relay configuration.

Loaded once at startup from environment variables and passed explicitly to
every component. The model is frozen; nothing mutates it while requests are
being handled.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

_TRUTHY = frozenset({"true", "1", "yes", "on"})

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SYSTEM_PROMPT = "你是一個樂於助人的聊天助手。"


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def parse_flag(value: str | None) -> bool:
    """Normalize a free-form flag value; only explicit truthy words enable it."""
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


class RelayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel_secret: str
    channel_access_token: str
    bot_user_id: str
    direct_chat_allowed: bool = False

    openai_api_key: str
    openai_model: str = DEFAULT_MODEL
    openai_prompt_id: str | None = None
    knowledge_base_id: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_output_tokens: int = Field(default=400, gt=0)

    http_timeout_seconds: float = Field(default=30.0, gt=0)
    ack_before_processing: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayConfig:
        env = os.environ if environ is None else environ

        def required(name: str) -> str:
            value = env.get(name, "").strip()
            if not value:
                raise ConfigError(f"Missing required environment variable: {name}")
            return value

        def optional(name: str) -> str | None:
            value = env.get(name, "").strip()
            return value or None

        def number(name: str, default: str, kind: type) -> int | float:
            raw = env.get(name, "").strip() or default
            try:
                return kind(raw)
            except ValueError as exc:
                raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc

        values = {
            "channel_secret": required("LINE_CHANNEL_SECRET"),
            "channel_access_token": required("LINE_CHANNEL_ACCESS_TOKEN"),
            "bot_user_id": required("LINE_BOT_USER_ID"),
            "direct_chat_allowed": parse_flag(env.get("LINE_DIRECT_CHAT_REPLY")),
            "openai_api_key": required("OPENAI_API_KEY"),
            "openai_model": optional("OPENAI_MODEL") or DEFAULT_MODEL,
            "openai_prompt_id": optional("OPENAI_PROMPT_ID"),
            "knowledge_base_id": optional("OPENAI_VECTOR_STORE_ID"),
            "system_prompt": optional("OPENAI_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            "max_output_tokens": number("OPENAI_MAX_TOKENS", "400", int),
            "http_timeout_seconds": number("HTTP_TIMEOUT_SECONDS", "30", float),
            "ack_before_processing": parse_flag(env.get("ACK_BEFORE_PROCESSING")),
        }
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
