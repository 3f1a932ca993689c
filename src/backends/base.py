"""Capability interfaces for the outbound collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AnswerService(Protocol):
    """Produces answer text for a question."""

    async def answer(self, question: str) -> str:
        """Return non-empty answer text or raise ``BackendError``."""
        ...


@runtime_checkable
class ReplyDispatcher(Protocol):
    """Delivers text back to the conversation identified by a reply token."""

    async def reply(self, reply_token: str, text: str) -> None:
        """Send ``text`` or raise ``DeliveryError``."""
        ...
