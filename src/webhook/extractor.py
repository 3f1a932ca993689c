"""Derive the question text from a message by removing mention markers.

Mention offsets are counted in UTF-16 code units, so the text is held as
UTF-16-LE bytes while spans are cut out; each code unit is two bytes.
"""

from __future__ import annotations

from src.webhook.models import Mention, TextMessage

_ENCODING = "utf-16-le"
_UNIT = 2


class InvalidMentionError(Exception):
    """Raised when mention spans overlap or fall outside the message text."""

    def __init__(self, mention: Mention, reason: str) -> None:
        self.mention = mention
        self.reason = reason
        super().__init__(
            f"Invalid mention span index={mention.index} length={mention.length}: {reason}"
        )


def _splits_surrogate_pair(units: bytes, position: int) -> bool:
    """True if ``position`` falls between the halves of a surrogate pair."""
    offset = position * _UNIT
    if offset <= 0 or offset >= len(units):
        return False
    code_unit = int.from_bytes(units[offset:offset + _UNIT], "little")
    return 0xDC00 <= code_unit <= 0xDFFF


def extract_question(message: TextMessage) -> str:
    """Return the message text with every mention span removed.

    Without a mention object the raw text is returned untouched; otherwise
    the remainder is stripped. An empty string means there is no question.
    """
    if message.mention is None:
        return message.text

    units = message.text.encode(_ENCODING, errors="surrogatepass")
    buffer = bytearray(units)
    # Removing from the highest offset down keeps lower offsets valid.
    bound = len(units) // _UNIT
    # Longer spans first on a shared index, so zero-length spans never shadow them.
    ordered = sorted(
        message.mention.mentionees, key=lambda m: (m.index, m.length), reverse=True,
    )
    for mention in ordered:
        start, end = mention.index, mention.index + mention.length
        if mention.index < 0 or mention.length < 0:
            raise InvalidMentionError(mention, "negative offset")
        if end > bound:
            reason = "overlaps another mention" if bound * _UNIT < len(units) else "out of range"
            raise InvalidMentionError(mention, reason)
        if _splits_surrogate_pair(units, start) or _splits_surrogate_pair(units, end):
            raise InvalidMentionError(mention, "splits a surrogate pair")
        del buffer[start * _UNIT:end * _UNIT]
        bound = start

    return bytes(buffer).decode(_ENCODING, errors="surrogatepass").strip()
