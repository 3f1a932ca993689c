"""LINE webhook signature verification.

The platform signs the raw request body with HMAC-SHA256 keyed by the
channel secret and sends the base64 digest in ``x-line-signature``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNATURE_HEADER = "x-line-signature"


def compute_signature(body: bytes, secret: str) -> str:
    """Return the base64-encoded HMAC-SHA256 of ``body``."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without an early exit on the first differing position.

    A length mismatch returns immediately: it reveals nothing about the
    digest content.
    """
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Return True if ``signature`` matches the body's HMAC under ``secret``."""
    if not signature:
        return False
    return constant_time_equals(compute_signature(body, secret), signature)
