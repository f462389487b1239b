"""Verification of Slack request signatures."""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable

SIGNATURE_VERSION = "v0"
MAX_CLOCK_SKEW_SECONDS = 60 * 5


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_signature(
    signing_secret: str,
    *,
    timestamp: str | None,
    signature: str | None,
    body: bytes,
    now: Callable[[], float] = time.time,
) -> bool:
    """Return whether ``signature`` is a fresh Slack signature of ``body``."""

    if not signing_secret or not timestamp or not signature:
        return False
    try:
        issued_at = int(timestamp)
    except ValueError:
        return False
    if abs(now() - issued_at) > MAX_CLOCK_SKEW_SECONDS:
        return False
    expected = compute_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


__all__ = ["MAX_CLOCK_SKEW_SECONDS", "compute_signature", "verify_signature"]
