"""WeCom callback signature verification.

WeCom signs every callback with ``msg_signature``: the SHA-1 hex digest of
the lexicographically sorted concatenation of the account token, the
``timestamp`` and ``nonce`` query parameters, and the encrypted payload
(``echostr`` for URL verification, ``encrypt`` for message callbacks).
"""

from __future__ import annotations

import hashlib
import hmac
import time


def compute_wecom_signature(token: str, timestamp: str, nonce: str, encrypt: str) -> str:
    parts = sorted([token, timestamp, nonce, encrypt])
    return hashlib.sha1("".join(parts).encode()).hexdigest()


def verify_wecom_signature(
    token: str,
    signature: str | None,
    timestamp: str | None,
    nonce: str | None,
    encrypt: str | None,
    *,
    max_age_seconds: int | None = None,
) -> bool:
    """Verify a WeCom ``msg_signature``.

    Args:
        token: Callback token configured for the account.
        signature: ``msg_signature`` query parameter.
        timestamp: ``timestamp`` query parameter (seconds).
        nonce: ``nonce`` query parameter.
        encrypt: Encrypted payload the signature covers.
        max_age_seconds: Optional replay window; disabled by default because
            WeCom retries callbacks with their original timestamp.
    """
    if not token or not signature or not timestamp or not nonce or not encrypt:
        return False
    if max_age_seconds is not None:
        try:
            ts = int(timestamp)
        except (ValueError, TypeError):
            return False
        if abs(time.time() - ts) > max_age_seconds:
            return False
    expected = compute_wecom_signature(token, timestamp, nonce, encrypt)
    return hmac.compare_digest(signature, expected)
