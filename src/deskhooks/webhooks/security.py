"""Webhook signing utilities.

Relayed events carry an HMAC-SHA256 signature over "{timestamp}.{body}"
so receivers can check that an event came from us and was not replayed.
"""

import hmac
import hashlib
import time
from typing import Dict, Mapping, Optional, Tuple

import httpx

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
USER_AGENT = "DeskHooks-Webhook/1.0"

DEFAULT_MAX_AGE_SECONDS = 300


def _digest(secret: str, timestamp: int, payload: str) -> str:
    key = secret.encode("utf-8")
    return hmac.new(key, f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()


def generate_signature(
    payload: str,
    secret: str,
    timestamp: Optional[int] = None
) -> Tuple[str, int]:
    """Sign a serialized webhook body.

    Returns:
        (hex signature, timestamp). The timestamp defaults to now.
    """
    signed_at = int(time.time()) if timestamp is None else timestamp
    return _digest(secret, signed_at, payload), signed_at


def verify_signature(
    payload: str,
    signature: str,
    secret: str,
    timestamp: int,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS
) -> bool:
    """Check a signature and reject stale timestamps."""
    if abs(time.time() - timestamp) > max_age_seconds:
        return False
    return hmac.compare_digest(signature, _digest(secret, timestamp, payload))


def generate_webhook_headers(payload: str, secret: str) -> Dict[str, str]:
    """Signature headers for an outbound webhook body."""
    signature, timestamp = generate_signature(payload, secret)

    return {
        SIGNATURE_HEADER: signature,
        TIMESTAMP_HEADER: str(timestamp),
        "User-Agent": USER_AGENT,
    }


def verify_webhook_headers(
    payload: str,
    headers: Mapping[str, str],
    secret: str,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
) -> bool:
    """Receiver side of generate_webhook_headers.

    Header names are matched case-insensitively. Missing or malformed
    headers fail verification.
    """
    headers = httpx.Headers(headers)
    signature = headers.get(SIGNATURE_HEADER)
    timestamp = headers.get(TIMESTAMP_HEADER)
    if not signature or not timestamp or not timestamp.isdigit():
        return False

    return verify_signature(payload, signature, secret, int(timestamp), max_age_seconds)
