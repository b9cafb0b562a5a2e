"""Per-endpoint failure counts.

Counts are process-local and lost on restart. The dispatcher receives
a store by reference so tests and tenants can keep isolated state.
"""

from typing import Dict, List, Optional
import json
import logging

from .models import WebhookPayload, FailedWebhook

logger = logging.getLogger(__name__)

# Characters of the serialized body that take part in the signature
SIGNATURE_BODY_CHARS = 50


def webhook_signature(payload: WebhookPayload) -> str:
    """Build the key that identifies an endpoint in the failure store.

    The key is the URL joined to the first characters of the compact
    JSON body, so the same URL with different bodies is tracked apart.
    """
    body = json.dumps(payload.data, separators=(",", ":"), ensure_ascii=False, default=str)
    return f"{payload.url}-{body[:SIGNATURE_BODY_CHARS]}"


class WebhookFailureStore:
    """In-memory map of endpoint signature to failed delivery count.

    Example:
        store = WebhookFailureStore()
        store.increment("https://example.com/hook-{}")
        store.get("https://example.com/hook-{}")  # 1
    """

    def __init__(self):
        """Initialize an empty store."""
        self._failures: Dict[str, int] = {}

    def get(self, webhook_id: str) -> int:
        """Return the failure count for a signature (0 if unknown)."""
        return self._failures.get(webhook_id, 0)

    def increment(self, webhook_id: str) -> int:
        """Record one more exhausted delivery and return the new count."""
        count = self._failures.get(webhook_id, 0) + 1
        self._failures[webhook_id] = count
        logger.debug(f"Failure count for {webhook_id} is now {count}")
        return count

    def reset(self, webhook_id: str) -> bool:
        """Forget the failures of a signature.

        Returns:
            True if a count was removed, False if none was recorded.
        """
        return self._failures.pop(webhook_id, None) is not None

    def clear(self) -> int:
        """Remove every recorded count and return how many were dropped."""
        count = len(self._failures)
        self._failures.clear()
        return count

    def list_failed(self) -> List[FailedWebhook]:
        """List every signature with a recorded failure."""
        return [
            FailedWebhook(id=webhook_id, failures=failures)
            for webhook_id, failures in self._failures.items()
        ]

    def __len__(self) -> int:
        return len(self._failures)


# Process-wide store used by the API layer
_store: Optional[WebhookFailureStore] = None


def get_failure_store() -> WebhookFailureStore:
    """Get the process-wide failure store."""
    global _store
    if _store is None:
        _store = WebhookFailureStore()
    return _store
