"""Webhooks module for outbound webhook delivery.

Provides:
- Delivery with retry, exponential backoff and jitter
- Per-endpoint failure tracking and a count-based circuit breaker
- Event relay to tenant automation webhooks
"""

from .models import WebhookPayload, RetryConfig, DeliveryResult, CircuitBreakerOptions
from .failure_store import WebhookFailureStore, webhook_signature
from .dispatcher import WebhookRetryDispatcher
from .relay import EventRelay

__all__ = [
    "WebhookPayload",
    "RetryConfig",
    "DeliveryResult",
    "CircuitBreakerOptions",
    "WebhookFailureStore",
    "webhook_signature",
    "WebhookRetryDispatcher",
    "EventRelay",
]
