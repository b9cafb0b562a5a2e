"""Core module for DeskHooks.

Contains retry helpers, the time-windowed circuit breaker, operator
notifications, settings and logging setup.
"""

from .errors import RetryableError
from .circuit_breaker import (
    CircuitState, CircuitBreaker, CircuitBreakerConfig,
    CircuitBreakerError, CircuitBreakerRegistry,
)
from .retry import (
    RetryOptions, with_retry, with_network_retry,
    with_database_retry, with_state_retry, with_circuit_breaker,
)
from .notifications import Notification, NotificationCenter, NotificationVariant

__all__ = [
    # Retry
    "RetryableError",
    "RetryOptions",
    "with_retry",
    "with_network_retry",
    "with_database_retry",
    "with_state_retry",
    "with_circuit_breaker",

    # Circuit breaker
    "CircuitState",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",

    # Notifications
    "Notification",
    "NotificationCenter",
    "NotificationVariant",
]
