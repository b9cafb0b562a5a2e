"""Circuit Breaker Pattern - Stop hammering failing dependencies.

A time-windowed breaker: it opens after a run of consecutive failures,
blocks calls until a timeout has passed since the last failure, then
lets a trial call through. A successful trial closes it again.
"""

from enum import Enum
from typing import Optional, Callable, Awaitable, TypeVar
from dataclasses import dataclass
import logging
import time

from .errors import RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Failing, requests are blocked
    HALF_OPEN = "half_open"  # Timeout elapsed, next call is a trial


class CircuitBreakerError(RetryableError):
    """Raised when a call is blocked by an open circuit.

    Never retryable: retrying would only hit the open circuit again.
    """

    def __init__(self, name: str, failures: int, retry_in_seconds: float):
        self.name = name
        self.failures = failures
        self.retry_in_seconds = retry_in_seconds
        super().__init__(f"Circuit breaker open for {name}", should_retry=False)


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    timeout_seconds: float = 60.0  # Time after last failure before a trial


class CircuitBreaker:
    """Circuit breaker guarding one named dependency.

    Example:
        >>> breaker = CircuitBreaker("relay:acme")
        >>> result = await breaker.execute(lambda: client.get(url))
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Identifier for this circuit.
            config: Configuration options.
            clock: Monotonic time source in seconds.
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.failures = 0
        self.last_failure_time: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """Current state, derived from the failure run and the clock."""
        if self.failures < self.config.failure_threshold:
            return CircuitState.CLOSED
        if self._seconds_until_trial() > 0:
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    def _seconds_until_trial(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self.last_failure_time
        return max(0.0, self.config.timeout_seconds - elapsed)

    def allow_request(self) -> bool:
        """Check if a request should be allowed.

        Returns:
            bool: True if request can proceed.

        Raises:
            CircuitBreakerError: If circuit is open.
        """
        if self.is_open:
            error = CircuitBreakerError(self.name, self.failures, self._seconds_until_trial())
            logger.error(
                f"Circuit breaker prevented operation for {self.name} "
                f"({self.failures} failures)"
            )
            raise error
        return True

    def record_success(self) -> None:
        """Record a successful call, closing the circuit."""
        if self.failures >= self.config.failure_threshold:
            logger.info(f"Circuit '{self.name}' closed after successful call")
        self.failures = 0
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Record a failed call."""
        self.failures += 1
        self.last_failure_time = self._clock()
        if self.failures == self.config.failure_threshold:
            logger.warning(f"Circuit '{self.name}' opened after {self.failures} failures")

    def reset(self) -> None:
        """Manually reset the circuit to closed state."""
        self.failures = 0
        self.last_failure_time = None

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operation through the breaker.

        Raises:
            CircuitBreakerError: If the circuit is open.
        """
        self.allow_request()

        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result


class CircuitBreakerRegistry:
    """Registry for managing multiple circuit breakers."""

    def __init__(self, default_config: Optional[CircuitBreakerConfig] = None):
        self._breakers: dict[str, CircuitBreaker] = {}
        self.default_config = default_config or CircuitBreakerConfig()

    def get_or_create(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """Get existing or create new circuit breaker."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or self.default_config)
        return self._breakers[name]

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_open_circuits(self) -> list[CircuitBreaker]:
        """Get all circuits currently blocking calls."""
        return [b for b in self._breakers.values() if b.is_open]

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()

    def get_stats(self) -> dict[str, dict]:
        """Get state and failure run for all breakers."""
        return {
            name: {
                "state": breaker.state.value,
                "failures": breaker.failures,
            }
            for name, breaker in self._breakers.items()
        }


# Global registry instance
_global_registry: Optional[CircuitBreakerRegistry] = None


def get_circuit_breaker_registry() -> CircuitBreakerRegistry:
    """Get the global circuit breaker registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = CircuitBreakerRegistry()
    return _global_registry
