"""Retry helpers for operations that raise on failure.

Unlike the webhook dispatcher, which turns failures into result
values, these helpers re-raise the last error once retries run out.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import RetryableError
from .circuit_breaker import get_circuit_breaker_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(error: Exception) -> bool:
    return True


@dataclass
class RetryOptions:
    """Options for with_retry."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    exponential_backoff: bool = True
    max_delay_seconds: float = 10.0
    retry_on: Callable[[Exception], bool] = field(default=_always)
    on_retry: Optional[Callable[[Exception, int], Any]] = None
    context: str = "unknown"

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the 0-based attempt failed."""
        if not self.exponential_backoff:
            return self.base_delay_seconds
        return min(self.base_delay_seconds * 2 ** attempt, self.max_delay_seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """Run an operation, retrying failures allowed by the options.

    A RetryableError with should_retry=False is never retried.

    Raises:
        The last error once retries are exhausted or not allowed.
    """
    opts = options or RetryOptions()
    sleep = sleep or asyncio.sleep

    for attempt in range(opts.max_retries + 1):
        try:
            result = await operation()
        except Exception as error:
            should_retry = (
                attempt < opts.max_retries
                and opts.retry_on(error)
                and not (isinstance(error, RetryableError) and not error.should_retry)
            )

            if not should_retry:
                logger.error(
                    f"[{opts.context}] Operation failed after {attempt + 1} attempts: {error}"
                )
                raise

            delay = opts.delay_for(attempt)
            logger.warning(
                f"[{opts.context}] Operation failed, retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}): {error}"
            )
            if opts.on_retry:
                opts.on_retry(error, attempt + 1)
            await sleep(delay)
            continue

        if attempt > 0:
            logger.info(f"[{opts.context}] Operation succeeded after {attempt} retries")
        return result

    # max_retries < 0 leaves the loop without an attempt
    raise ValueError("max_retries must be >= 0")


def is_network_error(error: Exception) -> bool:
    """Errors that look like a transport problem."""
    message = str(error).lower()
    return (
        type(error).__name__ in ("NetworkError", "ConnectError", "ReadTimeout", "ConnectTimeout")
        or isinstance(error, (ConnectionError, TimeoutError))
        or "fetch" in message
        or "network" in message
        or "timeout" in message
        or getattr(error, "code", None) == "NETWORK_ERROR"
    )


def is_transient_database_error(error: Exception) -> bool:
    """Temporary failures reported by the hosted database."""
    message = str(error).lower()
    status = getattr(error, "status", None)
    return (
        "connection" in message
        or "timeout" in message
        or "temporarily unavailable" in message
        or "rate limit" in message
        or (isinstance(status, int) and status >= 500)
    )


def is_state_conflict(error: Exception) -> bool:
    """Conflicts and races on shared state."""
    message = str(error).lower()
    return any(word in message for word in ("conflict", "race condition", "concurrent", "lock"))


async def with_network_retry(operation: Callable[[], Awaitable[T]], context: str = "network") -> T:
    return await with_retry(operation, RetryOptions(
        max_retries=3,
        base_delay_seconds=1.0,
        context=context,
        retry_on=is_network_error,
    ))


async def with_database_retry(operation: Callable[[], Awaitable[T]], context: str = "database") -> T:
    return await with_retry(operation, RetryOptions(
        max_retries=2,
        base_delay_seconds=0.5,
        context=context,
        retry_on=is_transient_database_error,
    ))


async def with_state_retry(operation: Callable[[], Awaitable[T]], context: str = "state") -> T:
    return await with_retry(operation, RetryOptions(
        max_retries=5,
        base_delay_seconds=0.2,
        exponential_backoff=False,
        context=context,
        retry_on=is_state_conflict,
    ))


async def with_circuit_breaker(operation: Callable[[], Awaitable[T]], context: str) -> T:
    """Run an operation through the global breaker for a context."""
    breaker = get_circuit_breaker_registry().get_or_create(context)
    return await breaker.execute(operation)
