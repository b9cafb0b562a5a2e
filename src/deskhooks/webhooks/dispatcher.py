"""Outbound webhook dispatcher.

Delivers JSON payloads to caller-supplied URLs with retry logic,
exponential backoff with jitter, per-endpoint failure tracking and
a count-based circuit breaker.
"""

import asyncio
import json
import logging
import random
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, List, Optional
import httpx

from .models import (
    WebhookPayload,
    RetryConfig,
    DeliveryResult,
    DeliveryStatus,
    WebhookDelivery,
    FailedWebhook,
    CircuitBreakerOptions,
)
from .failure_store import WebhookFailureStore, webhook_signature, get_failure_store
from ..core.notifications import (
    NotificationCenter,
    NotificationVariant,
    get_notification_center,
)

logger = logging.getLogger(__name__)

CIRCUIT_OPEN_ERROR = "Circuit breaker open - too many failures"
BODYLESS_METHODS = {"GET", "HEAD"}


class WebhookHTTPError(Exception):
    """Raised inside an attempt when the endpoint answers non-2xx."""

    def __init__(self, status_code: int, reason: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}")

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


def compute_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay in milliseconds after a failed attempt, before jitter.

    Args:
        attempt: The 1-based number of the attempt that just failed.
        config: Retry settings.
    """
    delay = config.base_delay_ms * config.backoff_multiplier ** (attempt - 1)
    return min(delay, config.max_delay_ms)


def serialize_body(data: Any) -> str:
    """JSON text sent as the request body."""
    return json.dumps(data, default=str)


def _parse_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class WebhookRetryDispatcher:
    """Delivers webhook payloads, retrying transient failures.

    Features:
    - Async HTTP delivery through httpx
    - Exponential backoff capped at max_delay_ms, plus random jitter
    - Failure counts per endpoint signature in an injected store
    - Circuit breaker that short-circuits endpoints over a threshold
    - Bounded history of delivery records

    Example:
        dispatcher = WebhookRetryDispatcher()
        result = await dispatcher.send_with_retry(
            WebhookPayload(url="https://example.com/hook", data={"a": 1}),
            RetryConfig(max_attempts=3),
        )
        if not result.success:
            print(result.error)
    """

    def __init__(
        self,
        failure_store: Optional[WebhookFailureStore] = None,
        notifications: Optional[NotificationCenter] = None,
        default_config: Optional[RetryConfig] = None,
        timeout_seconds: Optional[float] = None,
        jitter_ms: float = 1000.0,
        circuit_failure_threshold: int = 10,
        history_size: int = 500,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        random_fn: Optional[Callable[[], float]] = None,
    ):
        """Initialize dispatcher.

        Args:
            failure_store: Store for per-endpoint failure counts.
                A private store is created when omitted.
            notifications: Where circuit breaker and delivery errors
                are published.
            default_config: Retry settings used for fields a caller
                does not set.
            timeout_seconds: Per-attempt HTTP timeout. None keeps the
                httpx default.
            jitter_ms: Upper bound of the random delay added to each backoff.
            circuit_failure_threshold: Default threshold for circuit breakers.
            history_size: Number of delivery records kept.
            transport: Optional httpx transport (used to fake endpoints).
            sleep: Coroutine used to wait between attempts (seconds).
            random_fn: Source of jitter in [0, 1).
        """
        self.failure_store = failure_store if failure_store is not None else WebhookFailureStore()
        self.notifications = notifications if notifications is not None else NotificationCenter()
        self.default_config = default_config or RetryConfig()
        self.timeout = timeout_seconds
        self.jitter_ms = jitter_ms
        self.circuit_failure_threshold = circuit_failure_threshold
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._random = random_fn or random.random
        self._deliveries: Deque[WebhookDelivery] = deque(maxlen=history_size)

    def _resolve_config(self, config: Optional[RetryConfig]) -> RetryConfig:
        """Overlay the fields a caller set on top of the defaults."""
        if config is None:
            return self.default_config
        return self.default_config.model_copy(update=config.model_dump(exclude_unset=True))

    def _client_kwargs(self) -> dict:
        kwargs: dict = {}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return kwargs

    async def _send(self, payload: WebhookPayload) -> httpx.Response:
        """Perform a single HTTP attempt."""
        method = (payload.method or "POST").upper()
        headers = httpx.Headers({"Content-Type": "application/json"})
        headers.update(payload.headers)

        content = None
        if method not in BODYLESS_METHODS and payload.data is not None:
            content = serialize_body(payload.data)

        async with httpx.AsyncClient(**self._client_kwargs()) as client:
            return await client.request(
                method,
                payload.url,
                content=content,
                headers=headers,
            )

    async def send_with_retry(
        self,
        payload: WebhookPayload,
        config: Optional[RetryConfig] = None,
    ) -> DeliveryResult:
        """Deliver a payload, retrying on non-2xx responses and errors.

        Never raises: the outcome of the last attempt is returned as a
        DeliveryResult. An exhausted delivery adds one to the endpoint's
        failure count; a successful one clears it.

        Args:
            payload: The HTTP call to make.
            config: Retry overrides for this delivery.

        Returns:
            The delivery result.
        """
        retry = self._resolve_config(config)
        try:
            webhook_id = webhook_signature(payload)
        except (TypeError, ValueError) as e:
            error = f"Payload data is not JSON serializable: {e}"
            logger.error(f"Webhook delivery to {payload.url} rejected: {error}")
            return DeliveryResult(success=False, error=error)

        delivery = WebhookDelivery(
            webhook_id=webhook_id,
            url=payload.url,
            method=(payload.method or "POST").upper(),
        )
        self._deliveries.append(delivery)

        last_error = "Unknown error"
        status_code: Optional[int] = None

        for attempt in range(1, retry.max_attempts + 1):
            delivery.attempts = attempt
            delivery.last_attempt_at = datetime.now(timezone.utc)

            try:
                response = await self._send(payload)
                delivery.response_status = response.status_code
                status_code = response.status_code

                if not response.is_success:
                    raise WebhookHTTPError(response.status_code, response.reason_phrase)

                body = _parse_body(response)

            except WebhookHTTPError as e:
                last_error = str(e)
                delivery.error_message = last_error
                if e.is_client_error and not retry.retry_client_errors:
                    logger.warning(f"Not retrying {payload.url}: {last_error}")
                    break

            except Exception as e:
                last_error = str(e) or type(e).__name__
                delivery.error_message = last_error
                status_code = None

            else:
                self.failure_store.reset(webhook_id)
                delivery.status = DeliveryStatus.SUCCESS
                delivery.error_message = None
                logger.info(f"Webhook delivered to {payload.url} (attempt {attempt})")
                return DeliveryResult(
                    success=True,
                    response=body,
                    attempts=attempt,
                    status_code=status_code,
                )

            if attempt < retry.max_attempts:
                delay_ms = compute_backoff_delay(attempt, retry) + self._random() * self.jitter_ms
                delivery.status = DeliveryStatus.RETRYING
                logger.warning(
                    f"Webhook delivery to {payload.url} failed: {last_error}. "
                    f"Retrying in {delay_ms:.0f}ms (attempt {attempt}/{retry.max_attempts})"
                )
                await self._sleep(delay_ms / 1000)

        failures = self.failure_store.increment(webhook_id)
        delivery.status = DeliveryStatus.FAILED
        logger.error(
            f"Webhook delivery to {payload.url} failed after {delivery.attempts} attempts: "
            f"{last_error} ({failures} failed deliveries recorded)"
        )

        return DeliveryResult(
            success=False,
            error=last_error,
            attempts=delivery.attempts,
            status_code=status_code,
        )

    async def send_batch(
        self,
        payloads: List[WebhookPayload],
        config: Optional[RetryConfig] = None,
    ) -> List[DeliveryResult]:
        """Deliver several payloads concurrently.

        There is no bound on in-flight requests. Results come back in
        the order of the payloads.
        """
        return list(await asyncio.gather(
            *(self.send_with_retry(payload, config) for payload in payloads)
        ))

    async def send_webhook(
        self,
        payload: WebhookPayload,
        config: Optional[RetryConfig] = None,
    ) -> DeliveryResult:
        """Deliver a payload and notify the operator when it fails."""
        result = await self.send_with_retry(payload, config)

        if not result.success:
            self.notifications.notify(
                "Webhook error",
                result.error,
                NotificationVariant.DESTRUCTIVE,
            )

        return result

    def get_failure_count(self, payload: WebhookPayload) -> int:
        """Number of exhausted deliveries recorded for a payload's endpoint."""
        return self.failure_store.get(webhook_signature(payload))

    def reset_failure_count(self, payload: WebhookPayload) -> None:
        """Clear the failures recorded for a payload's endpoint."""
        webhook_id = webhook_signature(payload)
        if self.failure_store.reset(webhook_id):
            logger.info(f"Reset failure count for {webhook_id}")

    def get_failed_webhooks(self) -> List[FailedWebhook]:
        """List every endpoint with recorded failures."""
        return self.failure_store.list_failed()

    def create_circuit_breaker(
        self,
        payload: WebhookPayload,
        options: Optional[CircuitBreakerOptions] = None,
        config: Optional[RetryConfig] = None,
    ) -> Callable[[], Awaitable[DeliveryResult]]:
        """Wrap delivery of a payload in a count-based circuit breaker.

        Once the endpoint's failure count reaches the threshold, calls
        return a failure immediately without any network I/O and publish
        a notification. There is no reset timer: the breaker closes
        again after reset_failure_count() or a successful delivery made
        some other way.

        Args:
            payload: The payload the breaker guards.
            options: Breaker options (threshold).
            config: Retry overrides used when the breaker lets a call through.

        Returns:
            A coroutine function performing the guarded delivery.
        """
        options = options or CircuitBreakerOptions(failure_threshold=self.circuit_failure_threshold)

        async def guarded_send() -> DeliveryResult:
            try:
                failures = self.get_failure_count(payload)
            except (TypeError, ValueError):
                # Unserializable data; send_with_retry reports it as a failure
                return await self.send_with_retry(payload, config)

            if failures >= options.failure_threshold:
                self.notifications.notify(
                    "Webhook temporarily blocked",
                    "Too many consecutive failures detected",
                    NotificationVariant.DESTRUCTIVE,
                )
                self._deliveries.append(WebhookDelivery(
                    webhook_id=webhook_signature(payload),
                    url=payload.url,
                    method=(payload.method or "POST").upper(),
                    status=DeliveryStatus.BLOCKED,
                    error_message=CIRCUIT_OPEN_ERROR,
                ))
                return DeliveryResult(success=False, error=CIRCUIT_OPEN_ERROR)

            return await self.send_with_retry(payload, config)

        return guarded_send

    def get_recent_deliveries(self, limit: int = 100) -> List[WebhookDelivery]:
        """Get recent delivery records, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._deliveries))[:limit]


# Global dispatcher instance
_dispatcher: Optional[WebhookRetryDispatcher] = None


def get_dispatcher() -> WebhookRetryDispatcher:
    """Get the global dispatcher, configured from application settings."""
    global _dispatcher
    if _dispatcher is None:
        from ..core.settings import get_settings

        settings = get_settings()
        _dispatcher = WebhookRetryDispatcher(
            failure_store=get_failure_store(),
            notifications=get_notification_center(),
            default_config=settings.retry,
            timeout_seconds=settings.request_timeout_seconds,
            jitter_ms=settings.jitter_ms,
            circuit_failure_threshold=settings.circuit_failure_threshold,
            history_size=settings.delivery_history_size,
        )
    return _dispatcher
