"""Event relay to tenant automation webhooks.

Wraps application events in an envelope and forwards them to the
automation webhook a tenant configured, keeping an execution log and
rolling delivery statistics per configuration.
"""

import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from .models import (
    WebhookPayload,
    RetryConfig,
    RelayConfig,
    RelayStatus,
    RelayResult,
    ExecutionLog,
)
from .dispatcher import WebhookRetryDispatcher, serialize_body, get_dispatcher
from .security import generate_webhook_headers
from ..core.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitBreakerRegistry,
)

logger = logging.getLogger(__name__)


def _is_blank(value: Any) -> bool:
    """None, empty string, zero and False count as a missing payload.

    Empty dicts and lists are valid payloads.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ""
    return isinstance(value, (int, float)) and value == 0


class RelayError(Exception):
    """Base class for relay errors."""


class RelayValidationError(RelayError):
    """The event is missing required fields."""


class RelayConfigNotFoundError(RelayError):
    """The tenant has no active relay configuration."""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No active relay configuration for company {company_id}")


class EventRelay:
    """Forwards events to each tenant's active automation webhook.

    A tenant has at most one active configuration: registering an
    active one deactivates the others of the same company.

    Example:
        relay = EventRelay(dispatcher)
        relay.register_config(RelayConfig(
            company_id="acme",
            webhook_url="https://automation.example.com/webhook/acme",
            api_key="token",
        ))
        result = await relay.send_event("message.received", {"text": "hi"}, "acme")
    """

    def __init__(
        self,
        dispatcher: WebhookRetryDispatcher,
        source: str = "deskhooks",
        max_attempts: int = 3,
        log_size: int = 1000,
        breaker_config: Optional[CircuitBreakerConfig] = None,
    ):
        """Initialize relay.

        Args:
            dispatcher: Dispatcher used for delivery.
            source: Value of the envelope's source field.
            max_attempts: Delivery attempts per event.
            log_size: Number of execution logs kept.
            breaker_config: Circuit breaker settings per configuration.
        """
        self.dispatcher = dispatcher
        self.source = source
        self.retry_config = RetryConfig(max_attempts=max_attempts)
        self._configs: Dict[str, RelayConfig] = {}
        self._logs: Deque[ExecutionLog] = deque(maxlen=log_size)
        self._breakers = CircuitBreakerRegistry(breaker_config)

    def register_config(self, config: RelayConfig) -> RelayConfig:
        """Register a relay configuration."""
        if config.status == RelayStatus.ACTIVE:
            for other in self._configs.values():
                if other.company_id == config.company_id and other.id != config.id:
                    other.status = RelayStatus.INACTIVE

        self._configs[config.id] = config
        logger.info(f"Registered relay config {config.id} for company {config.company_id}")
        return config

    def get_config(self, config_id: str) -> Optional[RelayConfig]:
        return self._configs.get(config_id)

    def list_configs(self) -> List[RelayConfig]:
        return list(self._configs.values())

    def get_active_config(self, company_id: str) -> Optional[RelayConfig]:
        """The active configuration of a company, if any."""
        for config in self._configs.values():
            if config.company_id == company_id and config.status == RelayStatus.ACTIVE:
                return config
        return None

    def get_logs(self, limit: int = 100, config_id: Optional[str] = None) -> List[ExecutionLog]:
        """Execution logs, newest first."""
        logs = [log for log in reversed(self._logs) if config_id is None or log.config_id == config_id]
        return logs[:max(limit, 0)]

    def build_envelope(self, event_type: str, payload: Any, company_id: str) -> Dict[str, Any]:
        """Wrap an event for delivery."""
        return {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "company_id": company_id,
            "payload": payload,
            "source": self.source,
        }

    def _build_headers(self, config: RelayConfig, body: Dict[str, Any]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        if config.secret:
            headers.update(generate_webhook_headers(serialize_body(body), config.secret))
        return headers

    async def send_event(
        self,
        event_type: Optional[str],
        payload: Any,
        company_id: str,
        webhook_url: Optional[str] = None,
    ) -> RelayResult:
        """Relay an event to the company's automation webhook.

        Args:
            event_type: Name of the event.
            payload: Event data.
            company_id: Tenant whose configuration is used.
            webhook_url: Overrides the configured URL.

        Returns:
            The relay result. Delivery failures are results, not errors.

        Raises:
            RelayValidationError: If event_type or payload is missing.
            RelayConfigNotFoundError: If the company has no active config.
        """
        if not event_type or _is_blank(payload):
            raise RelayValidationError("Required fields: event_type, payload")

        config = self.get_active_config(company_id)
        if config is None:
            logger.error(f"Relay config not found for company {company_id}")
            raise RelayConfigNotFoundError(company_id)

        envelope = self.build_envelope(event_type, payload, company_id)
        webhook = WebhookPayload(
            url=webhook_url or config.webhook_url,
            data=envelope,
            headers=self._build_headers(config, envelope),
        )

        breaker = self._breakers.get_or_create(config.id)
        started = time.monotonic()

        try:
            breaker.allow_request()
        except CircuitBreakerError as e:
            success, error = False, str(e)
        else:
            result = await self.dispatcher.send_with_retry(webhook, self.retry_config)
            success, error = result.success, result.error
            if success:
                breaker.record_success()
            else:
                breaker.record_failure()

        duration_ms = int((time.monotonic() - started) * 1000)

        self._logs.append(ExecutionLog(
            config_id=config.id,
            status="success" if success else "error",
            event_type=event_type,
            input_data=envelope,
            error_message=error,
            duration_ms=duration_ms,
        ))
        self._update_stats(config, success)

        if success:
            logger.info(f"Relayed {event_type} for company {company_id} in {duration_ms}ms")
        else:
            logger.error(f"Relay of {event_type} for company {company_id} failed: {error}")

        return RelayResult(
            success=success,
            event_type=event_type,
            duration_ms=duration_ms,
            error=error,
        )

    @staticmethod
    def _update_stats(config: RelayConfig, success: bool) -> None:
        total = config.total_executions
        config.success_rate = (config.success_rate * total + (100 if success else 0)) / (total + 1)
        config.total_executions = total + 1
        config.last_ping = datetime.now(timezone.utc)


_relay: Optional[EventRelay] = None


def get_relay() -> EventRelay:
    """Get the global event relay."""
    global _relay
    if _relay is None:
        from ..core.settings import get_settings

        settings = get_settings()
        _relay = EventRelay(
            get_dispatcher(),
            source=settings.relay_source,
            max_attempts=settings.relay_max_attempts,
        )
    return _relay
