"""Webhook data models.

Defines Pydantic schemas for outbound payloads, retry configuration,
delivery results and the request/response bodies used by the router.
"""

from enum import Enum
from typing import Optional, Any, Dict, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field
import uuid


class WebhookPayload(BaseModel):
    """An HTTP call to deliver to a caller-supplied URL."""

    url: str = Field(..., description="Endpoint URL to deliver to")
    data: Any = Field(None, description="JSON body")
    headers: Dict[str, str] = Field(default_factory=dict)
    method: str = "POST"


class RetryConfig(BaseModel):
    """Retry and backoff settings for a delivery.

    Delays are in milliseconds. A config built with only some fields
    overrides just those fields on top of the dispatcher defaults.
    """

    max_attempts: int = Field(5, ge=1)
    base_delay_ms: float = Field(1000, ge=0)
    max_delay_ms: float = Field(30000, ge=0)
    backoff_multiplier: float = Field(2, ge=1)

    # False stops retrying as soon as an endpoint answers 4xx
    retry_client_errors: bool = True


class DeliveryResult(BaseModel):
    """Outcome of a delivery. Failures are values, never exceptions."""

    success: bool
    response: Any = None
    error: Optional[str] = None
    attempts: int = 0
    status_code: Optional[int] = None


class DeliveryStatus(str, Enum):
    """Lifecycle of a delivery record."""

    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"
    BLOCKED = "blocked"


class WebhookDelivery(BaseModel):
    """Record of a delivery and its attempts."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    webhook_id: str
    url: str
    method: str = "POST"
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    response_status: Optional[int] = None
    error_message: Optional[str] = None


class FailedWebhook(BaseModel):
    """Failure count recorded for an endpoint signature."""

    id: str
    failures: int


class CircuitBreakerOptions(BaseModel):
    """Options for a count-based webhook circuit breaker."""

    failure_threshold: int = Field(10, ge=1)


# ============================================================================
# Request bodies
# ============================================================================

class SendWebhookRequest(BaseModel):
    """Request to deliver a single payload."""

    payload: WebhookPayload
    config: Optional[RetryConfig] = None


class BatchWebhookRequest(BaseModel):
    """Request to deliver several payloads concurrently."""

    payloads: List[WebhookPayload]
    config: Optional[RetryConfig] = None


class GuardedWebhookRequest(BaseModel):
    """Request to deliver a payload behind a circuit breaker."""

    payload: WebhookPayload
    options: Optional[CircuitBreakerOptions] = None


# ============================================================================
# Event relay
# ============================================================================

class RelayStatus(str, Enum):
    """Whether a relay configuration receives events."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class RelayConfig(BaseModel):
    """A tenant's automation webhook that application events are relayed to."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    company_id: str = Field(..., description="Tenant that owns this configuration")
    webhook_url: str
    api_key: Optional[str] = Field(None, description="Sent as a Bearer token")
    secret: Optional[str] = Field(None, description="Shared secret for HMAC signature")
    status: RelayStatus = RelayStatus.ACTIVE
    total_executions: int = 0
    success_rate: float = 0.0  # percent
    last_ping: Optional[datetime] = None


class ExecutionLog(BaseModel):
    """Record of one relayed event."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    config_id: str
    status: str  # "success", "error"
    event_type: str
    input_data: Dict[str, Any]
    error_message: Optional[str] = None
    duration_ms: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RelayEventRequest(BaseModel):
    """Request to relay an event to a tenant's automation webhook."""

    event_type: Optional[str] = None
    payload: Optional[Any] = None
    company_id: str
    webhook_url: Optional[str] = None


class RelayResult(BaseModel):
    """Outcome of relaying an event."""

    success: bool
    event_type: str
    duration_ms: int
    error: Optional[str] = None
