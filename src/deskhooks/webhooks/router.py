"""Webhook API routes.

FastAPI router exposing delivery with retry, failure counts,
delivery history, notifications and the event relay.
"""

from fastapi import APIRouter, HTTPException
from typing import List
import logging

from .models import (
    WebhookPayload,
    DeliveryResult,
    FailedWebhook,
    WebhookDelivery,
    SendWebhookRequest,
    BatchWebhookRequest,
    GuardedWebhookRequest,
    RelayConfig,
    RelayEventRequest,
    RelayResult,
    ExecutionLog,
)
from .dispatcher import get_dispatcher
from .failure_store import webhook_signature
from .relay import get_relay, RelayValidationError, RelayConfigNotFoundError
from ..core.notifications import Notification, get_notification_center

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


# ============================================================================
# Delivery Endpoints
# ============================================================================

@router.post("/send", response_model=DeliveryResult)
async def send_webhook(request: SendWebhookRequest):
    """Deliver a payload with retry and exponential backoff.

    Always answers 200: a failed delivery is reported in the body.
    """
    return await get_dispatcher().send_with_retry(request.payload, request.config)


@router.post("/send/notify", response_model=DeliveryResult)
async def send_webhook_with_notification(request: SendWebhookRequest):
    """Deliver a payload and publish a notification if it fails."""
    return await get_dispatcher().send_webhook(request.payload, request.config)


@router.post("/batch", response_model=List[DeliveryResult])
async def send_batch(request: BatchWebhookRequest):
    """Deliver several payloads concurrently, one result per payload."""
    return await get_dispatcher().send_batch(request.payloads, request.config)


@router.post("/guarded", response_model=DeliveryResult)
async def send_guarded(request: GuardedWebhookRequest):
    """Deliver a payload unless its endpoint's circuit breaker is open."""
    guarded_send = get_dispatcher().create_circuit_breaker(request.payload, request.options)
    return await guarded_send()


# ============================================================================
# Failure Tracking Endpoints
# ============================================================================

@router.get("/failures", response_model=List[FailedWebhook])
async def list_failures():
    """List endpoints with recorded delivery failures."""
    return get_dispatcher().get_failed_webhooks()


@router.post("/failures/count", response_model=FailedWebhook)
async def get_failure_count(payload: WebhookPayload):
    """Get the failure count recorded for a payload's endpoint."""
    return FailedWebhook(
        id=webhook_signature(payload),
        failures=get_dispatcher().get_failure_count(payload),
    )


@router.post("/failures/reset")
async def reset_failure_count(payload: WebhookPayload):
    """Clear the failures of a payload's endpoint, closing its breaker."""
    get_dispatcher().reset_failure_count(payload)
    return {"status": "success", "message": "Failure count reset"}


@router.get("/deliveries/recent", response_model=List[WebhookDelivery])
async def get_recent_deliveries(limit: int = 50):
    """Get recent delivery records for monitoring."""
    return get_dispatcher().get_recent_deliveries(limit=limit)


@router.get("/notifications/recent", response_model=List[Notification])
async def get_recent_notifications(limit: int = 20):
    """Get recent operator notifications."""
    return get_notification_center().recent(limit)


# ============================================================================
# Event Relay Endpoints
# ============================================================================

@router.post("/relay/configs", response_model=RelayConfig)
async def register_relay_config(config: RelayConfig):
    """Register a tenant's automation webhook."""
    return get_relay().register_config(config)


@router.get("/relay/configs", response_model=List[RelayConfig])
async def list_relay_configs():
    return get_relay().list_configs()


@router.post("/relay/send", response_model=RelayResult)
async def relay_event(request: RelayEventRequest):
    """Relay an event to the tenant's active automation webhook."""
    relay = get_relay()

    try:
        result = await relay.send_event(
            request.event_type,
            request.payload,
            request.company_id,
            webhook_url=request.webhook_url,
        )
    except RelayValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RelayConfigNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=502, detail=f"Relay failed: {result.error}")

    return result


@router.get("/relay/logs", response_model=List[ExecutionLog])
async def get_relay_logs(limit: int = 100):
    """Get recent relay execution logs."""
    return get_relay().get_logs(limit=limit)
