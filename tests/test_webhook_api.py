"""Tests for the webhook API routes."""

import pytest
from unittest.mock import AsyncMock, patch

import httpx
from fastapi.testclient import TestClient

from deskhooks.core.notifications import NotificationCenter
from deskhooks.main import app
from deskhooks.webhooks.dispatcher import WebhookRetryDispatcher
from deskhooks.webhooks.failure_store import WebhookFailureStore
from deskhooks.webhooks.relay import EventRelay

client = TestClient(app)


def endpoint(request: httpx.Request) -> httpx.Response:
    """Fake remote: /ok answers 200, anything else 500."""
    if request.url.path == "/ok":
        return httpx.Response(200, json={"received": True})
    return httpx.Response(500)


@pytest.fixture
def services():
    """Route handlers to an isolated dispatcher, relay and notification center."""
    notifications = NotificationCenter()
    dispatcher = WebhookRetryDispatcher(
        failure_store=WebhookFailureStore(),
        notifications=notifications,
        transport=httpx.MockTransport(endpoint),
        sleep=AsyncMock(),
    )
    relay = EventRelay(dispatcher, max_attempts=1)

    with patch("deskhooks.webhooks.router.get_dispatcher", return_value=dispatcher), \
            patch("deskhooks.webhooks.router.get_relay", return_value=relay), \
            patch("deskhooks.webhooks.router.get_notification_center", return_value=notifications):
        yield dispatcher, relay, notifications


FAILING = {"url": "https://x/fail", "data": {"a": 1}}
OK = {"url": "https://x/ok", "data": {"a": 1}}
ONE_ATTEMPT = {"max_attempts": 1}


class TestDeliveryRoutes:
    """Tests for delivery endpoints."""

    def test_send_success(self, services):
        response = client.post("/api/webhooks/send", json={"payload": OK})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["response"] == {"received": True}

    def test_send_failure_reported_in_body(self, services):
        response = client.post(
            "/api/webhooks/send",
            json={"payload": FAILING, "config": {"max_attempts": 2, "base_delay_ms": 1}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["attempts"] == 2
        assert data["error"].startswith("HTTP 500")

    def test_send_notify(self, services):
        _, _, notifications = services

        client.post("/api/webhooks/send/notify", json={"payload": FAILING, "config": ONE_ATTEMPT})

        response = client.get("/api/webhooks/notifications/recent")
        assert response.status_code == 200
        assert response.json()[0]["title"] == "Webhook error"
        assert len(notifications.recent()) == 1

    def test_batch(self, services):
        response = client.post(
            "/api/webhooks/batch",
            json={"payloads": [OK, FAILING], "config": ONE_ATTEMPT},
        )

        assert response.status_code == 200
        assert [r["success"] for r in response.json()] == [True, False]

    def test_guarded_blocks_after_threshold(self, services):
        body = {"payload": FAILING, "options": {"failure_threshold": 1}}
        client.post("/api/webhooks/send", json={"payload": FAILING, "config": ONE_ATTEMPT})

        response = client.post("/api/webhooks/guarded", json=body)

        assert response.status_code == 200
        assert response.json()["error"] == "Circuit breaker open - too many failures"

    def test_guarded_uses_dispatcher_threshold_by_default(self):
        """Test /guarded without options applies the configured threshold."""
        calls = []

        def counting_endpoint(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        dispatcher = WebhookRetryDispatcher(
            failure_store=WebhookFailureStore(),
            circuit_failure_threshold=1,
            transport=httpx.MockTransport(counting_endpoint),
            sleep=AsyncMock(),
        )

        with patch("deskhooks.webhooks.router.get_dispatcher", return_value=dispatcher):
            client.post("/api/webhooks/send", json={"payload": FAILING, "config": ONE_ATTEMPT})
            calls.clear()

            response = client.post("/api/webhooks/guarded", json={"payload": FAILING})

        assert response.json()["error"] == "Circuit breaker open - too many failures"
        assert calls == []

    def test_invalid_payload_rejected(self, services):
        response = client.post("/api/webhooks/send", json={"payload": {"data": {}}})

        assert response.status_code == 422


class TestFailureRoutes:
    """Tests for failure tracking endpoints."""

    def test_failures_count_and_reset(self, services):
        client.post("/api/webhooks/send", json={"payload": FAILING, "config": ONE_ATTEMPT})

        failures = client.get("/api/webhooks/failures").json()
        assert failures == [{"id": 'https://x/fail-{"a":1}', "failures": 1}]

        count = client.post("/api/webhooks/failures/count", json=FAILING).json()
        assert count["failures"] == 1

        response = client.post("/api/webhooks/failures/reset", json=FAILING)
        assert response.status_code == 200
        assert client.get("/api/webhooks/failures").json() == []

    def test_recent_deliveries(self, services):
        client.post("/api/webhooks/send", json={"payload": OK})

        deliveries = client.get("/api/webhooks/deliveries/recent?limit=5").json()

        assert deliveries[0]["url"] == "https://x/ok"
        assert deliveries[0]["status"] == "success"


class TestRelayRoutes:
    """Tests for event relay endpoints."""

    def _register(self, url="https://x/ok"):
        return client.post(
            "/api/webhooks/relay/configs",
            json={"company_id": "acme", "webhook_url": url, "api_key": "k"},
        )

    def test_register_and_list(self, services):
        response = self._register()

        assert response.status_code == 200
        config_id = response.json()["id"]
        configs = client.get("/api/webhooks/relay/configs").json()
        assert [c["id"] for c in configs] == [config_id]

    def test_relay_success(self, services):
        self._register()

        response = client.post(
            "/api/webhooks/relay/send",
            json={"event_type": "ping", "payload": {"a": 1}, "company_id": "acme"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        logs = client.get("/api/webhooks/relay/logs").json()
        assert logs[0]["status"] == "success"

    def test_relay_missing_fields(self, services):
        self._register()

        response = client.post(
            "/api/webhooks/relay/send",
            json={"payload": {"a": 1}, "company_id": "acme"},
        )

        assert response.status_code == 400

    def test_relay_blank_payload(self, services):
        self._register()

        response = client.post(
            "/api/webhooks/relay/send",
            json={"event_type": "ping", "payload": "", "company_id": "acme"},
        )

        assert response.status_code == 400

    def test_relay_unknown_company(self, services):
        response = client.post(
            "/api/webhooks/relay/send",
            json={"event_type": "ping", "payload": {}, "company_id": "nobody"},
        )

        assert response.status_code == 404

    def test_relay_delivery_failure(self, services):
        self._register(url="https://x/fail")

        response = client.post(
            "/api/webhooks/relay/send",
            json={"event_type": "ping", "payload": {}, "company_id": "acme"},
        )

        assert response.status_code == 502
        assert "HTTP 500" in response.json()["detail"]
