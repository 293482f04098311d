"""Tests for Herald REST API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from helpers import T0

from herald.api.app import create_app
from herald.api.router import router, set_service
from herald.api.schemas import TestSendRequest
from herald.exceptions import (
    EndpointNotConfiguredError,
    NotFoundError,
    PersistenceError,
    UnsupportedEventError,
    ValidationError,
)
from herald.models import (
    Delivery,
    DeliveryStatistics,
    DispatchReport,
    Endpoint,
    EventKind,
    QueueStatus,
    TestResult,
)
from herald.service import WebhookService


@pytest.fixture
def mock_service():
    """Create a mock WebhookService."""
    service = MagicMock(spec=WebhookService)
    service.supported_events = MagicMock(return_value={"code_used": "A vanity code was redeemed"})
    service.enqueue = AsyncMock(return_value=True)
    service.broadcast = AsyncMock(return_value=2)
    service.send_test = AsyncMock()
    service.send_test_to_url = AsyncMock()
    service.queue_status = AsyncMock(return_value=QueueStatus())
    service.statistics = AsyncMock()
    service.get_delivery = AsyncMock()
    service.retry = AsyncMock(return_value=True)
    service.cancel = AsyncMock(return_value=False)
    service.bulk_cancel = AsyncMock(return_value=1)
    service.purge = AsyncMock(return_value=4)
    service.dispatch = AsyncMock(return_value=DispatchReport(claimed=1, sent=1))
    service.sweep = AsyncMock(return_value=3)
    service.list_endpoints = AsyncMock(return_value=[])
    service.get_endpoint = AsyncMock()
    service.register_endpoint = AsyncMock()
    service.set_endpoint_active = AsyncMock(return_value=True)
    service.remove_endpoint = AsyncMock(return_value=True)
    return service


@pytest.fixture
def test_app(mock_service):
    """Create a test FastAPI app with mocked service."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    set_service(mock_service)
    yield app
    set_service(None)


@pytest.fixture
def client(test_app):
    """Create a test client."""
    return TestClient(test_app)


@pytest.fixture
def herald_app(mock_service, settings):
    """Full application with error handlers, lifespan not entered."""
    app = create_app(settings, run_scheduler=False)
    set_service(mock_service)
    yield app
    set_service(None)


@pytest.fixture
def app_client(herald_app):
    return TestClient(herald_app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_when_service_initialized(self, client):
        """Should return healthy when service is ready."""
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_connected"] is True
        assert "version" in data

    def test_health_when_service_not_initialized(self):
        """Should return unhealthy when service not ready."""
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)
        test_client = TestClient(app)

        response = test_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_routes_need_service(self):
        """Service-backed routes should return 503 before startup."""
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        response = TestClient(app).get("/api/v1/webhooks/queue")

        assert response.status_code == 503


class TestProducerEndpoints:
    """Tests for enqueue, broadcast, and events."""

    def test_list_events(self, client):
        response = client.get("/api/v1/webhooks/events")
        assert response.status_code == 200
        assert response.json()["events"] == {"code_used": "A vanity code was redeemed"}

    def test_enqueue(self, client, mock_service):
        response = client.post(
            "/api/v1/webhooks/enqueue",
            json={"domain": "shop.example", "event": "code_used", "data": {"code": "X"}},
        )

        assert response.status_code == 201
        assert response.json() == {"queued": True}
        mock_service.enqueue.assert_awaited_once_with(
            "shop.example", "code_used", {"code": "X"}, max_attempts=None
        )

    def test_enqueue_rejects_unknown_fields(self, client):
        response = client.post(
            "/api/v1/webhooks/enqueue",
            json={"domain": "shop.example", "event": "code_used", "priority": 1},
        )
        assert response.status_code == 422

    def test_broadcast(self, client, mock_service):
        response = client.post(
            "/api/v1/webhooks/broadcast",
            json={"event": "security_alert", "data": {"alert_type": "x"}, "max_attempts": 5},
        )

        assert response.status_code == 201
        assert response.json() == {"queued": 2}
        mock_service.broadcast.assert_awaited_once_with(
            "security_alert", {"alert_type": "x"}, max_attempts=5
        )

    def test_send_test_by_domain(self, client, mock_service):
        mock_service.send_test.return_value = TestResult(success=True, response_code=200)

        response = client.post("/api/v1/webhooks/test", json={"domain": "shop.example"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        mock_service.send_test.assert_awaited_once_with("shop.example")

    def test_send_test_by_url(self, client, mock_service):
        mock_service.send_test_to_url.return_value = TestResult(
            success=False, response_code=500, error="HTTP 500"
        )

        response = client.post(
            "/api/v1/webhooks/test", json={"url": "https://probe.example/h", "secret": "k"}
        )

        assert response.json()["error"] == "HTTP 500"
        mock_service.send_test_to_url.assert_awaited_once_with("https://probe.example/h", "k")

    def test_send_test_needs_exactly_one_target(self, client):
        assert client.post("/api/v1/webhooks/test", json={}).status_code == 422
        response = client.post(
            "/api/v1/webhooks/test", json={"domain": "a.example", "url": "https://a.example"}
        )
        assert response.status_code == 422

    def test_test_send_request_model(self):
        assert TestSendRequest(domain="a.example").url is None


class TestDeliveryEndpoints:
    """Tests for delivery inspection and operator actions."""

    def test_get_delivery_hides_secret(self, client, mock_service):
        mock_service.get_delivery.return_value = Delivery(
            domain="shop.example",
            event_kind=EventKind.CODE_USED,
            event_id="evt_1",
            payload="{}",
            callback_url="https://shop.example/hooks",
            secret="s3cret",
            created_at=T0,
        )

        response = client.get("/api/v1/webhooks/deliveries/dlv_1")

        assert response.status_code == 200
        data = response.json()
        assert data["signed"] is True
        assert "secret" not in data
        assert data["status"] == "pending"

    def test_retry_and_cancel(self, client, mock_service):
        retry = client.post("/api/v1/webhooks/deliveries/dlv_1/retry")
        cancel = client.post("/api/v1/webhooks/deliveries/dlv_1/cancel")

        assert retry.json() == {"delivery_id": "dlv_1", "success": True}
        assert cancel.json() == {"delivery_id": "dlv_1", "success": False}

    def test_bulk_cancel(self, client, mock_service):
        response = client.post(
            "/api/v1/webhooks/deliveries/bulk-cancel", json={"delivery_ids": ["a", "b"]}
        )
        assert response.json() == {"requested": 2, "cancelled": 1}

    def test_queue_status(self, client):
        response = client.get("/api/v1/webhooks/queue")
        assert response.status_code == 200
        assert response.json()["pending"] == 0

    def test_statistics_window_bounds(self, client, mock_service):
        mock_service.statistics.return_value = DeliveryStatistics(window_days=7, since=T0)

        assert client.get("/api/v1/webhooks/statistics?window_days=7").status_code == 200
        mock_service.statistics.assert_awaited_once_with(7)
        assert client.get("/api/v1/webhooks/statistics?window_days=0").status_code == 422

    def test_maintenance(self, client, mock_service):
        assert client.post("/api/v1/webhooks/purge", json={"days_old": 30}).json() == {
            "deleted": 4
        }
        assert client.post("/api/v1/webhooks/purge", json={"days_old": 0}).status_code == 422
        assert client.post("/api/v1/webhooks/dispatch").json()["sent"] == 1
        assert client.post("/api/v1/webhooks/sweep").json() == {"requeued": 3}


class TestEndpointRoutes:
    """Tests for endpoint registry management."""

    def test_register_endpoint(self, client, mock_service):
        mock_service.register_endpoint.side_effect = lambda endpoint: endpoint

        response = client.put(
            "/api/v1/webhooks/endpoints/shop.example",
            json={"callback_url": "https://shop.example/hooks", "secret": "s3cret"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["domain"] == "shop.example"
        assert data["signed"] is True
        assert "secret" not in data

    def test_set_active(self, client, mock_service):
        mock_service.get_endpoint.return_value = Endpoint(
            domain="shop.example", callback_url="https://shop.example/hooks", active=False
        )

        response = client.post(
            "/api/v1/webhooks/endpoints/shop.example/active", json={"active": False}
        )

        assert response.json()["active"] is False
        mock_service.set_endpoint_active.assert_awaited_once_with("shop.example", False)

    def test_remove_endpoint(self, client):
        assert client.delete("/api/v1/webhooks/endpoints/shop.example").status_code == 204


class TestErrorMapping:
    """Tests for exception handlers registered by create_app()."""

    def test_unsupported_event_is_400(self, app_client, mock_service):
        mock_service.enqueue.side_effect = UnsupportedEventError("code_teleported")

        response = app_client.post(
            "/api/v1/webhooks/enqueue",
            json={"domain": "shop.example", "event": "code_teleported"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "unsupported_event"

    def test_validation_error_is_400(self, app_client, mock_service):
        mock_service.enqueue.side_effect = ValidationError("data", "security_alert requires keys")

        response = app_client.post(
            "/api/v1/webhooks/enqueue",
            json={"domain": "shop.example", "event": "security_alert"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "data"

    def test_endpoint_not_configured_is_422(self, app_client, mock_service):
        mock_service.enqueue.side_effect = EndpointNotConfiguredError("ghost.example")

        response = app_client.post(
            "/api/v1/webhooks/enqueue",
            json={"domain": "ghost.example", "event": "code_used"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["reason"] == "no_endpoint"

    def test_not_found_is_404(self, app_client, mock_service):
        mock_service.get_delivery.side_effect = NotFoundError("delivery", "dlv_missing")

        response = app_client.get("/api/v1/webhooks/deliveries/dlv_missing")

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "dlv_missing"

    def test_missing_endpoint_on_delete_is_404(self, app_client, mock_service):
        mock_service.remove_endpoint.return_value = False
        assert app_client.delete("/api/v1/webhooks/endpoints/ghost.example").status_code == 404

    def test_persistence_error_is_500(self, app_client, mock_service):
        mock_service.broadcast.side_effect = PersistenceError("qdrant unavailable")

        response = app_client.post("/api/v1/webhooks/broadcast", json={"event": "code_used"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "persistence_error"

    def test_app_metadata(self, herald_app):
        assert herald_app.title == "Herald"
        assert herald_app.state.run_scheduler is False
