"""
Tests for the application shell: root, monitoring endpoints and middleware.
"""
from typing import Any

import httpx
import pytest
import structlog
from fastapi import Request
from prometheus_client import REGISTRY

from marketplace.api.dependencies import get_paypal_client
from marketplace.api.main import app, bind_request_context
from marketplace.integrations.identity import create_session_token
from marketplace.integrations.paypal_client import PayPalClient
from marketplace.monitoring.health import HealthCheck


class TestMonitoringEndpoints:
    """Health and metrics."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_root(self, client) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "asset-marketplace"
        assert response.json()["sandbox"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_liveness(self, client) -> None:
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health_checks_database_and_paypal(self, client, fake_paypal) -> None:
        response = await client.get("/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["paypal"]["status"] == "healthy"
        assert fake_paypal.paths == ["/v1/oauth2/token"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_readiness_fails_when_paypal_rejects_credentials(self, client) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        app.dependency_overrides[get_paypal_client] = lambda: PayPalClient(
            api_url="https://api-m.sandbox.paypal.com",
            client_id="bad",
            client_secret="bad",
            transport=httpx.MockTransport(handler),
        )

        response = await client.get("/health/ready")

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["status"] == "unhealthy"
        assert detail["checks"]["paypal"]["status"] == "unhealthy"
        assert detail["checks"]["database"]["status"] == "healthy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics_exposed_after_capture(self, client, seed, auth_headers) -> None:
        def value(name: str, **labels: str) -> float:
            return REGISTRY.get_sample_value(name, labels) or 0.0

        recorded = value("capture_callbacks_total", result="recorded")
        created = value("purchases_recorded_total", result="created")
        invalidated = value("view_invalidations_total", view="asset_detail")

        await client.get(
            "/api/paypal/capture",
            params={"token": "ORDER-M", "assetId": str(seed.approved_photo_id), "PayerID": "P1"},
            headers=auth_headers(seed.buyer_id),
        )

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert value("capture_callbacks_total", result="recorded") == recorded + 1
        assert value("purchases_recorded_total", result="created") == created + 1
        assert value("view_invalidations_total", view="asset_detail") == invalidated + 1
        assert 'view_invalidations_total{view="asset_detail"}' in response.text
        assert 'paypal_api_requests_total{operation="capture_order"' in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_every_response_carries_request_id(self, client) -> None:
        first = await client.get("/health/live")
        second = await client.get("/health/live")

        assert first.headers["x-request-id"]
        assert first.headers["x-request-id"] != second.headers["x-request-id"]


def make_request(headers: Any = ()) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/dashboard/purchases",
            "headers": list(headers),
            "query_string": b"",
        }
    )


class TestRequestContextBinding:
    """Caller and request ID bound for logging before routing."""

    @pytest.mark.unit
    def test_binds_user_and_request_id(self) -> None:
        token = create_session_token("user-buyer")
        request = make_request([(b"authorization", f"Bearer {token}".encode())])

        try:
            fields = bind_request_context(request)
            bound = structlog.contextvars.get_contextvars()
        finally:
            structlog.contextvars.clear_contextvars()

        assert bound["user_id"] == "user-buyer"
        assert bound["request_id"] == fields["request_id"] == request.state.request_id
        assert bound["path"] == "/dashboard/purchases"
        assert request.state.session.user_id == "user-buyer"

    @pytest.mark.unit
    def test_anonymous_request_binds_no_user(self) -> None:
        request = make_request()

        try:
            bind_request_context(request)
            bound = structlog.contextvars.get_contextvars()
        finally:
            structlog.contextvars.clear_contextvars()

        assert bound["user_id"] is None
        assert request.state.session is None


class TestHealthCheck:
    """HealthCheck service used directly."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_check_all_reports_each_dependency(
        self, session_factory: Any, paypal_client: Any
    ) -> None:
        health = HealthCheck(session_factory=session_factory, paypal_client=paypal_client)

        result = await health.check_all()

        assert result["status"] == "healthy"
        assert set(result["checks"]) == {"database", "paypal"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_liveness_touches_nothing(self, fake_paypal: Any, paypal_client: Any) -> None:
        health = HealthCheck(paypal_client=paypal_client)

        assert (await health.liveness())["status"] == "alive"
        assert fake_paypal.requests == []
