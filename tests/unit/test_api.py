"""
Unit Tests - HTTP API
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from storefront_analytics.analytics import InMemoryDataSource
from storefront_analytics.serving import create_app


def recent(hours: float = 1) -> datetime:
    return datetime.now().astimezone() - timedelta(hours=hours)


@pytest.fixture
def live_source(sample_products):
    """Small dataset dated relative to the wall clock the API runs on"""
    orders = [
        {"id": f"o-{i}", "status": status, "total": 100.0, "discount": 0, "created_at": recent()}
        for i, status in enumerate(["paid", "delivered", "pending"])
    ]
    carts = [
        {"id": f"ci-{i}", "session_id": f"s-{i}", "product_id": "p-2", "size": "42", "created_at": recent()}
        for i in range(4)
    ]
    events = [
        {"id": "ev-1", "session_id": "v-1", "event_type": "page_view", "page_url": "/", "created_at": recent(2)},
        {"id": "ev-2", "session_id": "v-1", "event_type": "page_view", "page_url": "/sale", "created_at": recent(1)},
        {"id": "ev-3", "session_id": "v-2", "event_type": "page_view", "page_url": "/", "created_at": recent(1)},
    ]
    return InMemoryDataSource({
        "products": sample_products,
        "orders": orders,
        "cart_items": carts,
        "analytics_events": events,
        "payments": [{"id": "pay-1", "amount": 100.0, "status": "paid", "created_at": recent()}],
    })


@pytest.fixture
def client(live_source):
    with TestClient(create_app(data_source=live_source)) as client:
        yield client


class TestHealth:

    def test_liveness(self, client):
        assert client.get("/api/v1/health/live").json() == {"status": "alive"}

    def test_readiness(self, client):
        response = client.get("/api/v1/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_health_skips_database_for_in_memory_source(self, client):
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert "database" not in body["checks"]
        assert "pipelines" in body["checks"]

    def test_request_id_header(self, client):
        response = client.get("/api/v1/health/live", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"
        assert "X-Response-Time" in response.headers


class TestReports:

    def test_ecommerce(self, client):
        response = client.get("/api/v1/analytics/ecommerce", params={"range": "7days"})
        assert response.status_code == 200

        body = response.json()
        assert body["pipeline"]["report"] == "ecommerce"
        assert body["pipeline"]["sequence"] == 1
        kpis = body["snapshot"]["data"]["cart_checkout"]
        assert kpis["total_carts"] == 4
        assert kpis["completed_checkouts"] == 2
        assert kpis["cart_abandonment_rate"] == 50.0

    def test_live_pipeline_is_reused(self, client):
        client.get("/api/v1/analytics/ecommerce")
        client.get("/api/v1/analytics/ecommerce", params={"range": "7days"})
        assert client.get("/api/v1/health").json()["checks"]["pipelines"]["live"] == 1

    def test_traffic(self, client):
        body = client.get("/api/v1/analytics/traffic", params={"range": "7days"}).json()
        kpis = body["snapshot"]["data"]["kpis"]
        assert kpis["unique_visitors"] == 2

    def test_live_stats(self, client):
        data = client.get("/api/v1/analytics/live").json()["snapshot"]["data"]
        assert data["total_orders"] == 3
        assert data["pending_orders"] == 2
        assert data["delivered_orders"] == 1
        assert client.get("/api/v1/analytics/live").json()["snapshot"]["window"] is None

    def test_custom_range(self, client):
        params = {
            "range": "custom",
            "start": recent(48).isoformat(),
            "end": datetime.now().astimezone().isoformat(),
        }
        response = client.get("/api/v1/analytics/ecommerce", params=params)
        assert response.status_code == 200
        assert response.json()["pipeline"]["date_range"] == "custom"

    def test_unknown_range_is_rejected(self, client):
        response = client.get("/api/v1/analytics/ecommerce", params={"range": "fortnight"})
        assert response.status_code == 400

    def test_inverted_custom_range_is_rejected(self, client):
        params = {
            "range": "custom",
            "start": datetime.now().astimezone().isoformat(),
            "end": recent(48).isoformat(),
        }
        assert client.get("/api/v1/analytics/ecommerce", params=params).status_code == 400


class TestRefetch:

    def test_refetch_bumps_sequence(self, client):
        client.get("/api/v1/analytics/ecommerce")
        response = client.post("/api/v1/analytics/ecommerce/refetch")

        assert response.status_code == 200
        assert response.json()["pipeline"]["sequence"] == 2

    def test_unknown_report(self, client):
        assert client.post("/api/v1/analytics/inventory/refetch").status_code == 404

    def test_custom_range_cannot_be_refetched(self, client):
        response = client.post("/api/v1/analytics/ecommerce/refetch", params={"range": "custom"})
        assert response.status_code == 400


class TestFailures:

    def test_failed_report_returns_503_with_notification(self, client, live_source):
        live_source.fail("orders")
        response = client.get("/api/v1/analytics/ecommerce", params={"range": "30days"})

        assert response.status_code == 503
        assert response.json()["detail"]["message"] == "Failed to fetch e-commerce analytics"

        notifications = client.get("/api/v1/analytics/notifications").json()
        assert notifications[0]["title"] == "Failed to fetch e-commerce analytics"
        assert notifications[0]["severity"] == "error"

    def test_registry_missing(self):
        app = create_app(data_source=InMemoryDataSource())
        client = TestClient(app)
        # lifespan not started: no registry attached
        assert client.get("/api/v1/analytics/live").status_code == 503
        assert client.get("/api/v1/health/ready").status_code == 503


class TestMetrics:

    def test_metrics_endpoint(self, client):
        client.get("/api/v1/analytics/ecommerce")
        response = client.get("/metrics/")
        assert response.status_code == 200
        assert "storefront_analytics_cycles_total" in response.text
