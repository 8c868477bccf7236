"""
Tests for request ids, Prometheus metrics and health checks.
"""
import uuid

from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from app.core.metrics import MetricsCollector, normalize_route
from app.main import app, create_app


def request_count(route: str, status_code: str, method: str = "GET") -> float:
    value = app.state.metrics.registry.get_sample_value(
        "http_server_requests_total",
        {"method": method, "route": route, "status_code": status_code},
    )
    return value or 0.0


class TestRequestId:

    def test_generated_when_missing(self, client: TestClient):
        response = client.get("/health")
        uuid.UUID(response.headers["X-Request-ID"])

    def test_propagated(self, client: TestClient):
        response = client.get("/health", headers={"X-Request-ID": "req_abc_123"})
        assert response.headers["X-Request-ID"] == "req_abc_123"

    def test_present_on_errors(self, client: TestClient):
        response = client.get("/auth/profile", headers={"X-Request-ID": "req_err"})
        assert response.status_code == 401
        assert response.headers["X-Request-ID"] == "req_err"


class TestMetrics:

    def test_requests_are_counted(self, client: TestClient, auth_headers):
        before = request_count("/users/roles", "200")
        client.get("/users/roles", headers=auth_headers)
        client.get("/users/roles", headers=auth_headers)
        assert request_count("/users/roles", "200") == before + 2

    def test_status_code_label(self, client: TestClient):
        before = request_count("/auth/profile", "401")
        client.get("/auth/profile")
        assert request_count("/auth/profile", "401") == before + 1

    def test_health_checks_not_counted(self, client: TestClient):
        client.get("/healthz")
        assert request_count("/healthz", "200") == 0

    def test_exposition(self, client: TestClient):
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "http_server_requests_total" in response.text
        assert "http_server_requests_duration_seconds_bucket" in response.text

    def test_internal_metrics_alias(self, client: TestClient):
        assert client.get("/internal-metrics").status_code == 200

    def test_apps_do_not_share_registries(self):
        first = create_app()
        second = create_app(MetricsCollector(CollectorRegistry()))
        assert first.state.metrics.registry is not second.state.metrics.registry


class TestNormalizeRoute:

    def test_numeric_segment(self):
        assert normalize_route("/users/42/role") == "/users/{id}/role"

    def test_uuid_segment(self):
        path = f"/admin/c/acme/users/{uuid.uuid4()}/status"
        assert normalize_route(path) == "/admin/c/acme/users/{id}/status"

    def test_plain_path_unchanged(self):
        assert normalize_route("/c/acme/environment") == "/c/acme/environment"

    def test_root(self):
        assert normalize_route("/") == "/"


class TestHealth:

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_readyz(self, client: TestClient):
        response = client.get("/readyz")
        assert response.status_code == 200
        assert response.json()["db"] is True

    def test_root(self, client: TestClient):
        assert client.get("/").json()["name"] == "workspace-platform"
