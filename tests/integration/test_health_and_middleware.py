"""
Integration tests for health, metrics and middleware (CORS, correlation_id).
"""
import uuid

import pytest


@pytest.mark.integration
def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.integration
def test_correlation_id_generated(client):
    response = client.get("/health")

    correlation_id = response.headers["X-Correlation-ID"]
    try:
        uuid.UUID(correlation_id)
    except ValueError:
        pytest.fail(f"Correlation ID is not a valid UUID: {correlation_id}")


@pytest.mark.integration
def test_correlation_id_preserved_on_errors(client):
    response = client.get("/admin/bookings/missing", headers={"X-Correlation-ID": "req-123"})

    assert response.status_code == 404
    assert response.headers["X-Correlation-ID"] == "req-123"
    assert response.json()["correlation_id"] == "req-123"


@pytest.mark.integration
def test_cors_headers_included(client):
    response = client.get("/health", headers={"Origin": "http://localhost:3000"})

    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.integration
def test_metrics_endpoint_exports_counters(client):
    client.get("/labs/discount/validate", params={"code": "NOPE", "subtotal": 22000})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "# TYPE discount_validations_total counter" in response.text
    assert 'discount_validations_total{result="NotFound"} 1' in response.text
