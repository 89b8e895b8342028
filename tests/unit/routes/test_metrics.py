"""
Unit tests for metrics endpoint.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sync_stays.main import app
from sync_stays.metrics import (
    bookings_enriched,
    bookings_reconciled,
    feed_fetch_duration,
    feed_fetch_total,
    runs_declined,
)


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client."""
    return TestClient(app)


@pytest.mark.unit
def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    """Test that /metrics endpoint returns Prometheus text format."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]


@pytest.mark.unit
def test_metrics_endpoint_contains_sync_metrics(client: TestClient) -> None:
    """Test that /metrics exposes the feed, ledger and guard metrics."""
    feed_fetch_total.labels(source_type="airbnb", status="success").inc()
    feed_fetch_duration.labels(source_type="airbnb").observe(0.4)
    bookings_reconciled.labels(action="created").inc(3)
    bookings_enriched.labels(match="exact_dates").inc()
    runs_declined.labels(reason="recent_run").inc()

    body = client.get("/metrics").text

    assert "stays_feed_fetches_total" in body
    assert "stays_feed_fetch_duration_seconds" in body
    assert "stays_bookings_reconciled_total" in body
    assert "stays_bookings_enriched_total" in body
    assert "stays_runs_declined_total" in body
