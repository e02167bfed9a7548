"""
Unit tests for MetricsServer HTTP endpoints and the metrics collector.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
in-process.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from mssql_operator.observability.metrics import (
    MetricsServer,
    get_metrics_registry,
    metrics_collector,
)


def _sample(name: str, labels: dict | None = None) -> float:
    return get_metrics_registry().get_sample_value(name, labels or {}) or 0.0


@pytest.fixture
def metrics_server():
    """Create a fresh MetricsServer instance per test."""
    return MetricsServer(port=0)


@pytest.fixture
async def client(metrics_server):
    """Create an aiohttp TestClient from the MetricsServer app."""
    server = TestServer(metrics_server.app)
    async with TestClient(server) as cli:
        yield cli


class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    @pytest.mark.asyncio
    async def test_metrics_returns_operator_metrics(self, client):
        metrics_collector.set_tracked_databases(3)

        resp = await client.get("/metrics")

        assert resp.status == 200
        body = await resp.text()
        assert "mssql_operator_tracked_databases 3.0" in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self, client):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "mssql_operator.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await client.get("/metrics")
        assert resp.status == 500
        body = await resp.text()
        assert "RuntimeError" in body


class TestHealthzEndpoint:
    """Tests for ``GET /healthz``."""

    @pytest.mark.asyncio
    async def test_healthz_returns_200_ok(self, client):
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.text() == "ok"


class TestMetricsCollector:
    """Tests for the metrics collector."""

    @pytest.mark.asyncio
    async def test_tracks_successful_event(self):
        labels = {"event_type": "added", "namespace": "metrics-ns", "result": "success"}
        before = _sample("mssql_operator_reconciliation_total", labels)

        async with metrics_collector.track_reconciliation("added", "metrics-ns"):
            pass

        assert _sample("mssql_operator_reconciliation_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_tracks_failed_event(self):
        labels = {
            "event_type": "deleted",
            "namespace": "metrics-ns",
            "error_type": "ValueError",
        }
        before = _sample("mssql_operator_reconciliation_errors_total", labels)

        with pytest.raises(ValueError):
            async with metrics_collector.track_reconciliation("deleted", "metrics-ns"):
                raise ValueError("boom")

        assert _sample("mssql_operator_reconciliation_errors_total", labels) == before + 1

    def test_counts_database_operations(self):
        labels = {"operation": "create", "outcome": "already_satisfied"}
        before = _sample("mssql_operator_database_operations_total", labels)

        metrics_collector.record_database_operation("create", "already_satisfied")

        assert _sample("mssql_operator_database_operations_total", labels) == before + 1

    def test_counts_recheck_recreations(self):
        before = _sample("mssql_operator_recheck_recreated_total")

        metrics_collector.record_recheck_recreated()

        assert _sample("mssql_operator_recheck_recreated_total") == before + 1
