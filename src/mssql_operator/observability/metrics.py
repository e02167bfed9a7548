"""
Prometheus metrics for the MSSQL operator.

This module provides metrics collection for reconciliation events and
SQL Server lifecycle operations, plus the HTTP server that exposes them.
"""

import logging
import time
from contextlib import asynccontextmanager

# aiohttp is provided transitively by kopf
from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry: CollectorRegistry | None = None

RECONCILIATION_TOTAL = Counter(
    "mssql_operator_reconciliation_total",
    "Total number of handled reconciliation events",
    ["event_type", "namespace", "result"],
    registry=None,
)

RECONCILIATION_DURATION = Histogram(
    "mssql_operator_reconciliation_duration_seconds",
    "Time spent handling reconciliation events",
    ["event_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=None,
)

RECONCILIATION_ERRORS = Counter(
    "mssql_operator_reconciliation_errors_total",
    "Total number of reconciliation events that failed",
    ["event_type", "namespace", "error_type"],
    registry=None,
)

DATABASE_OPERATIONS = Counter(
    "mssql_operator_database_operations_total",
    "SQL Server lifecycle operations by outcome",
    ["operation", "outcome"],
    registry=None,
)

TRACKED_DATABASES = Gauge(
    "mssql_operator_tracked_databases",
    "Number of resources currently held in the shadow state",
    [],
    registry=None,
)

RECHECK_RECREATED_TOTAL = Counter(
    "mssql_operator_recheck_recreated_total",
    "Databases found missing by the periodic recheck and created again",
    [],
    registry=None,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry

    if _metrics_registry is None:
        _metrics_registry = CollectorRegistry()

        for metric in [
            RECONCILIATION_TOTAL,
            RECONCILIATION_DURATION,
            RECONCILIATION_ERRORS,
            DATABASE_OPERATIONS,
            TRACKED_DATABASES,
            RECHECK_RECREATED_TOTAL,
        ]:
            _metrics_registry.register(metric)

    return _metrics_registry


class MetricsCollector:
    """Collects and manages metrics for the MSSQL operator."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(self, event_type: str, namespace: str):
        """
        Context manager to track one reconciliation event.

        Args:
            event_type: Kind of event being handled
            namespace: Namespace of the resource
        """
        start_time = time.time()
        result = "unknown"

        try:
            yield
            result = "success"
        except Exception as e:
            result = "error"
            RECONCILIATION_ERRORS.labels(
                event_type=event_type,
                namespace=namespace,
                error_type=type(e).__name__,
            ).inc()
            raise
        finally:
            RECONCILIATION_TOTAL.labels(
                event_type=event_type, namespace=namespace, result=result
            ).inc()
            RECONCILIATION_DURATION.labels(event_type=event_type).observe(
                time.time() - start_time
            )

    def record_database_operation(self, operation: str, outcome: str) -> None:
        """Count one lifecycle operation by its outcome."""
        DATABASE_OPERATIONS.labels(operation=operation, outcome=outcome).inc()

    def set_tracked_databases(self, count: int) -> None:
        """Update the shadow state size gauge."""
        TRACKED_DATABASES.set(count)

    def record_recheck_recreated(self) -> None:
        """Count a database restored by the periodic recheck."""
        RECHECK_RECREATED_TOTAL.inc()


class MetricsServer:
    """HTTP server for exposing Prometheus metrics."""

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        """
        Initialize metrics server.

        Args:
            port: Port to serve metrics on
            host: Host interface to bind to
        """
        self.port = port
        self.host = host
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes for the metrics server."""
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/healthz", self._healthz_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            metrics_data = generate_latest(get_metrics_registry())
            return Response(body=metrics_data, content_type=CONTENT_TYPE_LATEST)
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )

    async def _healthz_handler(self, request: Request) -> Response:
        """Handle /healthz endpoint for Kubernetes compatibility."""
        return Response(text="ok")

    async def start(self) -> None:
        """Start the metrics server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            logger.info(f"Metrics server started on {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the metrics server."""
        try:
            if self.site:
                await self.site.stop()
                self.site = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None

            logger.info("Metrics server stopped")
        except Exception as e:
            logger.error(f"Error stopping metrics server: {e}")


# Global metrics collector instance
metrics_collector = MetricsCollector()
