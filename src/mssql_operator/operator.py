#!/usr/bin/env python3
"""
MSSQL Operator - Main entry point for the Kopf-based MSSQL database operator.

This operator keeps SQL Server databases in line with MSSQLDatabase
resources:
- Creates the database when a resource is added
- Renames it when the resource's dbName changes
- Drops it when the resource is deleted
- Periodically recreates tracked databases that were dropped out of band

Usage:
    python -m mssql_operator.operator
    # Or with kopf directly:
    kopf run -m mssql_operator.operator --all-namespaces

Environment Variables:
    MSSQL_OPERATOR_NAMESPACES: Comma-separated list of namespaces to watch
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    RECHECK_INTERVAL_SECONDS: Interval between existence rechecks
    DROP_FAILURE_POLICY: 'absorb' or 'raise'
"""

import asyncio
import contextlib
import logging
import sys

import kopf

# Importing the handler module registers its decorators with kopf
from mssql_operator.handlers import database as database_handler
from mssql_operator.observability.logging import setup_structured_logging
from mssql_operator.observability.metrics import MetricsServer
from mssql_operator.settings import settings as operator_settings
from mssql_operator.utils.kubernetes import load_kubernetes_config

# Global references for cleanup
_global_metrics_server: MetricsServer | None = None
_recheck_task: asyncio.Task | None = None


def configure_logging() -> None:
    """Configure structured logging for the operator based on operator_settings."""
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
    )


def get_watched_namespaces() -> list[str] | None:
    """
    Get the list of namespaces to watch from operator_settings.

    Returns:
        List of namespace names, or None to watch all namespaces
    """
    return operator_settings.watched_namespaces


async def recheck_loop(interval: float) -> None:
    """
    Periodically verify that every tracked database still exists.

    The first check runs one interval after startup. The loop runs until
    cancelled.

    Args:
        interval: Seconds between checks
    """
    reconciler = database_handler.get_reconciler()
    while True:
        await asyncio.sleep(interval)
        recreated = await reconciler.check_current_state()
        if recreated:
            logging.info(f"Recheck recreated databases for: {', '.join(recreated)}")


@kopf.on.startup()
async def startup_handler(settings: kopf.OperatorSettings, **_) -> None:
    """
    Operator startup configuration.

    Loads the Kubernetes configuration, starts the metrics endpoint and the
    periodic recheck of tracked databases.
    """
    logging.info("Starting MSSQL Operator...")
    settings.watching.reconnect_backoff = 1.0

    watched_namespaces = get_watched_namespaces()
    if watched_namespaces:
        logging.info(f"Watching namespaces: {', '.join(watched_namespaces)}")
    else:
        logging.info("Watching all namespaces (cluster-wide mode)")

    load_kubernetes_config()

    global _global_metrics_server
    try:
        metrics_server = MetricsServer(
            port=operator_settings.metrics_port, host=operator_settings.metrics_host
        )
        await metrics_server.start()
        _global_metrics_server = metrics_server
    except Exception as e:
        # The operator works without its metrics endpoint
        logging.error(f"Failed to start metrics server: {e}")
        logging.warning("Continuing without metrics server")

    global _recheck_task
    _recheck_task = asyncio.create_task(
        recheck_loop(operator_settings.recheck_interval_seconds)
    )
    logging.info(
        f"Database recheck scheduled every "
        f"{operator_settings.recheck_interval_seconds} seconds"
    )


@kopf.on.cleanup()
async def cleanup_handler(**_) -> None:
    """Stop the recheck loop and the metrics server on shutdown."""
    logging.info("Shutting down MSSQL Operator...")

    global _recheck_task
    if _recheck_task:
        _recheck_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _recheck_task
        _recheck_task = None

    global _global_metrics_server
    if _global_metrics_server:
        await _global_metrics_server.stop()
        _global_metrics_server = None


@kopf.on.probe(id="tracked_databases")
async def report_tracked_databases(**_) -> int:
    """Report how many resources are held in the shadow state."""
    return len(database_handler.get_reconciler().store)


def main() -> None:
    """
    Main entry point for the operator.

    Configures logging, determines the namespace scope and runs kopf.
    """
    configure_logging()

    watched_namespaces = get_watched_namespaces()

    try:
        if watched_namespaces:
            kopf.run(
                namespaces=watched_namespaces,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
                standalone=True,
            )
        else:
            kopf.run(
                clusterwide=True,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
                standalone=True,
            )
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Operator failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
