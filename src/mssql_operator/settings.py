"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mssql_operator.constants import (
    CRD_GROUP,
    CRD_PLURAL,
    CRD_VERSION,
    DEFAULT_ADMIN_CATALOG,
    DEFAULT_LOGIN_TIMEOUT,
    DEFAULT_RECHECK_INTERVAL,
)
from mssql_operator.models.database import DropFailurePolicy


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    All settings have sensible defaults. Override via environment variables
    as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="MSSQL_OPERATOR_NAMESPACES",
        description="Comma-separated list of namespaces to watch (empty = all namespaces)",
    )

    # Custom resource coordinates
    crd_group: str = Field(
        default=CRD_GROUP,
        validation_alias="CRD_GROUP",
        description="API group of the database request resource",
    )
    crd_version: str = Field(
        default=CRD_VERSION,
        validation_alias="CRD_VERSION",
        description="API version of the database request resource",
    )
    crd_plural: str = Field(
        default=CRD_PLURAL,
        validation_alias="CRD_PLURAL",
        description="Plural name of the database request resource",
    )

    # SQL Server
    admin_catalog: str = Field(
        default=DEFAULT_ADMIN_CATALOG,
        validation_alias="ADMIN_CATALOG",
        description="Server-level catalog used for CREATE/DROP/ALTER DATABASE",
    )
    login_timeout_seconds: int = Field(
        default=DEFAULT_LOGIN_TIMEOUT,
        validation_alias="SQL_LOGIN_TIMEOUT_SECONDS",
        description="Timeout in seconds for opening a SQL Server connection",
    )

    # Reconciliation behavior
    recheck_interval_seconds: float = Field(
        default=DEFAULT_RECHECK_INTERVAL,
        validation_alias="RECHECK_INTERVAL_SECONDS",
        description="Interval in seconds between checks that tracked databases still exist",
    )
    drop_failure_policy: DropFailurePolicy = Field(
        default=DropFailurePolicy.ABSORB,
        validation_alias="DROP_FAILURE_POLICY",
        description=(
            "What to do with unexpected backend errors on DROP DATABASE: "
            "'absorb' logs and completes the event, 'raise' fails the event"
        ),
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Parse watched namespaces from comma-separated string.

        Returns:
            List of namespace names, or None to watch all namespaces
        """
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None


# Global settings instance - initialized once at module import
settings = Settings()
