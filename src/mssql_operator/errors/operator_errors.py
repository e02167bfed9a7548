"""
Operator error hierarchy with categorization and kopf integration.

This module defines the error types used throughout the MSSQL operator,
providing clear categorization and conversion into kopf's error types.
"""

import kopf


class OperatorError(Exception):
    """
    Base error class for all operator-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = False,
        delay: int = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize operator error.

        Args:
            message: Human-readable error description
            category: Error category (validation, configuration, backend, api)
            retryable: Whether kopf should retry this operation
            delay: Suggested retry delay in seconds
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self):
        """Convert to appropriate kopf exception type."""
        if self.retryable:
            return kopf.TemporaryError(str(self), delay=self.delay)
        else:
            return kopf.PermanentError(str(self))

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ValidationError(OperatorError):
    """Error in resource specification validation."""

    def __init__(
        self, message: str, field: str | None = None, user_action: str | None = None
    ):
        action = user_action or "Check resource specification and fix validation errors"
        if field:
            message = f"Validation error in field '{field}': {message}"
        super().__init__(
            message=message, category="validation", retryable=False, user_action=action
        )


class ConfigurationError(OperatorError):
    """A referenced ConfigMap or Secret is missing, or lacks a required key."""

    def __init__(
        self,
        message: str,
        resource_kind: str | None = None,
        resource_name: str | None = None,
        missing_key: str | None = None,
        user_action: str | None = None,
    ):
        self.resource_kind = resource_kind
        self.resource_name = resource_name
        self.missing_key = missing_key
        super().__init__(
            message=message,
            category="configuration",
            retryable=False,
            user_action=user_action or "Review and correct configuration",
        )


class BackendOperationError(OperatorError):
    """Unexpected failure reported by SQL Server for a lifecycle operation."""

    def __init__(
        self,
        operation: str,
        database: str,
        message: str,
        error_number: int | None = None,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        self.operation = operation
        self.database = database
        self.error_number = error_number
        detail = f"SQL Server {operation} of database '{database}' failed"
        if error_number is not None:
            detail = f"{detail} (error {error_number})"
        super().__init__(
            message=f"{detail}: {message}",
            category="backend",
            retryable=False,
            user_action=user_action
            or "Check SQL Server availability and the login's permissions",
            cause=cause,
        )


class KubernetesAPIError(OperatorError):
    """Error communicating with Kubernetes API."""

    def __init__(self, message: str, reason: str | None = None, retryable: bool = True):
        if reason:
            message = f"{message} (reason: {reason})"

        # Some K8s errors are not retryable
        non_retryable_reasons = {"Forbidden", "Unauthorized", "Invalid"}
        if reason in non_retryable_reasons:
            retryable = False

        super().__init__(
            message=f"Kubernetes API error: {message}",
            category="api",
            retryable=retryable,
            delay=60,
            user_action="Check RBAC permissions and cluster connectivity",
        )
