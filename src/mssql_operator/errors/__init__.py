"""
Error handling module for the MSSQL operator.

This module provides the error hierarchy that integrates with kopf
and separates configuration problems from backend failures.
"""

from .operator_errors import (
    BackendOperationError,
    ConfigurationError,
    KubernetesAPIError,
    OperatorError,
    ValidationError,
)

__all__ = [
    "OperatorError",
    "ValidationError",
    "ConfigurationError",
    "BackendOperationError",
    "KubernetesAPIError",
]
