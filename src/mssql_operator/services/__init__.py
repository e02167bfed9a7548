"""
Service layer for the MSSQL operator.

This module provides the reconciler, the SQL Server lifecycle operations
and the shadow state they share, separated from the kopf handler layer.
"""

from .database_operations import (
    DatabaseOperations,
    OperationOutcome,
    OperationResult,
)
from .database_reconciler import DatabaseReconciler
from .shadow_state import ShadowStateStore

__all__ = [
    "DatabaseOperations",
    "DatabaseReconciler",
    "OperationOutcome",
    "OperationResult",
    "ShadowStateStore",
]
