"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for:
- MSSQLDatabase resource specifications
- Reconciled resource descriptors
- Resolved SQL Server connection details
"""

from .database import (
    ConnectionDescriptor,
    DatabaseResource,
    DropFailurePolicy,
    MSSQLDatabaseSpec,
)

__all__ = [
    "ConnectionDescriptor",
    "DatabaseResource",
    "DropFailurePolicy",
    "MSSQLDatabaseSpec",
]
