"""
Pydantic models for the MSSQLDatabase custom resource.

This module defines the desired-state model of a database request, the
descriptor the operator keeps for every reconciled resource, and the
connection details resolved from the referenced ConfigMap and Secret.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class DropFailurePolicy(StrEnum):
    """How an unexpected backend error on DROP DATABASE is treated.

    ABSORB logs the failure and lets the delete event complete, which is how
    the operator has always behaved. RAISE fails the delete event instead,
    the same way create and rename failures do.
    """

    ABSORB = "absorb"
    RAISE = "raise"


class MSSQLDatabaseSpec(BaseModel):
    """
    Specification for an MSSQLDatabase resource.

    Names the database to maintain and the ConfigMap and Secret holding the
    SQL Server instance address and login.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    db_name: str = Field(
        ..., alias="dbName", description="Name of the database on the server"
    )
    config_map: str = Field(
        ...,
        alias="configMap",
        description="ConfigMap holding the 'instance' key with the server address",
    )
    credentials: str = Field(
        ...,
        description="Secret holding the 'userid' and 'password' keys",
    )

    @field_validator("db_name")
    @classmethod
    def validate_db_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Database name must be a non-empty string")
        return v

    def __str__(self) -> str:
        return f"{self.db_name}:{self.config_map}:{self.credentials}"


class DatabaseResource(BaseModel):
    """
    Identity and desired spec of one reconciled MSSQLDatabase resource.

    The identity (``namespace/name``) is the key of the shadow state; the
    spec is compared on updates to detect renames. Two resources are equal
    only when both their identity and their spec match.
    """

    model_config = {"frozen": True}

    name: str = Field(..., description="Name of the MSSQLDatabase resource")
    namespace: str = Field(..., description="Namespace of the MSSQLDatabase resource")
    spec: MSSQLDatabaseSpec

    @property
    def identity(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def db_name(self) -> str:
        return self.spec.db_name

    @classmethod
    def from_spec(
        cls, spec: dict[str, Any], name: str, namespace: str
    ) -> "DatabaseResource":
        return cls(
            name=name,
            namespace=namespace,
            spec=MSSQLDatabaseSpec.model_validate(spec),
        )


class ConnectionDescriptor(BaseModel):
    """Resolved SQL Server login targeting the administrative catalog."""

    model_config = {"frozen": True}

    server: str = Field(..., description="Server address or instance name")
    user: str = Field(..., description="SQL Server login")
    password: str = Field(..., repr=False, description="Password of the login")
    database: str = Field(..., description="Catalog the connection opens in")
