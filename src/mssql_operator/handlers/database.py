"""
MSSQLDatabase handlers - Binds kopf lifecycle events to the reconciler.

kopf delivers create/resume, update and delete events for MSSQLDatabase
resources. Each handler turns the event into a DatabaseResource and hands
it to the process-wide DatabaseReconciler. Operator errors are surfaced to
kopf as permanent errors so kopf reports them on the resource without
retrying; the next event or the periodic recheck gets another chance.
"""

import logging
from typing import Any

import kopf
import pydantic

from mssql_operator.errors import OperatorError, ValidationError
from mssql_operator.models.database import DatabaseResource
from mssql_operator.services import (
    DatabaseOperations,
    DatabaseReconciler,
)
from mssql_operator.settings import settings
from mssql_operator.utils.credentials import CredentialResolver
from mssql_operator.utils.handler_logging import log_handler_entry

logger = logging.getLogger(__name__)

_reconciler: DatabaseReconciler | None = None


def get_reconciler() -> DatabaseReconciler:
    """Get the process-wide reconciler, creating it on first use."""
    global _reconciler
    if _reconciler is None:
        _reconciler = DatabaseReconciler(
            resolver=CredentialResolver(admin_catalog=settings.admin_catalog),
            operations=DatabaseOperations(
                login_timeout=settings.login_timeout_seconds
            ),
            drop_failure_policy=settings.drop_failure_policy,
        )
    return _reconciler


def _to_resource(spec: dict[str, Any], name: str, namespace: str) -> DatabaseResource:
    try:
        return DatabaseResource.from_spec(spec, name=name, namespace=namespace)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid MSSQLDB {namespace}/{name}: {e}", field="spec"
        ).as_kopf_error() from e


async def _surface(resource: DatabaseResource, error: OperatorError) -> Exception:
    await get_reconciler().on_error(resource)
    return error.as_kopf_error()


@kopf.on.create(settings.crd_plural, group=settings.crd_group, version=settings.crd_version)
@kopf.on.resume(settings.crd_plural, group=settings.crd_group, version=settings.crd_version)
async def ensure_database(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    **kwargs: Any,
) -> None:
    """
    Ensure the requested database exists.

    Runs for new resources and, on operator start, for every existing one,
    which rebuilds the shadow state after a restart.

    Args:
        spec: MSSQLDatabase resource specification
        name: Name of the MSSQLDatabase resource
        namespace: Namespace where the resource exists
    """
    log_handler_entry("create/resume", name, namespace)
    resource = _to_resource(spec, name, namespace)
    try:
        await get_reconciler().on_added(resource)
    except OperatorError as e:
        raise await _surface(resource, e) from e


@kopf.on.update(settings.crd_plural, group=settings.crd_group, version=settings.crd_version)
async def update_database(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    **kwargs: Any,
) -> None:
    """
    Apply changes to an MSSQLDatabase specification.

    Args:
        spec: New MSSQLDatabase resource specification
        name: Name of the MSSQLDatabase resource
        namespace: Namespace where the resource exists
    """
    log_handler_entry("update", name, namespace)
    resource = _to_resource(spec, name, namespace)
    try:
        await get_reconciler().on_updated(resource)
    except OperatorError as e:
        raise await _surface(resource, e) from e


@kopf.on.delete(settings.crd_plural, group=settings.crd_group, version=settings.crd_version)
async def delete_database(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    **kwargs: Any,
) -> None:
    """
    Drop the database of a deleted MSSQLDatabase resource.

    Args:
        spec: MSSQLDatabase resource specification
        name: Name of the MSSQLDatabase resource
        namespace: Namespace where the resource exists
    """
    log_handler_entry("delete", name, namespace)
    resource = _to_resource(spec, name, namespace)
    try:
        await get_reconciler().on_deleted(resource)
    except OperatorError as e:
        raise await _surface(resource, e) from e
