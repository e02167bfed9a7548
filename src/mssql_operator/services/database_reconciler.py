"""
Reconciler for MSSQLDatabase resources.

The reconciler receives lifecycle events for database requests and drives
SQL Server towards the requested state:

- added: create the database (an existing one counts as success)
- updated: rename the database when ``dbName`` changed
- deleted: drop the database (a missing one counts as success)
- periodic recheck: create tracked databases that disappeared out of band
- error / bookmark watch events: logged or ignored

Every event runs entirely inside the shadow state's exclusive section, so
one event, including all of its backend calls, completes before the next
one starts, even for unrelated resources.
"""

import asyncio
import functools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from ..constants import (
    EVENT_ADDED,
    EVENT_BOOKMARK,
    EVENT_DELETED,
    EVENT_ERROR,
    EVENT_MODIFIED,
)
from ..errors import ValidationError
from ..models.database import DatabaseResource, DropFailurePolicy
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector
from ..utils.credentials import CredentialResolver
from .database_operations import DatabaseOperations, OperationOutcome
from .shadow_state import ShadowStateStore


def runs_to_completion(method):
    """
    Let an event finish even if the awaiting task is cancelled.

    Blocking backend calls run in worker threads that cannot be interrupted.
    The event body therefore runs as its own task; a cancelled caller waits
    for it to finish, holding the store the whole time, and only then sees
    the cancellation.
    """

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        task = asyncio.ensure_future(method(self, *args, **kwargs))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            while not task.done():
                try:
                    await asyncio.wait({task})
                except asyncio.CancelledError:
                    continue
            if not task.cancelled() and task.exception() is not None:
                self.logger.warning(
                    f"Cancelled {method.__name__} finished with: {task.exception()}"
                )
            raise

    return wrapper


class DatabaseReconciler:
    """Event-driven reconciliation of database requests against SQL Server."""

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        operations: DatabaseOperations | None = None,
        store: ShadowStateStore | None = None,
        drop_failure_policy: DropFailurePolicy = DropFailurePolicy.ABSORB,
    ):
        """
        Initialize the reconciler.

        Args:
            resolver: Resolves SQL Server connections from resource references
            operations: Lifecycle operations against SQL Server
            store: Shadow state of reconciled resources
            drop_failure_policy: Whether unexpected drop errors fail the event
        """
        self.resolver = resolver or CredentialResolver()
        self.operations = operations or DatabaseOperations()
        self.store = store or ShadowStateStore()
        self.drop_failure_policy = drop_failure_policy
        self.logger = OperatorLogger(self.__class__.__name__)

    @asynccontextmanager
    async def _event(
        self, event_type: str, resource: DatabaseResource
    ) -> AsyncIterator[None]:
        """Run one event body exclusively, with logging and metrics."""
        start_time = time.time()
        self.logger.log_reconciliation_start(
            event_type=event_type,
            resource_name=resource.name,
            namespace=resource.namespace,
        )
        async with metrics_collector.track_reconciliation(
            event_type=event_type, namespace=resource.namespace
        ):
            async with self.store.exclusive():
                try:
                    yield
                except Exception as e:
                    self.logger.log_reconciliation_error(
                        event_type=event_type,
                        resource_name=resource.name,
                        namespace=resource.namespace,
                        error=e,
                        duration=time.time() - start_time,
                    )
                    raise
                finally:
                    metrics_collector.set_tracked_databases(len(self.store))

        self.logger.log_reconciliation_success(
            event_type=event_type,
            resource_name=resource.name,
            namespace=resource.namespace,
            duration=time.time() - start_time,
        )

    async def dispatch(self, event_type: str, resource: DatabaseResource) -> None:
        """
        Route a raw watch event to its callback.

        Args:
            event_type: Watch event type (ADDED, MODIFIED, DELETED, ERROR, BOOKMARK)
            resource: Resource the event was delivered for

        Raises:
            ValidationError: If the event type is unknown
        """
        callbacks: dict[str, Callable[[DatabaseResource], Awaitable[None]]] = {
            EVENT_ADDED: self.on_added,
            EVENT_MODIFIED: self.on_updated,
            EVENT_DELETED: self.on_deleted,
            EVENT_ERROR: self.on_error,
            EVENT_BOOKMARK: self.on_bookmarked,
        }
        callback = callbacks.get(event_type)
        if callback is None:
            raise ValidationError(f"Unknown watch event type '{event_type}'")
        await callback(resource)

    @runs_to_completion
    async def on_added(self, resource: DatabaseResource) -> None:
        """Create the requested database and start tracking the resource."""
        async with self._event("added", resource):
            await self._create_database(resource)

    @runs_to_completion
    async def on_updated(self, resource: DatabaseResource) -> None:
        """
        Apply a spec change.

        Renames the database when ``dbName`` changed. The shadow entry is only
        replaced once the rename succeeded, so a failed rename keeps the old
        name tracked.
        """
        async with self._event("updated", resource):
            self.logger.info(
                f"MSSQLDB {resource.name} was updated. ({resource.db_name})"
            )
            current = self.store.get(resource.identity)

            if current is None:
                # Nothing reconciled for this identity in this process yet
                self.logger.warning(
                    f"MSSQLDB {resource.identity} is not tracked, creating "
                    f"database {resource.db_name}"
                )
                await self._create_database(resource)
                return

            if current.db_name != resource.db_name:
                connection = await self.resolver.resolve(resource)
                result = await asyncio.to_thread(
                    self.operations.rename,
                    connection,
                    current.db_name,
                    resource.db_name,
                )
                if not result.converged:
                    raise result.to_error()
                self.logger.info(
                    f"Database successfully renamed from {current.db_name} "
                    f"to {resource.db_name}"
                )

            self.store.put(resource)

    @runs_to_completion
    async def on_deleted(self, resource: DatabaseResource) -> None:
        """
        Drop the database and stop tracking the resource.

        A database that is already gone counts as dropped. Any other backend
        failure is handled according to ``drop_failure_policy``: ABSORB logs
        it and stops tracking the resource, since no further delete event will
        arrive for it; RAISE fails the event and keeps the entry.
        """
        async with self._event("deleted", resource):
            self.logger.info(
                f"MSSQLDB {resource.name} must be deleted! ({resource.db_name})"
            )
            connection = await self.resolver.resolve(resource)
            result = await asyncio.to_thread(
                self.operations.drop, connection, resource.db_name
            )

            if result.outcome is OperationOutcome.ALREADY_ABSENT:
                self.logger.error(result.message, database_name=resource.db_name)
            elif result.outcome is OperationOutcome.FAILED:
                self.logger.error(
                    f"Failed to drop database {resource.db_name}: {result.message}",
                    database_name=resource.db_name,
                    error_number=result.error_number,
                )
                if self.drop_failure_policy is DropFailurePolicy.RAISE:
                    raise result.to_error()
            else:
                self.logger.info(
                    f"Database {resource.db_name} successfully dropped!"
                )

            self.store.remove(resource.identity)

    async def on_error(self, resource: DatabaseResource) -> None:
        """Log a watch error for the resource; state is left untouched."""
        self.logger.error(f"ERROR on {resource.name}", namespace=resource.namespace)

    async def on_bookmarked(self, resource: DatabaseResource) -> None:
        """Bookmarks carry no desired state."""

    @runs_to_completion
    async def check_current_state(self) -> list[str]:
        """
        Recreate tracked databases that no longer exist on the server.

        Failures for one resource are logged and the check moves on to the
        next one; this method never raises.

        Returns:
            Identities of the resources whose database was created again
        """
        recreated: list[str] = []
        async with self.store.exclusive():
            for resource in self.store.snapshot():
                try:
                    connection = await self.resolver.resolve(resource)
                    found = await asyncio.to_thread(
                        self.operations.exists, connection, resource.db_name
                    )
                    if found:
                        continue

                    self.logger.warning(
                        f"Database {resource.db_name} ({resource.name}) was not found!"
                    )
                    await self._create_database(resource)
                    metrics_collector.record_recheck_recreated()
                    recreated.append(resource.identity)
                except Exception as e:
                    self.logger.error(
                        f"Recheck of {resource.identity} failed: {e}",
                        database_name=resource.db_name,
                    )
        return recreated

    async def _create_database(self, resource: DatabaseResource) -> None:
        """Create the database and track the resource; caller holds the store."""
        self.logger.info(f"Database {resource.db_name} must be created.")

        connection = await self.resolver.resolve(resource)
        result = await asyncio.to_thread(
            self.operations.create, connection, resource.db_name
        )

        if result.outcome is OperationOutcome.ALREADY_SATISFIED:
            self.logger.warning(result.message, database_name=resource.db_name)
        elif result.outcome is OperationOutcome.FAILED:
            raise result.to_error()
        else:
            self.logger.info(f"Database {resource.db_name} successfully created!")

        self.store.put(resource)

    @property
    def tracked(self) -> list[DatabaseResource]:
        return self.store.snapshot()
