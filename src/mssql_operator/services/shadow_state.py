"""
In-memory shadow of reconciled MSSQLDatabase resources.

The store maps a resource identity (``namespace/name``) to the last
descriptor that was reconciled for it. It is guarded by a single lock that
the reconciler holds for the whole of each event, backend calls included,
so all reconciliation work in the process runs one event at a time. That
caps throughput at sequential processing; DDL on the target server
serializes anyway.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..models.database import DatabaseResource


class ShadowStateStore:
    """Identity to DatabaseResource mapping with one exclusive section."""

    def __init__(self):
        self._entries: dict[str, DatabaseResource] = {}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator["ShadowStateStore"]:
        """Hold the store for the duration of one event."""
        async with self._lock:
            yield self

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def _require_lock(self) -> None:
        if not self._lock.locked():
            raise RuntimeError("Shadow state mutated outside of exclusive()")

    def get(self, identity: str) -> DatabaseResource | None:
        return self._entries.get(identity)

    def put(self, resource: DatabaseResource) -> None:
        self._require_lock()
        self._entries[resource.identity] = resource

    def remove(self, identity: str) -> DatabaseResource | None:
        self._require_lock()
        return self._entries.pop(identity, None)

    def snapshot(self) -> list[DatabaseResource]:
        """Copy of the tracked resources, safe to iterate while mutating."""
        return list(self._entries.values())

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __len__(self) -> int:
        return len(self._entries)
