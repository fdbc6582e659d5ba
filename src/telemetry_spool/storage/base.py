"""
Durable queue contract consumed by the export coordinator and drain scheduler.

Implementations must be safe under concurrent use from several tasks (and,
for file-backed stores, several processes). The lease is the only exclusion
primitive: ``try_dequeue_next`` returns an item only if it could atomically
lease it, and a lease that is allowed to expire makes the item visible again.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class LeasedItem(Protocol):
    """A queue item currently held under a lease by the caller."""

    @property
    def handle(self) -> str: ...

    async def read(self) -> bytes:
        """Return the stored payload. Raises QueueReadError."""
        ...

    async def extend_lease(self, duration_ms: int) -> bool:
        """Push lease expiry to now + duration_ms. False if the lease was lost
        or the storage refused the change."""
        ...

    async def delete(self) -> bool:
        """Remove the item permanently. False if it was already gone or could
        not be removed."""
        ...


@runtime_checkable
class DurableQueue(Protocol):
    async def enqueue(self, payload: bytes) -> str:
        """Persist payload and return its handle. Raises QueuePersistError."""
        ...

    async def try_dequeue_next(self, lease_ms: int) -> Optional[LeasedItem]:
        """Lease and return the next available item, or None. Raises QueueError
        when the store cannot be read."""
        ...

    async def depth(self) -> int:
        """Number of items currently stored (leased or not). Raises QueueError."""
        ...
