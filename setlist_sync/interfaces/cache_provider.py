"""Abstract base class for the ephemeral key-value store.

Holds short-lived structured records: import-job status snapshots and
cached trending results.  Every write carries its own time-to-live so a
record disappears on its own once nobody refreshes it.  Implementations
may use an in-process TTL cache or a network store such as Redis.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for the ephemeral store.

    All operations are async so a network-backed store can be swapped in
    without blocking the event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        key:
            The cache key.
        value:
            The value to store.  Callers pass plain JSON-compatible data
            (dicts from ``model_dump(mode="json")``).
        ttl:
            Time-to-live in seconds, measured from this write.  ``None``
            falls back to the implementation's default.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; a no-op if it does not exist."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
