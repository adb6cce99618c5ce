"""Abstract base class for the row store.

The core needs very little from persistence: upsert a JSON document by a
natural key, fetch it back by natural key or id, and run filtered, ordered
queries over one table.  No multi-statement transactions across tables are
assumed; each ``upsert`` is atomic on its own.

Filter syntax for :meth:`IStorageProvider.query`
    ``{"field": value}``          equality
    ``{"field__ne": value}``      inequality (missing fields count as NULL)
    ``{"field__gte": value}``     also ``__gt``, ``__lte``, ``__lt``
    ``{"field__in": [a, b]}``     membership

Ordering is a list of field names; a leading ``-`` sorts descending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class StoredRecord:
    """One stored document.

    Attributes
    ----------
    id:
        Surrogate id assigned on first insert; never changes.
    table:
        Logical table the record lives in.
    natural_key:
        Stable business key the record was upserted with.
    fields:
        The document body.
    created:
        ``True`` only on the ``upsert`` call that inserted the record.
    """

    id: str
    table: str
    natural_key: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created: bool = False


class IStorageProvider(ABC):
    """Contract for the persistent row store."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indices if they do not exist yet."""

    @abstractmethod
    async def upsert(
        self,
        table: str,
        natural_key: str,
        fields: dict[str, Any],
    ) -> StoredRecord:
        """Insert or update the document identified by (*table*, *natural_key*).

        On update, *fields* are shallow-merged over the stored document;
        keys not mentioned are preserved.  Calling twice with the same
        arguments leaves exactly one record.
        """

    @abstractmethod
    async def get(self, table: str, natural_key: str) -> StoredRecord | None:
        """Return the record stored under *natural_key*, or ``None``."""

    @abstractmethod
    async def get_by_id(self, table: str, record_id: str) -> StoredRecord | None:
        """Return the record with surrogate id *record_id*, or ``None``."""

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: list[str] | None = None,
        limit: int | None = None,
    ) -> list[StoredRecord]:
        """Return records of *table* matching *filters* in the given order."""
