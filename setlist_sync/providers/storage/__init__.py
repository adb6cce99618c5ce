"""Row stores for the canonical catalog and activity counters."""

from setlist_sync.providers.storage.sqlite_storage import SQLiteStorageProvider

__all__ = ["SQLiteStorageProvider"]
