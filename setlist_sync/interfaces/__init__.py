"""Abstract interfaces for every external collaborator.

Services depend on these, never on concrete adapters; main.py picks the
implementations at startup.

    Interface           ->  Implementation (setlist_sync/providers/)
    ---------------------------------------------------------------
    ICatalogProvider    ->  TicketmasterProvider, SpotifyProvider
    IIdentityRegistry   ->  MusicBrainzRegistry
    IStorageProvider    ->  SQLiteStorageProvider
    ICacheProvider      ->  MemoryCacheProvider
"""

from setlist_sync.interfaces.cache_provider import ICacheProvider
from setlist_sync.interfaces.catalog_provider import ICatalogProvider, IIdentityRegistry
from setlist_sync.interfaces.storage_provider import IStorageProvider, StoredRecord

__all__ = [
    "ICacheProvider",
    "ICatalogProvider",
    "IIdentityRegistry",
    "IStorageProvider",
    "StoredRecord",
]
