"""setlist-sync domain models.

    - entities.py    -- providers, canonical artists, identifiers, shows, songs
    - catalog.py     -- pagination cursors and raw provider payloads
    - import_job.py  -- import stages and job status snapshots
    - trending.py    -- activity signals, weights and score results
"""

from __future__ import annotations

from setlist_sync.models.catalog import (
    Attraction,
    CatalogPage,
    PageCursor,
    RegistryMatch,
    ResourceQuery,
    StreamingAlbum,
    StreamingArtist,
    StreamingTrack,
)
from setlist_sync.models.entities import (
    ArtistRef,
    CanonicalArtist,
    EntityType,
    ExternalIdentifier,
    Provider,
    SetlistSeedResult,
    ShowRecord,
    SongRecord,
    Table,
    Venue,
)
from setlist_sync.models.import_job import ImportStage, ImportStatus, JobAccepted
from setlist_sync.models.trending import (
    ActivityKind,
    ActivitySignal,
    TrendingScoreResult,
    TrendingSnapshot,
    TrendingWeights,
)

__all__ = [
    "ActivityKind",
    "ActivitySignal",
    "ArtistRef",
    "Attraction",
    "CanonicalArtist",
    "CatalogPage",
    "EntityType",
    "ExternalIdentifier",
    "ImportStage",
    "ImportStatus",
    "JobAccepted",
    "PageCursor",
    "Provider",
    "RegistryMatch",
    "ResourceQuery",
    "SetlistSeedResult",
    "ShowRecord",
    "SongRecord",
    "StreamingAlbum",
    "StreamingArtist",
    "StreamingTrack",
    "Table",
    "TrendingScoreResult",
    "TrendingSnapshot",
    "TrendingWeights",
    "Venue",
]
