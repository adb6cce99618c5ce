"""Shared pytest fixtures for the setlist-sync test suite."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from setlist_sync.interfaces.cache_provider import ICacheProvider
from setlist_sync.interfaces.catalog_provider import IIdentityRegistry
from setlist_sync.interfaces.storage_provider import IStorageProvider
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
from setlist_sync.models.entities import Provider, ShowRecord, Venue
from setlist_sync.pipeline.orchestrator import ArtistIngestionPipeline, IngestionCoordinator
from setlist_sync.pipeline.progress_tracker import ImportProgressTracker
from setlist_sync.providers.cache.memory_cache import MemoryCacheProvider
from setlist_sync.providers.catalog.spotify_provider import (
    RESOURCE_ALBUM_TRACKS,
    RESOURCE_ARTIST_ALBUMS,
)
from setlist_sync.providers.storage.sqlite_storage import SQLiteStorageProvider
from setlist_sync.services.catalog_merger import CatalogMerger
from setlist_sync.services.identity_resolver import IdentityResolver
from setlist_sync.services.setlist_preseeder import SetlistPreseeder
from setlist_sync.services.trending_engine import TrendingEngine
from setlist_sync.utils.errors import ProviderError

# Wednesday; the weekly trending period starts Monday 2025-06-09.
NOW = datetime(2025, 6, 11, 12, 0, tzinfo=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class FakeTimer:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once.

    When bound to a :class:`FakeTimer` the timer is advanced by each delay.
    """

    def __init__(self, timer: FakeTimer | None = None) -> None:
        self.delays: list[float] = []
        self._timer = timer

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self._timer is not None:
            self._timer.advance(seconds)


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def storage(tmp_path: Path) -> SQLiteStorageProvider:
    """A fresh, initialized SQLite row store per test."""
    provider = SQLiteStorageProvider(db_path=tmp_path / "setlist_sync_test.db")
    await provider.initialize()
    return provider


@pytest.fixture
def cache(timer: FakeTimer) -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=100, ttl=3600, timer=timer)


# ---------------------------------------------------------------------------
# Identity registry
# ---------------------------------------------------------------------------


class FakeRegistry(IIdentityRegistry):
    """Registry returning canned matches per query, or raising *error*."""

    def __init__(
        self,
        matches: dict[str, list[RegistryMatch]] | None = None,
        error: ProviderError | None = None,
    ) -> None:
        self.matches = matches or {}
        self.error = error
        self.queries: list[str] = []

    async def search_artist(self, name: str) -> list[RegistryMatch]:
        self.queries.append(name)
        if self.error is not None:
            raise self.error
        return list(self.matches.get(name, []))

    def get_provider_name(self) -> str:
        return "fake-registry"


# ---------------------------------------------------------------------------
# Catalog providers
# ---------------------------------------------------------------------------


def _paged(
    provider: Provider,
    resource: ResourceQuery,
    cursor: PageCursor | None,
    pages: list[list],
) -> CatalogPage:
    number = cursor.page_number if cursor else 0
    here = PageCursor(provider=provider, parent_id=resource.parent_id, page_number=number)
    items = pages[number] if number < len(pages) else []
    next_cursor = (
        PageCursor(provider=provider, parent_id=resource.parent_id, page_number=number + 1)
        if number + 1 < len(pages)
        else None
    )
    return CatalogPage(items=items, cursor=here, next_cursor=next_cursor)


class FakeTicketmaster:
    """In-memory attraction plus pages of events."""

    provider = Provider.TICKETMASTER

    def __init__(
        self,
        attraction: Attraction,
        event_pages: list[list[ShowRecord]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.attraction = attraction
        self.event_pages = event_pages or []
        self.error = error

    def is_available(self) -> bool:
        return True

    async def get_attraction(self, attraction_id: str) -> Attraction:
        if self.error is not None:
            raise self.error
        return self.attraction

    async def fetch_page(
        self, resource: ResourceQuery, cursor: PageCursor | None = None
    ) -> CatalogPage:
        return _paged(self.provider, resource, cursor, self.event_pages)


class FakeSpotify:
    """In-memory artist profile, albums and album tracks.

    *error* is raised by the profile lookups only; the catalog still pages.
    """

    provider = Provider.SPOTIFY

    def __init__(
        self,
        artist: StreamingArtist,
        albums: list[StreamingAlbum] | None = None,
        tracks: dict[str, list[StreamingTrack]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.artist = artist
        self.albums = albums or []
        self.tracks = tracks or {}
        self.error = error
        self.track_requests: list[str] = []

    def is_available(self) -> bool:
        return True

    async def get_artist(self, spotify_id: str) -> StreamingArtist:
        if self.error is not None:
            raise self.error
        return self.artist

    async def search_artist(self, name: str, threshold: float = 90.0) -> StreamingArtist | None:
        if self.error is not None:
            raise self.error
        return self.artist if name == self.artist.name else None

    async def fetch_page(
        self, resource: ResourceQuery, cursor: PageCursor | None = None
    ) -> CatalogPage:
        if resource.resource == RESOURCE_ARTIST_ALBUMS:
            return _paged(self.provider, resource, cursor, [self.albums])
        assert resource.resource == RESOURCE_ALBUM_TRACKS
        self.track_requests.append(resource.parent_id)
        return _paged(self.provider, resource, cursor, [self.tracks.get(resource.parent_id, [])])


def build_coordinator(
    storage: IStorageProvider,
    store: ICacheProvider,
    ticketmaster: FakeTicketmaster,
    spotify: FakeSpotify | None,
    today: date = NOW.date(),
) -> tuple[IngestionCoordinator, ImportProgressTracker]:
    """Wire the real services around fake catalog providers."""
    resolver = IdentityResolver(storage)
    tracker = ImportProgressTracker(store)
    pipeline = ArtistIngestionPipeline(
        ticketmaster=ticketmaster,  # type: ignore[arg-type]
        spotify=spotify,  # type: ignore[arg-type]
        resolver=resolver,
        merger=CatalogMerger(storage),
        tracker=tracker,
        preseeder=SetlistPreseeder(storage, today=lambda: today),
    )
    coordinator = IngestionCoordinator(resolver, tracker, pipeline, TrendingEngine(storage))
    return coordinator, tracker


def drake_catalog() -> tuple[FakeTicketmaster, FakeSpotify]:
    """One attraction with two events and a small studio catalog."""
    attraction = Attraction(
        id="K8vZ9171ob7",
        name="Drake",
        image_url="https://img.example/drake.jpg",
        genres=["Hip-Hop/Rap"],
        spotify_id="3TVXtAsR1Inumwj472S9r4",
    )
    arena = Venue(
        name="Scotiabank Arena", city="Toronto", country="CA", provider_venue_id="KovZpZAEkn6A"
    )
    events = [
        [
            ShowRecord(
                date="2025-07-01",
                venue_name="Scotiabank Arena",
                city="Toronto",
                name="Drake: Anita Max Wynn Tour",
                provider_event_id="vv1A7ZA",
                venue=arena,
            )
        ],
        [
            ShowRecord(
                date="2025-07-02",
                venue_name="Scotiabank Arena",
                city="Toronto",
                name="Drake: Anita Max Wynn Tour",
                provider_event_id="vv1A7ZB",
                venue=arena,
            )
        ],
    ]
    profile = StreamingArtist(
        id="3TVXtAsR1Inumwj472S9r4",
        name="Drake",
        popularity=95,
        followers=90_000_000,
        genres=["canadian hip hop"],
    )
    albums = [
        StreamingAlbum(id="alb-views", name="Views", album_type="album"),
        StreamingAlbum(id="alb-live", name="Live at the O2", album_type="album"),
    ]
    tracks = {
        "alb-views": [
            StreamingTrack(id="t1", name="One Dance", album_name="Views", isrc="USCM51600028", popularity=90),
            StreamingTrack(id="t2", name="Hotline Bling", album_name="Views", isrc="USCM51500238", popularity=85),
            StreamingTrack(id="t3", name="Hotline Bling", album_name="Views", isrc="uscm51500238", popularity=70),
            StreamingTrack(id="t4", name="Controlla - Live at Wembley", album_name="Views", popularity=60),
        ],
        "alb-live": [
            StreamingTrack(id="t5", name="Started From the Bottom", album_name="Live at the O2", popularity=80),
        ],
    }
    return (
        FakeTicketmaster(attraction, events),
        FakeSpotify(profile, albums, tracks),
    )
