"""Artist ingestion pipeline and the coordinator that launches it.

ARCHITECTURE NOTE:
    ``IngestionCoordinator.start_ingestion`` is the trigger.  It makes sure
    the artist has an id (a provisional artist if the attraction is new),
    claims the per-artist job slot in the progress tracker and hands the
    run to an asyncio task.  The caller gets a :class:`JobAccepted` back
    immediately and polls ``get_status`` from then on.

    ``ArtistIngestionPipeline.run`` walks the stages in order:

        fetching-artist      Ticketmaster attraction + external links
        syncing-identifiers  identity resolution, identifier links,
                             profile enrichment, duplicate merge
        importing-songs      Spotify albums -> tracks (studio only)
        importing-shows      Ticketmaster events -> venues + shows
        creating-setlists    predicted setlists for upcoming shows
        completed            last_synced_at and totals

    Each stage reports through the tracker.  Any exception escaping a
    stage marks the job ``failed`` with the message and the traceback; it
    never propagates out of the task.  A merge conflict only skips the one
    record and is listed in ``skipped_records``.
"""

from __future__ import annotations

import asyncio
import time
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from setlist_sync.models.catalog import (
    Attraction,
    ResourceQuery,
    StreamingAlbum,
    StreamingTrack,
)
from setlist_sync.models.entities import CanonicalArtist, EntityType, Provider, SongRecord
from setlist_sync.models.import_job import ImportStage, ImportStatus, JobAccepted
from setlist_sync.models.trending import TrendingScoreResult, TrendingWeights
from setlist_sync.pipeline.progress_tracker import ImportProgressTracker
from setlist_sync.providers.catalog.spotify_provider import (
    RESOURCE_ALBUM_TRACKS,
    RESOURCE_ARTIST_ALBUMS,
    SpotifyProvider,
)
from setlist_sync.providers.catalog.ticketmaster_provider import (
    RESOURCE_EVENTS,
    TicketmasterProvider,
)
from setlist_sync.services.catalog_merger import CatalogMerger
from setlist_sync.services.fetcher import DEFAULT_MAX_PAGES, iterate_pages
from setlist_sync.services.identity_resolver import IdentityResolver
from setlist_sync.services.setlist_preseeder import SetlistPreseeder
from setlist_sync.services.trending_engine import TrendingEngine
from setlist_sync.utils.errors import (
    InvalidStageTransitionError,
    MergeConflictError,
    PipelineError,
    ProviderError,
    StorageError,
)
from setlist_sync.utils.logging import bind_job_context, get_logger
from setlist_sync.utils.text_normalizer import (
    clean_song_title,
    is_likely_live_album,
    is_likely_live_title,
    is_remix_title,
    normalize_key,
)


@dataclass
class _ImportRun:
    """Mutable bookkeeping for one pipeline run (never leaves this module)."""

    artist_id: str
    attraction_id: str
    attraction: Attraction | None = None
    artist: CanonicalArtist | None = None
    spotify_id: str | None = None
    song_ids: set[str] = field(default_factory=set)
    show_ids: set[str] = field(default_factory=set)
    venue_ids: set[str] = field(default_factory=set)
    setlists_created: int = 0
    skipped: list[str] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)


def dedupe_tracks(tracks: list[StreamingTrack]) -> list[StreamingTrack]:
    """Keep one track per ISRC (or per cleaned title without one), most popular first."""
    best: dict[str, StreamingTrack] = {}
    for track in tracks:
        key = (
            f"isrc:{track.isrc.strip().upper()}"
            if track.isrc
            else f"title:{normalize_key(clean_song_title(track.name))}"
        )
        current = best.get(key)
        if current is None or track.popularity > current.popularity:
            best[key] = track
    return sorted(best.values(), key=lambda t: (-t.popularity, t.name.lower(), t.id))


class ArtistIngestionPipeline:
    """Runs one artist import end to end.

    All collaborators are injected; the pipeline never creates them.
    """

    def __init__(
        self,
        ticketmaster: TicketmasterProvider,
        spotify: SpotifyProvider | None,
        resolver: IdentityResolver,
        merger: CatalogMerger,
        tracker: ImportProgressTracker,
        preseeder: SetlistPreseeder,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self._ticketmaster = ticketmaster
        self._spotify = spotify
        self._resolver = resolver
        self._merger = merger
        self._tracker = tracker
        self._preseeder = preseeder
        self._max_pages = max_pages
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def run(self, artist_id: str, attraction_id: str) -> ImportStatus | None:
        """Run every stage for *artist_id*; returns the final status snapshot."""
        current = await self._tracker.get(artist_id)
        job_id = current.job_id if current else "unknown"
        run = _ImportRun(artist_id=artist_id, attraction_id=attraction_id)
        stage = ImportStage.INITIALIZING

        with bind_job_context(artist_id=artist_id, job_id=job_id):
            try:
                stage = ImportStage.FETCHING_ARTIST
                await self._timed(run, stage, self._fetch_artist)
                stage = ImportStage.SYNCING_IDENTIFIERS
                await self._timed(run, stage, self._sync_identifiers)
                stage = ImportStage.IMPORTING_SONGS
                await self._timed(run, stage, self._import_songs)
                stage = ImportStage.IMPORTING_SHOWS
                await self._timed(run, stage, self._import_shows)
                stage = ImportStage.CREATING_SETLISTS
                await self._timed(run, stage, self._create_setlists)
                return await self._complete(run)
            except Exception as exc:
                return await self._fail(run, stage, exc)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _timed(
        self,
        run: _ImportRun,
        stage: ImportStage,
        step: Callable[[_ImportRun], Awaitable[None]],
    ) -> None:
        started = time.monotonic()
        self._logger.info("import_stage_started", stage=stage.value)
        await step(run)
        run.timings[stage.value] = round(time.monotonic() - started, 3)

    async def _fetch_artist(self, run: _ImportRun) -> None:
        await self._tracker.update(
            run.artist_id,
            stage=ImportStage.FETCHING_ARTIST,
            message="Fetching artist from Ticketmaster",
        )
        attraction = await self._ticketmaster.get_attraction(run.attraction_id)
        run.attraction = attraction
        run.spotify_id = attraction.spotify_id
        await self._tracker.update(
            run.artist_id,
            progress=12.0,
            artist_name=attraction.name,
            message=f"Found {attraction.name}",
        )

    async def _sync_identifiers(self, run: _ImportRun) -> None:
        attraction = run.attraction
        assert attraction is not None
        await self._tracker.update(
            run.artist_id,
            stage=ImportStage.SYNCING_IDENTIFIERS,
            message="Resolving artist identity",
        )
        ref = await self._resolver.resolve(
            attraction.name, Provider.TICKETMASTER, run.attraction_id
        )
        if ref.artist_id != run.artist_id:
            self._logger.warning(
                "import_artist_redirected", job_artist_id=run.artist_id, resolved_id=ref.artist_id
            )
            raise PipelineError(
                message=f"Attraction {attraction.id} resolves to artist {ref.artist_id}"
            )

        if attraction.musicbrainz_id:
            await self._resolver.link_identifier(
                run.artist_id, Provider.MUSICBRAINZ, attraction.musicbrainz_id, 1.0
            )

        await self._merger.update_artist(
            run.artist_id,
            {"image_url": attraction.image_url, "genres": attraction.genres},
            Provider.TICKETMASTER,
        )

        spotify_id = run.spotify_id
        if self._spotify is not None and self._spotify.is_available():
            try:
                if spotify_id:
                    profile = await self._spotify.get_artist(spotify_id)
                else:
                    profile = await self._spotify.search_artist(
                        attraction.name, threshold=self._resolver.match_threshold
                    )
                if profile is not None:
                    spotify_id = profile.id
                    await self._merger.update_artist(
                        run.artist_id,
                        {
                            "image_url": profile.image_url,
                            "genres": profile.genres,
                            "popularity": profile.popularity,
                            "followers": profile.followers,
                        },
                        Provider.SPOTIFY,
                    )
            except ProviderError as exc:
                self._logger.warning(
                    "spotify_enrichment_failed", error=exc.message, status=exc.status_code
                )
        if spotify_id:
            await self._resolver.link_identifier(run.artist_id, Provider.SPOTIFY, spotify_id, 1.0)

        merged = await self._merger.merge_duplicate_artists(run.artist_id)
        linked = await self._resolver.identifier_for(run.artist_id, Provider.SPOTIFY)
        run.spotify_id = linked.provider_native_id if linked else None
        run.artist = await self._resolver.get_artist(run.artist_id)
        if run.artist is None:
            raise StorageError(message=f"Artist {run.artist_id} disappeared during import")

        await self._tracker.update(
            run.artist_id,
            progress=24.0,
            message=(
                f"Identifiers synced ({len(merged)} duplicate(s) merged)"
                if merged
                else "Identifiers synced"
            ),
        )

    async def _import_songs(self, run: _ImportRun) -> None:
        await self._tracker.update(
            run.artist_id,
            stage=ImportStage.IMPORTING_SONGS,
            message="Importing song catalog",
        )
        if not run.spotify_id or self._spotify is None or not self._spotify.is_available():
            await self._tracker.update(
                run.artist_id, progress=60.0, message="No Spotify artist; song import skipped"
            )
            return

        albums: list[StreamingAlbum] = []
        async for page in iterate_pages(
            self._spotify,
            ResourceQuery(resource=RESOURCE_ARTIST_ALBUMS, parent_id=run.spotify_id),
            self._max_pages,
        ):
            albums.extend(a for a in page.items if not is_likely_live_album(a.name))

        tracks: list[StreamingTrack] = []
        for index, album in enumerate(albums, start=1):
            async for page in iterate_pages(
                self._spotify,
                ResourceQuery(
                    resource=RESOURCE_ALBUM_TRACKS,
                    parent_id=album.id,
                    params={"album_name": album.name},
                ),
                self._max_pages,
            ):
                tracks.extend(t for t in page.items if not is_likely_live_title(t.name))
            await self._tracker.update(
                run.artist_id,
                progress=25.0 + 25.0 * index / len(albums),
                message=f"Read {index}/{len(albums)} albums",
            )

        assert run.artist is not None
        for track in dedupe_tracks(tracks):
            song = SongRecord(
                title=clean_song_title(track.name),
                artist_name=track.artist_name or run.artist.name,
                album_name=track.album_name,
                duration_ms=track.duration_ms,
                isrc=track.isrc,
                popularity=track.popularity,
                spotify_id=track.id,
                is_remix=is_remix_title(track.name),
            )
            run.song_ids.add(await self._merger.upsert_song(run.artist, song, Provider.SPOTIFY))

        await self._tracker.update(
            run.artist_id,
            progress=60.0,
            total_songs=len(run.song_ids),
            message=f"Imported {len(run.song_ids)} songs",
        )

    async def _import_shows(self, run: _ImportRun) -> None:
        await self._tracker.update(
            run.artist_id,
            stage=ImportStage.IMPORTING_SHOWS,
            message="Importing shows and venues",
        )
        assert run.artist is not None
        page_count = 0
        async for page in iterate_pages(
            self._ticketmaster,
            ResourceQuery(resource=RESOURCE_EVENTS, parent_id=run.attraction_id),
            self._max_pages,
        ):
            page_count += 1
            for show in page.items:
                venue_id = None
                if show.venue is not None:
                    venue_id = await self._merger.upsert_venue(show.venue, Provider.TICKETMASTER)
                    run.venue_ids.add(venue_id)
                try:
                    show_id = await self._merger.upsert_show(
                        run.artist, show, Provider.TICKETMASTER, venue_id=venue_id
                    )
                except MergeConflictError as exc:
                    run.skipped.append(f"show {exc.natural_key}: {exc.message}")
                    self._logger.warning(
                        "show_skipped_merge_conflict",
                        natural_key=exc.natural_key,
                        error=exc.message,
                    )
                    continue
                run.show_ids.add(show_id)
            await self._tracker.update(
                run.artist_id,
                progress=min(60.0 + 6.0 * page_count, 88.0),
                total_shows=len(run.show_ids),
                total_venues=len(run.venue_ids),
                message=f"Imported {len(run.show_ids)} shows",
            )

    async def _create_setlists(self, run: _ImportRun) -> None:
        await self._tracker.update(
            run.artist_id,
            stage=ImportStage.CREATING_SETLISTS,
            message="Creating predicted setlists",
        )
        result = await self._preseeder.seed_artist(run.artist_id)
        run.setlists_created = result.setlists_created

    async def _complete(self, run: _ImportRun) -> ImportStatus:
        await self._merger.mark_artist_synced(
            run.artist_id,
            total_songs=len(run.song_ids),
            total_shows=len(run.show_ids),
        )
        message = (
            f"Imported {len(run.song_ids)} songs, {len(run.show_ids)} shows, "
            f"{run.setlists_created} setlists"
        )
        if run.skipped:
            message += f"; skipped {len(run.skipped)} record(s)"
        return await self._tracker.complete(
            run.artist_id,
            message=message,
            total_songs=len(run.song_ids),
            total_shows=len(run.show_ids),
            total_venues=len(run.venue_ids),
            total_setlists=run.setlists_created,
            skipped_records=run.skipped,
            phase_timings=run.timings,
        )

    async def _fail(
        self,
        run: _ImportRun,
        stage: ImportStage,
        exc: Exception,
    ) -> ImportStatus | None:
        self._logger.error(
            "import_stage_failed",
            stage=stage.value,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        try:
            return await self._tracker.fail(
                run.artist_id,
                error=f"{stage.value}: {exc}",
                error_detail=detail,
                skipped_records=run.skipped,
                phase_timings=run.timings,
            )
        except InvalidStageTransitionError as transition_exc:
            self._logger.error(
                "import_failure_not_recorded",
                error=transition_exc.message,
            )
            return await self._tracker.get(run.artist_id)


class IngestionCoordinator:
    """Trigger surface: start imports, read their status, compute trending."""

    def __init__(
        self,
        resolver: IdentityResolver,
        tracker: ImportProgressTracker,
        pipeline: ArtistIngestionPipeline,
        trending: TrendingEngine,
    ) -> None:
        self._resolver = resolver
        self._tracker = tracker
        self._pipeline = pipeline
        self._trending = trending
        self._tasks: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def start_ingestion(self, provider_artist_id: str) -> JobAccepted:
        """Accept an import for a Ticketmaster attraction id and start it.

        Raises
        ------
        ImportInProgressError
            If the artist already has a non-terminal job.
        """
        provider_artist_id = provider_artist_id.strip()
        if not provider_artist_id:
            raise ValueError("provider_artist_id is required")

        ref = await self._resolver.bootstrap(Provider.TICKETMASTER, provider_artist_id)
        status = await self._tracker.begin(
            ref.artist_id,
            provider_artist_id=provider_artist_id,
            artist_name=None if ref.created else ref.name,
        )

        task = asyncio.create_task(
            self._pipeline.run(ref.artist_id, provider_artist_id),
            name=f"import:{ref.artist_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._logger.info(
            "import_accepted",
            artist_id=ref.artist_id,
            job_id=status.job_id,
            attraction_id=provider_artist_id,
        )
        return JobAccepted(
            artist_id=ref.artist_id,
            job_id=status.job_id,
            provider_artist_id=provider_artist_id,
            stage=status.stage,
        )

    async def get_status(self, artist_id: str) -> ImportStatus | None:
        return await self._tracker.get(artist_id)

    async def compute_trending(
        self,
        entity_type: EntityType,
        window_hours: float,
        weights: TrendingWeights | None = None,
        limit: int | None = None,
    ) -> list[TrendingScoreResult]:
        return await self._trending.compute_scores(entity_type, window_hours, weights, limit=limit)

    async def wait_idle(self) -> None:
        """Wait for every running import task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
