"""setlist-sync FastAPI application entry point.

Wires together providers, services and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and starts the periodic trending refresh on startup.

Also exposes :func:`build_components` so the CLI can run the same object
graph without the web server.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from setlist_sync.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from setlist_sync.api.routes import router as api_router
from setlist_sync.config.loader import load_config
from setlist_sync.config.settings import Settings
from setlist_sync.models.entities import Provider
from setlist_sync.models.trending import TrendingWeights
from setlist_sync.pipeline.orchestrator import ArtistIngestionPipeline, IngestionCoordinator
from setlist_sync.pipeline.progress_tracker import ImportProgressTracker
from setlist_sync.providers.cache.memory_cache import MemoryCacheProvider
from setlist_sync.providers.catalog.spotify_provider import SpotifyProvider
from setlist_sync.providers.catalog.ticketmaster_provider import TicketmasterProvider
from setlist_sync.providers.registry.musicbrainz_provider import MusicBrainzRegistry
from setlist_sync.providers.storage.sqlite_storage import SQLiteStorageProvider
from setlist_sync.services.activity_recorder import ActivityRecorder
from setlist_sync.services.catalog_merger import CatalogMerger
from setlist_sync.services.fetcher import RateLimitedFetcher
from setlist_sync.services.identity_resolver import IdentityResolver
from setlist_sync.services.setlist_preseeder import SetlistPreseeder
from setlist_sync.services.trending_engine import TrendingEngine
from setlist_sync.utils.errors import ConfigurationError
from setlist_sync.utils.logging import configure_logging, get_logger
from setlist_sync.utils.rate_limiter import MinIntervalRateLimiter

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def _default_weights(config: dict[str, Any]) -> TrendingWeights:
    raw = (config.get("trending") or {}).get("weights") or {}
    try:
        return TrendingWeights.model_validate(raw)
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid trending weights: {exc}") from exc


def build_components(
    app_settings: Settings,
    config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    config = config if config is not None else load_config(settings=app_settings)
    rate_limits: dict[str, float] = config["rate_limits"]
    default_weights = _default_weights(config)

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.fetch_timeout_seconds)
    storage = SQLiteStorageProvider(db_path=app_settings.storage_db_path)
    # Import status lives apart from the trending cache so ranking traffic
    # can never evict a running job or its single-writer guard.
    status_store = MemoryCacheProvider()
    trending_cache = MemoryCacheProvider()

    def _fetcher(provider: Provider) -> RateLimitedFetcher:
        return RateLimitedFetcher(
            provider=provider,
            http_client=http_client,
            limiter=MinIntervalRateLimiter(rate_limits[provider.value]),
            max_attempts=app_settings.fetch_max_attempts,
            backoff_base=app_settings.fetch_backoff_base_seconds,
            backoff_max=app_settings.fetch_backoff_max_seconds,
            timeout=app_settings.fetch_timeout_seconds,
        )

    # -- Providers --
    ticketmaster = TicketmasterProvider(
        fetcher=_fetcher(Provider.TICKETMASTER),
        api_key=app_settings.ticketmaster_api_key,
        base_url=app_settings.ticketmaster_base_url,
    )
    spotify = SpotifyProvider(
        fetcher=_fetcher(Provider.SPOTIFY),
        client_id=app_settings.spotify_client_id,
        client_secret=app_settings.spotify_client_secret,
    )
    registry = None
    if app_settings.musicbrainz_enabled:
        registry = MusicBrainzRegistry(
            app_name=app_settings.musicbrainz_app_name,
            app_version=app_settings.musicbrainz_app_version,
            contact=app_settings.musicbrainz_contact,
            limiter=MinIntervalRateLimiter(rate_limits[Provider.MUSICBRAINZ.value]),
            timeout=app_settings.fetch_timeout_seconds,
        )

    # -- Services --
    resolver = IdentityResolver(
        storage, registry, match_threshold=app_settings.identity_match_threshold
    )
    merger = CatalogMerger(storage)
    tracker = ImportProgressTracker(
        status_store,
        active_ttl=app_settings.import_active_ttl_seconds,
        terminal_ttl=app_settings.import_terminal_ttl_seconds,
    )
    preseeder = SetlistPreseeder(storage, songs_per_setlist=app_settings.setlist_songs_per_show)
    trending = TrendingEngine(
        storage, cache=trending_cache, cache_ttl=app_settings.trending_cache_ttl_seconds
    )
    pipeline = ArtistIngestionPipeline(
        ticketmaster=ticketmaster,
        spotify=spotify,
        resolver=resolver,
        merger=merger,
        tracker=tracker,
        preseeder=preseeder,
        max_pages=app_settings.fetch_max_pages,
    )
    coordinator = IngestionCoordinator(resolver, tracker, pipeline, trending)

    provider_registry = {
        "ticketmaster": ticketmaster.is_available(),
        "spotify": spotify.is_available(),
        "musicbrainz": registry is not None,
    }
    if not provider_registry["ticketmaster"]:
        _logger.warning("ticketmaster_not_configured", hint="set TICKETMASTER_API_KEY")

    return {
        "http_client": http_client,
        "storage": storage,
        "status_store": status_store,
        "trending_cache": trending_cache,
        "coordinator": coordinator,
        "tracker": tracker,
        "trending": trending,
        "activity_recorder": ActivityRecorder(storage),
        "provider_registry": provider_registry,
        "default_weights": default_weights,
        "default_window_hours": app_settings.trending_default_window_hours,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(components: dict[str, Any] | None, app_settings: Settings):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise providers and services on startup, clean up on shutdown."""
        built = components if components is not None else build_components(app_settings)
        for key, value in built.items():
            setattr(application.state, key, value)

        await built["storage"].initialize()

        stop_event = asyncio.Event()
        refresh_task: asyncio.Task | None = None
        if components is None and app_settings.trending_refresh_enabled:
            refresh_task = asyncio.create_task(
                built["trending"].run_periodic_refresh(
                    interval_seconds=app_settings.trending_refresh_interval_seconds,
                    window_hours=app_settings.trending_default_window_hours,
                    weights=built["default_weights"],
                    stop_event=stop_event,
                )
            )

        _logger.info(
            "app_startup",
            version=_VERSION,
            environment=app_settings.app_env,
            providers=built["provider_registry"],
        )

        yield

        stop_event.set()
        if refresh_task is not None:
            refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresh_task

        http_client: httpx.AsyncClient | None = built.get("http_client")
        if http_client is not None:
            await http_client.aclose()
        _logger.info("app_shutdown", message="HTTP client closed")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    components: dict[str, Any] | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    *components* replaces :func:`build_components` (tests inject their own
    object graph this way).
    """
    application = FastAPI(
        title="setlist-sync API",
        version=_VERSION,
        description=(
            "Import artists, shows and songs from Ticketmaster, Spotify and "
            "MusicBrainz, poll import progress and read trending rankings."
        ),
        lifespan=_make_lifespan(components, app_settings or settings),
    )

    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "setlist_sync.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
