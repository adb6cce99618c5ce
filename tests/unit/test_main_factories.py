"""Tests for the application component factory."""

from __future__ import annotations

from pathlib import Path

import pytest

from setlist_sync.config.settings import Settings
from setlist_sync.main import build_components
from setlist_sync.models.import_job import ImportStage
from setlist_sync.models.trending import TrendingWeights
from setlist_sync.pipeline.orchestrator import IngestionCoordinator
from setlist_sync.utils.errors import ConfigurationError, ImportInProgressError

_CONFIG = {
    "rate_limits": {"musicbrainz": 1.0, "ticketmaster": 0.2, "spotify": 0.1},
    "trending": {"weights": {"votes": 1.0, "attendees": 2.0, "recency": 0.5}},
}


def _settings(tmp_path: Path, **overrides) -> Settings:
    return Settings(
        _env_file=None,
        storage_db_path=str(tmp_path / "components.db"),
        **overrides,
    )


@pytest.mark.asyncio
async def test_components_reflect_configured_providers(tmp_path: Path) -> None:
    components = build_components(
        _settings(
            tmp_path,
            ticketmaster_api_key="tm-key",
            spotify_client_id="",
            spotify_client_secret="",
            musicbrainz_enabled=False,
        ),
        _CONFIG,
    )
    try:
        assert components["provider_registry"] == {
            "ticketmaster": True,
            "spotify": False,
            "musicbrainz": False,
        }
        assert isinstance(components["coordinator"], IngestionCoordinator)
        assert components["default_weights"] == TrendingWeights(votes=1.0, attendees=2.0, recency=0.5)
        assert components["default_window_hours"] == 168.0
        assert {
            "storage",
            "status_store",
            "trending_cache",
            "tracker",
            "trending",
            "activity_recorder",
        } <= set(components)
    finally:
        await components["http_client"].aclose()


@pytest.mark.asyncio
async def test_musicbrainz_registry_is_optional(tmp_path: Path) -> None:
    components = build_components(_settings(tmp_path, musicbrainz_enabled=True), _CONFIG)
    try:
        assert components["provider_registry"]["musicbrainz"] is True
    finally:
        await components["http_client"].aclose()


def test_invalid_weights_rejected(tmp_path: Path) -> None:
    config = {**_CONFIG, "trending": {"weights": {"votes": -2}}}
    with pytest.raises(ConfigurationError):
        build_components(_settings(tmp_path), config)


@pytest.mark.asyncio
async def test_trending_traffic_cannot_evict_running_import(tmp_path: Path) -> None:
    components = build_components(_settings(tmp_path, musicbrainz_enabled=False), _CONFIG)
    try:
        tracker = components["tracker"]
        assert components["status_store"] is not components["trending_cache"]
        await tracker.begin("artist-1", provider_artist_id="K8vZ9171ob7")

        for i in range(10_001):
            await components["trending_cache"].set(f"trending:artist:{i}", [], ttl=60)

        status = await tracker.get("artist-1")
        assert status is not None
        assert status.stage == ImportStage.INITIALIZING
        with pytest.raises(ImportInProgressError):
            await tracker.begin("artist-1", provider_artist_id="K8vZ9171ob7")
    finally:
        await components["http_client"].aclose()
