"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from setlist_sync.api.middleware import ErrorHandlingMiddleware
from setlist_sync.api.routes import router as api_router
from setlist_sync.main import create_app
from setlist_sync.models.entities import EntityType
from setlist_sync.models.import_job import ImportStage, ImportStatus, JobAccepted
from setlist_sync.models.trending import (
    ActivityKind,
    ActivitySignal,
    TrendingScoreResult,
    TrendingWeights,
)
from setlist_sync.pipeline.orchestrator import IngestionCoordinator
from setlist_sync.providers.cache.memory_cache import MemoryCacheProvider
from setlist_sync.providers.storage.sqlite_storage import SQLiteStorageProvider
from setlist_sync.services.activity_recorder import ActivityRecorder
from setlist_sync.utils.errors import FatalProviderError, ImportInProgressError
from tests.conftest import NOW, build_coordinator, drake_catalog

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(
    provider_registry: dict[str, bool] | None = None,
) -> tuple[FastAPI, MagicMock, MagicMock]:
    """Create a FastAPI app with a mocked coordinator and recorder."""
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(api_router)

    coordinator = MagicMock(spec=IngestionCoordinator)
    coordinator.start_ingestion = AsyncMock(
        return_value=JobAccepted(artist_id="artist-1", job_id="job-1", provider_artist_id="K8v")
    )
    coordinator.get_status = AsyncMock(return_value=None)
    coordinator.compute_trending = AsyncMock(return_value=[])
    recorder = MagicMock(spec=ActivityRecorder)

    app.state.coordinator = coordinator
    app.state.activity_recorder = recorder
    app.state.default_weights = TrendingWeights(votes=1.0, attendees=2.0, recency=0.5)
    app.state.default_window_hours = 168.0
    app.state.provider_registry = provider_registry or {
        "ticketmaster": True,
        "spotify": True,
        "musicbrainz": True,
    }
    return app, coordinator, recorder


# ======================================================================
# Imports
# ======================================================================


class TestImportEndpoints:
    def test_start_import_returns_202(self) -> None:
        app, coordinator, _ = _create_test_app()
        client = TestClient(app)

        response = client.post("/api/v1/imports", json={"attraction_id": "K8v"})

        assert response.status_code == 202
        body = response.json()
        assert body["artist_id"] == "artist-1"
        assert body["stage"] == "initializing"
        assert body["status_url"] == "/api/v1/imports/artist-1/status"
        coordinator.start_ingestion.assert_awaited_once_with("K8v")

    def test_running_import_returns_409(self) -> None:
        app, coordinator, _ = _create_test_app()
        coordinator.start_ingestion.side_effect = ImportInProgressError("artist-1", "importing-songs")
        client = TestClient(app)

        response = client.post("/api/v1/imports", json={"attraction_id": "K8v"})

        assert response.status_code == 409
        assert response.json()["error"] == "ImportInProgressError"
        assert "importing-songs" in response.json()["detail"]

    def test_provider_error_maps_to_502(self) -> None:
        app, coordinator, _ = _create_test_app()
        coordinator.start_ingestion.side_effect = FatalProviderError(
            "bad request", provider_name="ticketmaster", status_code=400
        )
        client = TestClient(app)

        response = client.post("/api/v1/imports", json={"attraction_id": "K8v"})

        assert response.status_code == 502
        assert response.json() == {"error": "FatalProviderError", "detail": "bad request"}

    @pytest.mark.parametrize("payload", [{}, {"attraction_id": ""}])
    def test_missing_attraction_id_returns_422(self, payload: dict) -> None:
        app, coordinator, _ = _create_test_app()
        client = TestClient(app)

        assert client.post("/api/v1/imports", json=payload).status_code == 422
        coordinator.start_ingestion.assert_not_awaited()

    def test_blank_attraction_id_returns_422(self) -> None:
        app, coordinator, _ = _create_test_app()
        coordinator.start_ingestion.side_effect = ValueError("provider_artist_id is required")
        client = TestClient(app)

        response = client.post("/api/v1/imports", json={"attraction_id": "   "})

        assert response.status_code == 422

    def test_unknown_job_returns_404(self) -> None:
        app, _, _ = _create_test_app()
        client = TestClient(app)

        assert client.get("/api/v1/imports/nobody/status").status_code == 404

    def test_status_returns_snapshot(self) -> None:
        app, coordinator, _ = _create_test_app()
        coordinator.get_status.return_value = ImportStatus(
            artist_id="artist-1",
            job_id="job-1",
            stage=ImportStage.IMPORTING_SHOWS,
            progress=66.0,
            message="Imported 4 shows",
            total_shows=4,
        )
        client = TestClient(app)

        body = client.get("/api/v1/imports/artist-1/status").json()

        assert body["stage"] == "importing-shows"
        assert body["progress"] == 66.0
        assert body["total_shows"] == 4
        assert body["error"] is None


# ======================================================================
# Trending and activity
# ======================================================================


class TestTrendingEndpoints:
    def test_query_weights_override_defaults(self) -> None:
        app, coordinator, _ = _create_test_app()
        coordinator.compute_trending.return_value = [
            TrendingScoreResult(
                entity_id="artist-1",
                entity_type=EntityType.ARTIST,
                score=4.0,
                rank=1,
                window_hours=24.0,
                generated_at=NOW,
            )
        ]
        client = TestClient(app)

        response = client.get("/api/v1/trending/artist", params={"window": 24, "votes": 4})

        assert response.status_code == 200
        body = response.json()
        assert body["weights"] == {"votes": 4.0, "attendees": 2.0, "recency": 0.5}
        assert body["window_hours"] == 24.0
        assert body["results"][0]["entity_id"] == "artist-1"
        coordinator.compute_trending.assert_awaited_once_with(
            EntityType.ARTIST,
            24.0,
            TrendingWeights(votes=4.0, attendees=2.0, recency=0.5),
            limit=20,
        )

    def test_default_window(self) -> None:
        app, coordinator, _ = _create_test_app()
        client = TestClient(app)

        assert client.get("/api/v1/trending/show").json()["window_hours"] == 168.0
        args = coordinator.compute_trending.await_args.args
        assert args[0] == EntityType.SHOW

    @pytest.mark.parametrize(
        "params",
        [{"window": 0}, {"window": -1}, {"votes": -1}, {"limit": 0}, {"limit": 500}],
    )
    def test_invalid_parameters_return_422(self, params: dict) -> None:
        app, coordinator, _ = _create_test_app()
        client = TestClient(app)

        assert client.get("/api/v1/trending/artist", params=params).status_code == 422
        coordinator.compute_trending.assert_not_awaited()

    def test_unknown_entity_type_returns_422(self) -> None:
        app, _, _ = _create_test_app()
        client = TestClient(app)

        assert client.get("/api/v1/trending/venue").status_code == 422

    def test_record_activity_returns_202(self) -> None:
        app, _, recorder = _create_test_app()
        recorder.record = AsyncMock(
            return_value=ActivitySignal(
                entity_id="artist-1",
                entity_type=EntityType.ARTIST,
                kind=ActivityKind.VOTE,
                count=2.0,
                bucket=NOW,
            )
        )
        client = TestClient(app)

        response = client.post(
            "/api/v1/activity",
            json={"entity_type": "artist", "entity_id": "artist-1", "kind": "vote", "count": 2},
        )

        assert response.status_code == 202
        assert response.json()["count"] == 2.0
        recorder.record.assert_awaited_once_with(
            EntityType.ARTIST, "artist-1", ActivityKind.VOTE, 2.0
        )

    def test_non_positive_activity_returns_422(self) -> None:
        app, _, _ = _create_test_app()
        client = TestClient(app)

        response = client.post(
            "/api/v1/activity",
            json={"entity_type": "artist", "entity_id": "a", "kind": "vote", "count": 0},
        )
        assert response.status_code == 422


# ======================================================================
# Health
# ======================================================================


class TestHealth:
    def test_healthy_with_ticketmaster(self) -> None:
        app, _, _ = _create_test_app()
        body = TestClient(app).get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["providers"]["spotify"] is True

    def test_degraded_without_ticketmaster(self) -> None:
        app, _, _ = _create_test_app(
            {"ticketmaster": False, "spotify": True, "musicbrainz": False}
        )
        assert TestClient(app).get("/api/v1/health").json()["status"] == "degraded"


# ======================================================================
# End to end through create_app
# ======================================================================


def test_import_then_vote_then_trending(tmp_path: Path) -> None:
    storage = SQLiteStorageProvider(db_path=tmp_path / "api.db")
    cache = MemoryCacheProvider()
    coordinator, tracker = build_coordinator(storage, cache, *drake_catalog())
    components = {
        "storage": storage,
        "status_store": cache,
        "tracker": tracker,
        "coordinator": coordinator,
        "activity_recorder": ActivityRecorder(storage),
        "provider_registry": {"ticketmaster": True, "spotify": True, "musicbrainz": False},
        "default_weights": TrendingWeights(),
        "default_window_hours": 168.0,
    }

    with TestClient(create_app(components=components)) as client:
        accepted = client.post("/api/v1/imports", json={"attraction_id": "K8vZ9171ob7"})
        assert accepted.status_code == 202
        artist_id = accepted.json()["artist_id"]

        status: dict = {}
        for _ in range(200):
            status = client.get(f"/api/v1/imports/{artist_id}/status").json()
            if status["stage"] in ("completed", "failed"):
                break
            time.sleep(0.02)
        assert status["stage"] == "completed", status
        assert status["artist_name"] == "Drake"
        assert status["total_setlists"] == 2

        vote = client.post(
            "/api/v1/activity",
            json={"entity_type": "artist", "entity_id": artist_id, "kind": "vote", "count": 3},
        )
        assert vote.status_code == 202

        ranking = client.get("/api/v1/trending/artist", params={"recency": 0}).json()
        assert ranking["results"][0]["entity_id"] == artist_id
        assert ranking["results"][0]["score"] == 3.0

        shows = client.get("/api/v1/trending/show").json()["results"]
        assert len(shows) == 2
        assert {s["score"] for s in shows} == {0.0}
