"""Unit tests for MemoryCacheProvider and ImportProgressTracker."""

from __future__ import annotations

import pytest

from setlist_sync.models.import_job import ImportStage
from setlist_sync.pipeline.progress_tracker import (
    ImportProgressTracker,
    estimate_seconds_remaining,
    status_key,
)
from setlist_sync.providers.cache.memory_cache import MemoryCacheProvider
from setlist_sync.utils.errors import ImportInProgressError, InvalidStageTransitionError
from tests.conftest import FakeTimer


# ======================================================================
# MemoryCacheProvider
# ======================================================================


class TestMemoryCacheProvider:
    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, cache: MemoryCacheProvider) -> None:
        assert await cache.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_set_overwrites_existing(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", "old")
        await cache.set("key1", "new")
        assert await cache.get("key1") == "new"

    @pytest.mark.asyncio
    async def test_delete_removes_key(self, cache: MemoryCacheProvider) -> None:
        await cache.set("key1", {"a": 1})
        await cache.delete("key1")
        assert await cache.get("key1") is None
        await cache.delete("key1")  # no-op

    @pytest.mark.asyncio
    async def test_entry_expires_after_its_own_ttl(
        self, cache: MemoryCacheProvider, timer: FakeTimer
    ) -> None:
        await cache.set("short", 1, ttl=10)
        await cache.set("long", 2, ttl=100)
        timer.advance(9.9)
        assert await cache.exists("short") is True
        timer.advance(0.1)
        assert await cache.get("short") is None
        assert await cache.exists("short") is False
        assert await cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_rewrite_restarts_expiry(
        self, cache: MemoryCacheProvider, timer: FakeTimer
    ) -> None:
        await cache.set("k", 1, ttl=10)
        timer.advance(8)
        await cache.set("k", 2, ttl=10)
        timer.advance(8)
        assert await cache.get("k") == 2


# ======================================================================
# ImportProgressTracker
# ======================================================================


@pytest.fixture()
def tracker(cache: MemoryCacheProvider) -> ImportProgressTracker:
    return ImportProgressTracker(cache)


class TestImportProgressTracker:
    @pytest.mark.asyncio
    async def test_begin_creates_initializing_record(
        self, tracker: ImportProgressTracker, cache: MemoryCacheProvider
    ) -> None:
        status = await tracker.begin("art-1", provider_artist_id="A1")
        assert status.stage == ImportStage.INITIALIZING
        assert status.progress == 0.0
        assert status.estimated_seconds_remaining == 75.0
        assert await cache.exists(status_key("art-1"))
        assert (await tracker.get("art-1")).job_id == status.job_id

    @pytest.mark.asyncio
    async def test_second_begin_is_rejected_while_active(
        self, tracker: ImportProgressTracker
    ) -> None:
        await tracker.begin("art-1")
        with pytest.raises(ImportInProgressError) as exc_info:
            await tracker.begin("art-1")
        assert exc_info.value.stage == "initializing"

    @pytest.mark.asyncio
    async def test_begin_allowed_after_terminal(self, tracker: ImportProgressTracker) -> None:
        first = await tracker.begin("art-1")
        await tracker.complete("art-1")
        second = await tracker.begin("art-1")
        assert second.job_id != first.job_id
        assert second.stage == ImportStage.INITIALIZING

    @pytest.mark.asyncio
    async def test_stage_change_moves_progress_to_band_start(
        self, tracker: ImportProgressTracker
    ) -> None:
        await tracker.begin("art-1")
        status = await tracker.update("art-1", stage=ImportStage.IMPORTING_SONGS)
        assert status.progress == 25.0
        status = await tracker.update("art-1", progress=42.5, message="halfway")
        assert status.stage == ImportStage.IMPORTING_SONGS
        assert status.message == "halfway"
        assert status.estimated_seconds_remaining == 40.0

    @pytest.mark.asyncio
    async def test_stages_never_regress(self, tracker: ImportProgressTracker) -> None:
        await tracker.begin("art-1")
        await tracker.update("art-1", stage=ImportStage.IMPORTING_SHOWS)
        with pytest.raises(InvalidStageTransitionError):
            await tracker.update("art-1", stage=ImportStage.FETCHING_ARTIST)
        assert (await tracker.get("art-1")).stage == ImportStage.IMPORTING_SHOWS

    @pytest.mark.asyncio
    async def test_terminal_records_are_immutable(self, tracker: ImportProgressTracker) -> None:
        await tracker.begin("art-1")
        done = await tracker.complete("art-1", total_songs=12)
        assert done.progress == 100.0
        assert done.completed_at is not None
        assert done.estimated_seconds_remaining is None
        with pytest.raises(InvalidStageTransitionError):
            await tracker.update("art-1", progress=10.0)
        with pytest.raises(InvalidStageTransitionError):
            await tracker.fail("art-1", error="late")

    @pytest.mark.asyncio
    async def test_fail_keeps_error_verbatim(self, tracker: ImportProgressTracker) -> None:
        await tracker.begin("art-1")
        status = await tracker.fail("art-1", error="importing-songs: boom", error_detail="tb")
        assert status.stage == ImportStage.FAILED
        assert status.error == "importing-songs: boom"
        assert status.error_detail == "tb"
        assert status.message == "Import failed: importing-songs: boom"

    @pytest.mark.asyncio
    async def test_update_without_record_creates_one(self, tracker: ImportProgressTracker) -> None:
        status = await tracker.update("art-9", stage=ImportStage.FETCHING_ARTIST)
        assert status.artist_id == "art-9"
        assert status.progress == 5.0

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, tracker: ImportProgressTracker) -> None:
        await tracker.begin("art-1")
        assert (await tracker.update("art-1", progress=250.0)).progress == 100.0
        assert (await tracker.update("art-1", progress=-5.0)).progress == 0.0

    @pytest.mark.asyncio
    async def test_active_record_expires_after_30_minutes(
        self, tracker: ImportProgressTracker, timer: FakeTimer
    ) -> None:
        await tracker.begin("art-1")
        timer.advance(1000)
        await tracker.update("art-1", message="still going")
        timer.advance(1000)
        assert await tracker.get("art-1") is not None
        timer.advance(801)
        assert await tracker.get("art-1") is None

    @pytest.mark.asyncio
    async def test_terminal_record_kept_for_an_hour(
        self, tracker: ImportProgressTracker, timer: FakeTimer
    ) -> None:
        await tracker.begin("art-1")
        await tracker.complete("art-1")
        timer.advance(1801)
        assert await tracker.get("art-1") is not None
        timer.advance(1800)
        assert await tracker.get("art-1") is None


class TestEstimateSecondsRemaining:
    def test_terminal_has_no_estimate(self) -> None:
        assert estimate_seconds_remaining(ImportStage.COMPLETED, 100.0) is None

    def test_start_of_pipeline(self) -> None:
        assert estimate_seconds_remaining(ImportStage.INITIALIZING, 0.0) == 75.0

    def test_last_stage_almost_done(self) -> None:
        assert estimate_seconds_remaining(ImportStage.CREATING_SETLISTS, 99.0) == 0.5
