"""Import job progress held in the ephemeral key-value store.

One record per artist under ``import:status:{artist_id}``.  The record
doubles as the per-artist single-writer lock: :meth:`begin` refuses to
start while a non-terminal record exists.

# ─── HOW PROGRESS TRACKING WORKS ───────────────────────────────────────
#
#   Coordinator ──begin()──→ ImportProgressTracker ──set(ttl)──→ ICacheProvider
#   Pipeline    ──update()─→        "                   "
#   API         ──get()────→        "              ←──get()────
#
#   - update() merges a partial status into the stored one, refreshes
#     updated_at and re-applies the TTL (30 min active, 1 h terminal).
#   - Stages only move forward; completed and failed are immutable.
#   - estimated_seconds_remaining comes from a fixed per-stage duration
#     table, not from measured throughput.
#
# The guard lock is in-process.  Several API workers sharing one network
# store would need an atomic set-if-absent in the store instead.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from setlist_sync.interfaces.cache_provider import ICacheProvider
from setlist_sync.models.entities import utc_now
from setlist_sync.models.import_job import (
    ACTIVE_TTL_SECONDS,
    STAGE_DURATIONS_SECONDS,
    STAGE_PROGRESS_BANDS,
    TERMINAL_TTL_SECONDS,
    ImportStage,
    ImportStatus,
)
from setlist_sync.utils.errors import ImportInProgressError, InvalidStageTransitionError
from setlist_sync.utils.logging import get_logger

_KEY_PREFIX = "import:status:"


def status_key(artist_id: str) -> str:
    return f"{_KEY_PREFIX}{artist_id}"


def estimate_seconds_remaining(stage: ImportStage, progress: float) -> float | None:
    """Advisory time left for a job at *stage* with overall *progress* (0--100).

    The unfinished share of the current stage's band is charged at that
    stage's nominal duration; every later stage is charged in full.
    """
    if stage.is_terminal:
        return None
    start, end = STAGE_PROGRESS_BANDS[stage]
    width = end - start
    done = (progress - start) / width if width > 0 else 0.0
    done = min(max(done, 0.0), 1.0)

    remaining = STAGE_DURATIONS_SECONDS[stage] * (1.0 - done)
    for later, duration in STAGE_DURATIONS_SECONDS.items():
        if later.order > stage.order:
            remaining += duration
    return round(remaining, 1)


class ImportProgressTracker:
    """Stage-based state machine for import jobs, persisted with expiry.

    Parameters
    ----------
    store:
        Ephemeral store with per-key TTL.
    active_ttl, terminal_ttl:
        Expiry in seconds for non-terminal and terminal records.
    clock:
        Source of ``started_at`` / ``updated_at`` timestamps.
    """

    def __init__(
        self,
        store: ICacheProvider,
        active_ttl: int = ACTIVE_TTL_SECONDS,
        terminal_ttl: int = TERMINAL_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._active_ttl = active_ttl
        self._terminal_ttl = terminal_ttl
        self._clock = clock
        self._guard = asyncio.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, artist_id: str) -> ImportStatus | None:
        """Return the current snapshot, or ``None`` if unknown or expired."""
        raw = await self._store.get(status_key(artist_id))
        if raw is None:
            return None
        return ImportStatus.model_validate(raw)

    async def begin(
        self,
        artist_id: str,
        job_id: str | None = None,
        provider_artist_id: str | None = None,
        artist_name: str | None = None,
        message: str = "Import queued",
    ) -> ImportStatus:
        """Create a fresh ``initializing`` record for *artist_id*.

        Raises
        ------
        ImportInProgressError
            If a non-terminal job already exists for the artist.
        """
        async with self._guard:
            existing = await self.get(artist_id)
            if existing is not None and not existing.is_terminal:
                self._logger.info(
                    "import_rejected_in_progress",
                    artist_id=artist_id,
                    job_id=existing.job_id,
                    stage=existing.stage.value,
                )
                raise ImportInProgressError(artist_id, existing.stage.value)

            now = self._clock()
            status = ImportStatus(
                artist_id=artist_id,
                job_id=job_id or uuid.uuid4().hex,
                stage=ImportStage.INITIALIZING,
                progress=0.0,
                message=message,
                provider_artist_id=provider_artist_id,
                artist_name=artist_name,
                started_at=now,
                updated_at=now,
                estimated_seconds_remaining=estimate_seconds_remaining(
                    ImportStage.INITIALIZING, 0.0
                ),
            )
            await self._save(status)

        self._logger.info("import_job_started", artist_id=artist_id, job_id=status.job_id)
        return status

    async def update(self, artist_id: str, **partial: Any) -> ImportStatus:
        """Merge *partial* fields into the job record for *artist_id*.

        A missing record is created with defaults.  Moving to an earlier
        stage, or touching a terminal record, raises
        :class:`InvalidStageTransitionError`.
        """
        current = await self.get(artist_id)
        now = self._clock()
        if current is None:
            current = ImportStatus(
                artist_id=artist_id,
                job_id=partial.get("job_id") or uuid.uuid4().hex,
                started_at=now,
                updated_at=now,
            )

        if current.is_terminal:
            raise InvalidStageTransitionError(
                message=(
                    f"Import for artist {artist_id} is already {current.stage.value}; "
                    "terminal jobs cannot be updated"
                )
            )

        stage = ImportStage(partial.get("stage", current.stage))
        if stage.order < current.stage.order:
            raise InvalidStageTransitionError(
                message=(
                    f"Import for artist {artist_id} cannot move from "
                    f"{current.stage.value} back to {stage.value}"
                )
            )

        merged = {**current.model_dump(), **partial, "stage": stage, "artist_id": artist_id}
        if "progress" not in partial and stage != current.stage and stage in STAGE_PROGRESS_BANDS:
            merged["progress"] = STAGE_PROGRESS_BANDS[stage][0]
        if stage == ImportStage.COMPLETED:
            merged["progress"] = 100.0
        merged["progress"] = min(max(float(merged["progress"]), 0.0), 100.0)
        if stage.is_terminal and merged.get("completed_at") is None:
            merged["completed_at"] = now
        merged["updated_at"] = now
        merged["estimated_seconds_remaining"] = estimate_seconds_remaining(
            stage, merged["progress"]
        )

        status = ImportStatus.model_validate(merged)
        await self._save(status)

        self._logger.debug(
            "import_progress_update",
            artist_id=artist_id,
            stage=status.stage.value,
            progress=round(status.progress, 1),
            message=status.message,
        )
        return status

    async def fail(
        self,
        artist_id: str,
        error: str,
        error_detail: str | None = None,
        **partial: Any,
    ) -> ImportStatus:
        """Move the job to ``failed`` keeping the error verbatim."""
        status = await self.update(
            artist_id,
            stage=ImportStage.FAILED,
            message=f"Import failed: {error}",
            error=error,
            error_detail=error_detail,
            **partial,
        )
        self._logger.warning("import_job_failed", artist_id=artist_id, error=error)
        return status

    async def complete(
        self,
        artist_id: str,
        message: str = "Import completed",
        **partial: Any,
    ) -> ImportStatus:
        status = await self.update(
            artist_id, stage=ImportStage.COMPLETED, message=message, **partial
        )
        self._logger.info(
            "import_job_completed",
            artist_id=artist_id,
            songs=status.total_songs,
            shows=status.total_shows,
        )
        return status

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _save(self, status: ImportStatus) -> None:
        ttl = self._terminal_ttl if status.is_terminal else self._active_ttl
        await self._store.set(status_key(status.artist_id), status.model_dump(mode="json"), ttl=ttl)
