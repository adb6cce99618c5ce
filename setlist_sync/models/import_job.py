"""Import job state for the ingestion pipeline.

# ─── IMPORT STAGES ─────────────────────────────────────────────────────
#
#   initializing → fetching-artist → syncing-identifiers → importing-songs
#       → importing-shows → creating-setlists → completed
#
#   failed is reachable from any non-terminal stage.
#
# Stages only move forward within one job.  Each stage owns a band of the
# progress bar (STAGE_PROGRESS_BANDS) and a nominal duration
# (STAGE_DURATIONS_SECONDS) used for the advisory time-remaining estimate.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from setlist_sync.models.entities import utc_now


class ImportStage(str, Enum):  # noqa: UP042
    INITIALIZING = "initializing"
    FETCHING_ARTIST = "fetching-artist"
    SYNCING_IDENTIFIERS = "syncing-identifiers"
    IMPORTING_SONGS = "importing-songs"
    IMPORTING_SHOWS = "importing-shows"
    CREATING_SETLISTS = "creating-setlists"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStage.COMPLETED, ImportStage.FAILED)

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]


_STAGE_ORDER: dict[ImportStage, int] = {
    ImportStage.INITIALIZING: 0,
    ImportStage.FETCHING_ARTIST: 1,
    ImportStage.SYNCING_IDENTIFIERS: 2,
    ImportStage.IMPORTING_SONGS: 3,
    ImportStage.IMPORTING_SHOWS: 4,
    ImportStage.CREATING_SETLISTS: 5,
    ImportStage.COMPLETED: 6,
    # failed sorts after everything so it is always a forward move
    ImportStage.FAILED: 7,
}

# (start %, end %) of the overall progress bar owned by each active stage.
STAGE_PROGRESS_BANDS: dict[ImportStage, tuple[float, float]] = {
    ImportStage.INITIALIZING: (0.0, 5.0),
    ImportStage.FETCHING_ARTIST: (5.0, 15.0),
    ImportStage.SYNCING_IDENTIFIERS: (15.0, 25.0),
    ImportStage.IMPORTING_SONGS: (25.0, 60.0),
    ImportStage.IMPORTING_SHOWS: (60.0, 90.0),
    ImportStage.CREATING_SETLISTS: (90.0, 100.0),
}

STAGE_DURATIONS_SECONDS: dict[ImportStage, float] = {
    ImportStage.INITIALIZING: 5.0,
    ImportStage.FETCHING_ARTIST: 5.0,
    ImportStage.SYNCING_IDENTIFIERS: 10.0,
    ImportStage.IMPORTING_SONGS: 30.0,
    ImportStage.IMPORTING_SHOWS: 20.0,
    ImportStage.CREATING_SETLISTS: 5.0,
}

ACTIVE_TTL_SECONDS = 30 * 60
TERMINAL_TTL_SECONDS = 60 * 60


class ImportStatus(BaseModel):
    """Snapshot of one artist's import job, as stored in the ephemeral store."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    job_id: str
    stage: ImportStage = ImportStage.INITIALIZING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    message: str = ""
    error: str | None = None
    # Raw cause kept for diagnostics; callers are not expected to parse it.
    error_detail: str | None = None
    provider_artist_id: str | None = None
    artist_name: str | None = None
    total_songs: int = 0
    total_shows: int = 0
    total_venues: int = 0
    total_setlists: int = 0
    skipped_records: list[str] = Field(default_factory=list)
    phase_timings: dict[str, float] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    estimated_seconds_remaining: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal


class JobAccepted(BaseModel):
    """Returned immediately by ``start_ingestion``; poll by ``artist_id``."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    job_id: str
    provider_artist_id: str
    stage: ImportStage = ImportStage.INITIALIZING
