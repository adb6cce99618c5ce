"""Pydantic request/response schemas for the setlist-sync API.

# ─── HOW SCHEMAS WORK ──────────────────────────────────────────────────
#
# FastAPI validates incoming JSON against the Request models (422 on
# failure), serializes responses through the Response models and builds
# the OpenAPI docs from both.  Import status and trending results reuse
# the domain models directly.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from setlist_sync.models.entities import EntityType
from setlist_sync.models.import_job import ImportStage
from setlist_sync.models.trending import ActivityKind, TrendingScoreResult, TrendingWeights


class ImportRequest(BaseModel):
    """Start an import for a Ticketmaster attraction."""

    attraction_id: str = Field(..., min_length=1, max_length=64)


class ImportAcceptedResponse(BaseModel):
    """Returned with 202; poll ``status_url`` for progress."""

    artist_id: str
    job_id: str
    provider_artist_id: str
    stage: ImportStage
    status_url: str


class ActivityRequest(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(..., min_length=1)
    kind: ActivityKind
    count: float = Field(default=1.0, gt=0, allow_inf_nan=False)


class TrendingResponse(BaseModel):
    entity_type: EntityType
    window_hours: float
    weights: TrendingWeights
    results: list[TrendingScoreResult]


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
