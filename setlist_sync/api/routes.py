"""FastAPI route definitions for the setlist-sync API.

Thin layer over :class:`IngestionCoordinator` and
:class:`ActivityRecorder`; both are resolved from ``app.state`` via
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/imports                       POST    Start an import (202)
# /api/v1/imports/{artist_id}/status    GET     Poll import progress
# /api/v1/trending/{entity_type}        GET     Ranked trending scores
# /api/v1/activity                      POST    Record a vote/attendance/view
# /api/v1/health                        GET     Health check + providers
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from setlist_sync.api.schemas import (
    ActivityRequest,
    HealthResponse,
    ImportAcceptedResponse,
    ImportRequest,
    TrendingResponse,
)
from setlist_sync.models.entities import EntityType
from setlist_sync.models.import_job import ImportStatus
from setlist_sync.models.trending import ActivitySignal, TrendingWeights
from setlist_sync.pipeline.orchestrator import IngestionCoordinator
from setlist_sync.services.activity_recorder import ActivityRecorder
from setlist_sync.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


def _get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def _get_activity_recorder(request: Request) -> ActivityRecorder:
    return request.app.state.activity_recorder


def _get_default_weights(request: Request) -> TrendingWeights:
    return getattr(request.app.state, "default_weights", None) or TrendingWeights()


def _get_default_window(request: Request) -> float:
    return float(getattr(request.app.state, "default_window_hours", 168.0))


@router.post(
    "/imports",
    response_model=ImportAcceptedResponse,
    status_code=202,
    summary="Start an artist import",
)
async def start_import(
    body: ImportRequest,
    coordinator: Annotated[IngestionCoordinator, Depends(_get_coordinator)],
) -> ImportAcceptedResponse:
    """Accept an import and return immediately; 409 if one is already running."""
    try:
        accepted = await coordinator.start_ingestion(body.attraction_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return ImportAcceptedResponse(
        artist_id=accepted.artist_id,
        job_id=accepted.job_id,
        provider_artist_id=accepted.provider_artist_id,
        stage=accepted.stage,
        status_url=f"/api/v1/imports/{accepted.artist_id}/status",
    )


@router.get(
    "/imports/{artist_id}/status",
    response_model=ImportStatus,
    summary="Poll import progress",
)
async def get_import_status(
    artist_id: str,
    coordinator: Annotated[IngestionCoordinator, Depends(_get_coordinator)],
) -> ImportStatus:
    status = await coordinator.get_status(artist_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"No import job for artist: {artist_id}")
    return status


@router.get(
    "/trending/{entity_type}",
    response_model=TrendingResponse,
    summary="Ranked trending scores",
)
async def get_trending(
    entity_type: EntityType,
    coordinator: Annotated[IngestionCoordinator, Depends(_get_coordinator)],
    default_weights: Annotated[TrendingWeights, Depends(_get_default_weights)],
    default_window: Annotated[float, Depends(_get_default_window)],
    window: Annotated[float | None, Query(gt=0, le=24 * 366)] = None,
    votes: Annotated[float | None, Query(ge=0)] = None,
    attendees: Annotated[float | None, Query(ge=0)] = None,
    recency: Annotated[float | None, Query(ge=0)] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
) -> TrendingResponse:
    overrides: dict[str, Any] = {
        name: value
        for name, value in (("votes", votes), ("attendees", attendees), ("recency", recency))
        if value is not None
    }
    try:
        weights = TrendingWeights.model_validate(
            {**default_weights.model_dump(), **overrides}
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="Weights must be finite and >= 0") from exc

    window_hours = window or default_window
    results = await coordinator.compute_trending(entity_type, window_hours, weights, limit=limit)
    return TrendingResponse(
        entity_type=entity_type,
        window_hours=window_hours,
        weights=weights,
        results=results,
    )


@router.post(
    "/activity",
    response_model=ActivitySignal,
    status_code=202,
    summary="Record user activity",
)
async def record_activity(
    body: ActivityRequest,
    recorder: Annotated[ActivityRecorder, Depends(_get_activity_recorder)],
) -> ActivitySignal:
    return await recorder.record(body.entity_type, body.entity_id, body.kind, body.count)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))
    status = "healthy" if providers.get("ticketmaster") else "degraded"
    return HealthResponse(status=status, version=_VERSION, providers=providers)
