"""Activity signals and trending-score models.

ActivitySignal rows are the source of truth; TrendingScoreResult is a
projection that can be thrown away and recomputed at any time.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from setlist_sync.models.entities import EntityType


class ActivityKind(str, Enum):  # noqa: UP042
    VOTE = "vote"
    ATTENDANCE = "attendance"
    VIEW = "view"


class ActivitySignal(BaseModel):
    """Counter for one (entity, kind, hour bucket)."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    entity_type: EntityType
    kind: ActivityKind
    count: float = 0.0
    bucket: datetime  # UTC, truncated to the hour


class TrendingWeights(BaseModel):
    """Non-negative multipliers for the score formula."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    votes: float = Field(default=1.0, ge=0.0)
    attendees: float = Field(default=1.0, ge=0.0)
    recency: float = Field(default=1.0, ge=0.0)


class TrendingSnapshot(BaseModel):
    """Activity total for one entity over one weekly period."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    entity_type: EntityType
    period_start: datetime
    activity_total: float = 0.0


class TrendingScoreResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    entity_type: EntityType
    score: float
    rank: int
    window_hours: float
    weekly_growth: float = 0.0
    votes: float = 0.0
    attendees: float = 0.0
    views: float = 0.0
    recency_factor: float = 0.0
    generated_at: datetime
