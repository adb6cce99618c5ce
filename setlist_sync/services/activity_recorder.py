"""Hour-bucketed activity counters (votes, attendance, views).

Signals are increment-only.  Each (entity, kind, hour) has one counter
row; recording adds to it.  The read-modify-write is serialized per
process; concurrent writers in different processes may lose increments.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from setlist_sync.interfaces.storage_provider import IStorageProvider
from setlist_sync.models.entities import EntityType, Table, utc_now
from setlist_sync.models.trending import ActivityKind, ActivitySignal

logger = structlog.get_logger(logger_name=__name__)


def hour_bucket(moment: datetime) -> datetime:
    """Truncate *moment* to the start of its UTC hour."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)  # noqa: UP017
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)  # noqa: UP017


def signal_key(entity_type: EntityType, entity_id: str, kind: ActivityKind, bucket: datetime) -> str:
    return f"{entity_type.value}:{entity_id}:{kind.value}:{bucket.isoformat()}"


class ActivityRecorder:
    """Adds user activity to the hourly counters the trending engine reads."""

    def __init__(
        self,
        storage: IStorageProvider,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._lock = asyncio.Lock()

    async def record(
        self,
        entity_type: EntityType,
        entity_id: str,
        kind: ActivityKind,
        count: float = 1.0,
        at: datetime | None = None,
    ) -> ActivitySignal:
        """Add *count* to the counter for the hour containing *at* (default: now)."""
        if not math.isfinite(count) or count <= 0:
            raise ValueError("count must be a positive finite number")
        if not entity_id:
            raise ValueError("entity_id is required")

        bucket = hour_bucket(at or self._clock())
        key = signal_key(entity_type, entity_id, kind, bucket)

        async with self._lock:
            existing = await self._storage.get(Table.ACTIVITY_SIGNALS, key)
            total = float(existing.fields.get("count", 0.0)) if existing else 0.0
            total += count
            signal = ActivitySignal(
                entity_id=entity_id,
                entity_type=entity_type,
                kind=kind,
                count=total,
                bucket=bucket,
            )
            await self._storage.upsert(
                Table.ACTIVITY_SIGNALS, key, signal.model_dump(mode="json")
            )

        logger.debug(
            "activity_recorded",
            entity_type=entity_type.value,
            entity_id=entity_id,
            kind=kind.value,
            bucket=bucket.isoformat(),
            total=total,
        )
        return signal
