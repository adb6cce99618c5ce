"""Time-windowed, recency-decayed trending scores.

# ─── SCORING ───────────────────────────────────────────────────────────
#
#   For each candidate entity, over buckets in (now - window, now]:
#
#     votes, attendees, views = summed hourly counters
#     recency_factor = (votes + attendees + views)
#                      * max(0, 1 - hours_since_latest_bucket / window)
#     score = votes * w.votes + attendees * w.attendees
#             + recency_factor * w.recency            (rounded to 6 dp)
#
#   Ranking: score desc, then all-time attendance desc, then entity id asc.
#   Signals on an artist merged into another count toward the survivor.
#
#   weekly_growth = (current - previous) / previous, read from persisted
#   weekly snapshots only.  No snapshot, or previous == 0, gives 0.0.
#
# Sums use math.fsum over sorted inputs so the order storage returns rows
# in never changes a result.  Scores are a projection: recomputing with
# the same signals, window, weights and ``now`` gives identical output.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import math
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import TypeAdapter

from setlist_sync.interfaces.cache_provider import ICacheProvider
from setlist_sync.interfaces.storage_provider import IStorageProvider
from setlist_sync.models.entities import EntityType, Table, utc_now
from setlist_sync.models.trending import (
    ActivityKind,
    TrendingScoreResult,
    TrendingSnapshot,
    TrendingWeights,
)

logger = structlog.get_logger(logger_name=__name__)

_DATETIME = TypeAdapter(datetime)
_CANDIDATE_TABLES = {EntityType.ARTIST: Table.ARTISTS, EntityType.SHOW: Table.SHOWS}


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)  # noqa: UP017
    return moment.astimezone(timezone.utc)  # noqa: UP017


def period_start(moment: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing *moment*."""
    moment = _as_utc(moment)
    monday = moment - timedelta(days=moment.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def snapshot_key(entity_type: EntityType, entity_id: str, start: datetime) -> str:
    return f"{entity_type.value}:{entity_id}:{start.date().isoformat()}"


def _clean_count(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


@dataclass
class _Tally:
    counts: dict[ActivityKind, list[float]] = field(
        default_factory=lambda: {kind: [] for kind in ActivityKind}
    )
    all_time_attendance: list[float] = field(default_factory=list)
    latest: datetime | None = None

    def total(self, kind: ActivityKind) -> float:
        return math.fsum(sorted(self.counts[kind]))


class TrendingEngine:
    """Computes ranked trending scores from stored activity signals.

    Parameters
    ----------
    storage:
        Row store with activity signals, snapshots and candidate entities.
    cache:
        Optional ephemeral store for computed rankings.
    cache_ttl:
        Seconds a cached ranking stays valid.
    clock:
        Source of "now" when the caller does not pass one.
    """

    def __init__(
        self,
        storage: IStorageProvider,
        cache: ICacheProvider | None = None,
        cache_ttl: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._clock = clock

    def _default_now(self) -> datetime:
        # Minute resolution so repeated requests can share a cache entry.
        return self._clock().replace(second=0, microsecond=0)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def compute_scores(
        self,
        entity_type: EntityType,
        window_hours: float,
        weights: TrendingWeights | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[TrendingScoreResult]:
        """Return entities of *entity_type* ranked by trending score."""
        if not math.isfinite(window_hours) or window_hours <= 0:
            raise ValueError("window_hours must be a positive finite number")
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        weights = weights or TrendingWeights()
        now = _as_utc(now) if now is not None else self._default_now()

        cache_key = (
            f"trending:{entity_type.value}:{window_hours!r}:{weights.votes!r}:"
            f"{weights.attendees!r}:{weights.recency!r}:{now.isoformat()}:{limit}"
        )
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return [TrendingScoreResult.model_validate(item) for item in cached]

        window_start = now - timedelta(hours=window_hours)
        merges = await self._merge_targets(entity_type)
        tallies = await self._tally(entity_type, window_start, now, merges)
        candidates = await self._candidates(entity_type) | set(tallies)
        growth = await self._weekly_growth(entity_type, now)

        scored: list[tuple[float, float, str, dict[str, Any]]] = []
        for entity_id in candidates:
            tally = tallies.get(entity_id) or _Tally()
            votes = tally.total(ActivityKind.VOTE)
            attendees = tally.total(ActivityKind.ATTENDANCE)
            views = tally.total(ActivityKind.VIEW)

            recency = 0.0
            if tally.latest is not None:
                elapsed_hours = (now - tally.latest).total_seconds() / 3600.0
                decay = max(0.0, 1.0 - elapsed_hours / window_hours)
                recency = math.fsum(sorted((votes, attendees, views))) * decay

            score = round(
                math.fsum(
                    sorted(
                        (
                            votes * weights.votes,
                            attendees * weights.attendees,
                            recency * weights.recency,
                        )
                    )
                ),
                6,
            )
            scored.append(
                (
                    score,
                    math.fsum(sorted(tally.all_time_attendance)),
                    entity_id,
                    {
                        "votes": votes,
                        "attendees": attendees,
                        "views": views,
                        "recency_factor": round(recency, 6),
                    },
                )
            )

        scored.sort(key=lambda item: (-item[0], -item[1], item[2]))
        if limit is not None:
            scored = scored[:limit]

        results = [
            TrendingScoreResult(
                entity_id=entity_id,
                entity_type=entity_type,
                score=score,
                rank=rank,
                window_hours=window_hours,
                weekly_growth=growth.get(entity_id, 0.0),
                generated_at=now,
                **parts,
            )
            for rank, (score, _attendance, entity_id, parts) in enumerate(scored, start=1)
        ]

        if self._cache is not None:
            await self._cache.set(
                cache_key, [r.model_dump(mode="json") for r in results], ttl=self._cache_ttl
            )

        logger.debug(
            "trending_scores_computed",
            entity_type=entity_type.value,
            window_hours=window_hours,
            candidates=len(candidates),
            returned=len(results),
        )
        return results

    async def _tally(
        self,
        entity_type: EntityType,
        window_start: datetime,
        now: datetime,
        merges: dict[str, str],
    ) -> dict[str, _Tally]:
        records = await self._storage.query(
            Table.ACTIVITY_SIGNALS, {"entity_type": entity_type.value}
        )
        tallies: dict[str, _Tally] = defaultdict(_Tally)
        for record in records:
            fields = record.fields
            try:
                bucket = _as_utc(_DATETIME.validate_python(fields["bucket"]))
                kind = ActivityKind(fields["kind"])
                entity_id = str(fields["entity_id"])
            except (KeyError, ValueError) as exc:
                logger.warning("activity_signal_unreadable", key=record.natural_key, error=str(exc))
                continue
            if bucket > now:
                continue
            entity_id = merges.get(entity_id, entity_id)

            count = _clean_count(fields.get("count"))
            tally = tallies[entity_id]
            if kind == ActivityKind.ATTENDANCE:
                tally.all_time_attendance.append(count)
            if bucket <= window_start:
                continue
            tally.counts[kind].append(count)
            if count > 0 and (tally.latest is None or bucket > tally.latest):
                tally.latest = bucket
        return dict(tallies)

    async def _merge_targets(self, entity_type: EntityType) -> dict[str, str]:
        """Map each merged artist id to the artist that finally absorbed it."""
        if entity_type != EntityType.ARTIST:
            return {}
        links = {
            record.id: str(record.fields["merged_into"])
            for record in await self._storage.query(Table.ARTISTS)
            if record.fields.get("merged_into")
        }
        targets: dict[str, str] = {}
        for merged_id, target in links.items():
            seen = {merged_id}
            while target in links and target not in seen:
                seen.add(target)
                target = links[target]
            targets[merged_id] = target
        return targets

    async def _candidates(self, entity_type: EntityType) -> set[str]:
        table = _CANDIDATE_TABLES[entity_type]
        filters = {"merged_into": None} if entity_type == EntityType.ARTIST else None
        return {record.id for record in await self._storage.query(table, filters)}

    # ------------------------------------------------------------------
    # Weekly growth
    # ------------------------------------------------------------------

    async def _weekly_growth(self, entity_type: EntityType, now: datetime) -> dict[str, float]:
        current_start = period_start(now)
        previous_start = current_start - timedelta(days=7)
        current_day = current_start.date().isoformat()
        previous_day = previous_start.date().isoformat()

        current: dict[str, float] = {}
        previous: dict[str, float] = {}
        records = await self._storage.query(
            Table.TRENDING_SNAPSHOTS,
            {"entity_type": entity_type.value, "period_day__in": [current_day, previous_day]},
        )
        for record in records:
            target = current if record.fields["period_day"] == current_day else previous
            target[record.fields["entity_id"]] = _clean_count(record.fields.get("activity_total"))

        growth: dict[str, float] = {}
        for entity_id, cur in current.items():
            prev = previous.get(entity_id)
            if prev is None or prev == 0:
                continue
            growth[entity_id] = round((cur - prev) / prev, 6)
        return growth

    async def snapshot_period(
        self,
        entity_type: EntityType,
        now: datetime | None = None,
    ) -> list[TrendingSnapshot]:
        """Persist activity totals for the weekly period containing *now*."""
        now = _as_utc(now) if now is not None else self._clock()
        start = period_start(now)
        merges = await self._merge_targets(entity_type)

        records = await self._storage.query(
            Table.ACTIVITY_SIGNALS, {"entity_type": entity_type.value}
        )
        totals: dict[str, list[float]] = defaultdict(list)
        for record in records:
            try:
                bucket = _as_utc(_DATETIME.validate_python(record.fields["bucket"]))
            except (KeyError, ValueError):
                continue
            if start <= bucket <= now:
                entity_id = str(record.fields.get("entity_id"))
                totals[merges.get(entity_id, entity_id)].append(
                    _clean_count(record.fields.get("count"))
                )

        snapshots: list[TrendingSnapshot] = []
        for entity_id in sorted(totals):
            snapshot = TrendingSnapshot(
                entity_id=entity_id,
                entity_type=entity_type,
                period_start=start,
                activity_total=math.fsum(sorted(totals[entity_id])),
            )
            fields = snapshot.model_dump(mode="json")
            fields["period_day"] = start.date().isoformat()
            await self._storage.upsert(
                Table.TRENDING_SNAPSHOTS, snapshot_key(entity_type, entity_id, start), fields
            )
            snapshots.append(snapshot)

        logger.info(
            "trending_snapshot_written",
            entity_type=entity_type.value,
            period_start=start.isoformat(),
            entities=len(snapshots),
        )
        return snapshots

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    async def refresh_scores(
        self,
        entity_type: EntityType,
        window_hours: float,
        weights: TrendingWeights | None = None,
        now: datetime | None = None,
    ) -> list[TrendingScoreResult]:
        """Compute scores and copy each onto its entity's ``trending_score``."""
        results = await self.compute_scores(entity_type, window_hours, weights, now=now)
        table = _CANDIDATE_TABLES[entity_type]
        updated = 0
        for result in results:
            record = await self._storage.get_by_id(table, result.entity_id)
            if record is None:
                continue
            if record.fields.get("trending_score") == result.score:
                continue
            await self._storage.upsert(
                table, record.natural_key, {"trending_score": result.score}
            )
            updated += 1
        logger.info(
            "trending_scores_refreshed",
            entity_type=entity_type.value,
            scored=len(results),
            updated=updated,
        )
        return results

    async def run_periodic_refresh(
        self,
        interval_seconds: float,
        window_hours: float,
        weights: TrendingWeights | None = None,
        entity_types: tuple[EntityType, ...] = (EntityType.ARTIST, EntityType.SHOW),
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Snapshot and refresh every *interval_seconds* until *stop_event* is set."""
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            for entity_type in entity_types:
                try:
                    await self.snapshot_period(entity_type)
                    await self.refresh_scores(entity_type, window_hours, weights)
                except Exception:
                    logger.exception("trending_refresh_failed", entity_type=entity_type.value)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
