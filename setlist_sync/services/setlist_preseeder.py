"""Predicted setlists for an artist's upcoming shows.

Each upcoming show that has no predicted setlist yet gets one, filled with
the artist's most popular studio songs.  The selection is deterministic
(popularity desc, then title) so a rerun produces the same setlist, and
shows that already have one are left alone.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import structlog

from setlist_sync.interfaces.storage_provider import IStorageProvider, StoredRecord
from setlist_sync.models.entities import SetlistSeedResult, Table, utc_now
from setlist_sync.utils.text_normalizer import is_likely_live_title

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SONGS_PER_SETLIST = 10


def setlist_key(show_id: str) -> str:
    return f"show:{show_id}:predicted"


class SetlistPreseeder:
    """Creates one predicted setlist per upcoming show."""

    def __init__(
        self,
        storage: IStorageProvider,
        songs_per_setlist: int = DEFAULT_SONGS_PER_SETLIST,
        today: Callable[[], date] = lambda: utc_now().date(),
    ) -> None:
        self._storage = storage
        self._songs_per_setlist = songs_per_setlist
        self._today = today

    async def top_songs(self, artist_id: str) -> list[StoredRecord]:
        links = await self._storage.query(
            Table.ARTIST_SONGS, {"artist_id": artist_id, "superseded_by": None}
        )
        songs: list[StoredRecord] = []
        for link in links:
            song = await self._storage.get_by_id(Table.SONGS, link.fields["song_id"])
            if song is None or is_likely_live_title(song.fields.get("title", "")):
                continue
            songs.append(song)
        songs.sort(
            key=lambda s: (
                -int(s.fields.get("popularity") or 0),
                s.fields.get("title", "").lower(),
                s.id,
            )
        )
        return songs[: self._songs_per_setlist]

    async def seed_artist(self, artist_id: str) -> SetlistSeedResult:
        """Create predicted setlists for *artist_id*'s upcoming shows."""
        songs = await self.top_songs(artist_id)
        shows = await self._storage.query(
            Table.SHOWS,
            {"headliner_artist_id": artist_id, "date__gte": self._today().isoformat()},
            order_by=["date", "id"],
        )

        processed = created = added = skipped = 0
        for show in shows:
            processed += 1
            key = setlist_key(show.id)
            if not songs or await self._storage.get(Table.SETLISTS, key) is not None:
                skipped += 1
                continue

            setlist = await self._storage.upsert(
                Table.SETLISTS,
                key,
                {
                    "show_id": show.id,
                    "artist_id": artist_id,
                    "type": "predicted",
                    "name": f"{show.fields.get('name') or show.fields.get('venue_name')} - Predicted Setlist",
                    "is_locked": False,
                    "total_votes": 0,
                    "created_at": utc_now().isoformat(),
                },
            )
            for position, song in enumerate(songs, start=1):
                await self._storage.upsert(
                    Table.SETLIST_SONGS,
                    f"{setlist.id}:{position}",
                    {
                        "setlist_id": setlist.id,
                        "song_id": song.id,
                        "position": position,
                        "upvotes": 0,
                    },
                )
                added += 1
            created += 1

        if not songs and shows:
            logger.info("setlist_seed_no_songs", artist_id=artist_id, shows=len(shows))
        logger.info(
            "setlists_seeded",
            artist_id=artist_id,
            shows=processed,
            created=created,
            songs=added,
        )
        return SetlistSeedResult(
            shows_processed=processed,
            setlists_created=created,
            songs_added=added,
            skipped_shows=skipped,
        )
