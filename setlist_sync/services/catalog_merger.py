"""Idempotent create-or-update of catalog records from several providers.

Every record is keyed by a natural key, so re-running an import with the
same provider responses rewrites nothing and creates nothing new.

Field merge rule, applied per field:

* an empty incoming value never replaces a populated one;
* an incoming value fills an empty field;
* when both are populated and differ, the incoming value wins if its
  provider is the primary for that field, or if the stored value was not
  written by the primary.

Which provider last wrote each field is kept in ``field_sources``.
"""

from __future__ import annotations

from typing import Any

import structlog

from setlist_sync.interfaces.storage_provider import IStorageProvider, StoredRecord
from setlist_sync.models.entities import (
    CanonicalArtist,
    ExternalIdentifier,
    Provider,
    ShowRecord,
    SongRecord,
    Table,
    Venue,
    utc_now,
)
from setlist_sync.utils.errors import MergeConflictError, StorageError
from setlist_sync.utils.text_normalizer import normalize_key

logger = structlog.get_logger(logger_name=__name__)

_SHOW_FIELDS = ("date", "name", "venue_name", "city", "ticket_url", "status", "venue_id")
_SONG_FIELDS = ("title", "album_name", "duration_ms", "isrc", "popularity", "spotify_id")
_ARTIST_PROFILE_FIELDS = ("image_url", "genres", "popularity", "followers")

FIELD_PRIMARIES: dict[str, dict[str, Provider]] = {
    Table.SHOWS: {name: Provider.TICKETMASTER for name in _SHOW_FIELDS},
    Table.SONGS: {name: Provider.SPOTIFY for name in _SONG_FIELDS},
    Table.VENUES: {
        name: Provider.TICKETMASTER
        for name in ("name", "city", "state", "country", "address", "postal_code", "timezone")
    },
    Table.ARTISTS: {name: Provider.SPOTIFY for name in _ARTIST_PROFILE_FIELDS},
}

# Bookkeeping keys that are written as-is rather than merged.
_UNMERGED_KEYS = frozenset({"field_sources"})


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def merge_fields(
    stored: dict[str, Any],
    incoming: dict[str, Any],
    provider: Provider,
    primaries: dict[str, Provider],
) -> dict[str, Any]:
    """Return the changes *incoming* should make to *stored*.

    The result includes an updated ``field_sources`` map when anything
    changed, and is empty when *incoming* adds nothing.
    """
    sources: dict[str, str] = dict(stored.get("field_sources") or {})
    changes: dict[str, Any] = {}

    for name, value in incoming.items():
        if name in _UNMERGED_KEYS or _is_empty(value):
            continue
        current = stored.get(name)
        primary = primaries.get(name)
        if _is_empty(current):
            changes[name] = value
            sources[name] = provider.value
        elif current != value:
            if primary is None or provider == primary or sources.get(name) != primary.value:
                changes[name] = value
                sources[name] = provider.value
        elif primary == provider and sources.get(name) != provider.value:
            # same value, now confirmed by the primary
            sources[name] = provider.value

    if changes or sources != (stored.get("field_sources") or {}):
        changes["field_sources"] = sources
    return changes


def _claimed_by_other_event(
    record: StoredRecord, provider: Provider, event_id: str | None
) -> bool:
    if not event_id:
        return False
    claimed = (record.fields.get("event_ids") or {}).get(provider.value) or []
    return bool(claimed) and event_id not in claimed


class CatalogMerger:
    """Upserts artists, venues, shows and songs into the row store."""

    def __init__(self, storage: IStorageProvider) -> None:
        self._storage = storage

    # ------------------------------------------------------------------
    # Generic upsert
    # ------------------------------------------------------------------

    async def upsert(
        self,
        entity_type: str,
        natural_key: str,
        fields: dict[str, Any],
        provider: Provider,
    ) -> str:
        """Create or merge the record (*entity_type*, *natural_key*); return its id."""
        record = await self._upsert(entity_type, natural_key, fields, provider)
        return record.id

    async def _upsert(
        self,
        entity_type: str,
        natural_key: str,
        fields: dict[str, Any],
        provider: Provider,
    ) -> StoredRecord:
        existing = await self._storage.get(entity_type, natural_key)
        stored = existing.fields if existing else {}
        changes = merge_fields(stored, fields, provider, FIELD_PRIMARIES.get(entity_type, {}))
        if existing is not None and not changes:
            return existing
        return await self._storage.upsert(entity_type, natural_key, changes)

    # ------------------------------------------------------------------
    # Entity helpers
    # ------------------------------------------------------------------

    async def update_artist(
        self,
        artist_id: str,
        fields: dict[str, Any],
        provider: Provider,
    ) -> str:
        """Merge provider profile data (image, genres, popularity) into an artist."""
        record = await self._storage.get_by_id(Table.ARTISTS, artist_id)
        if record is None:
            raise StorageError(message=f"Unknown artist {artist_id}")
        return await self.upsert(Table.ARTISTS, record.natural_key, fields, provider)

    async def mark_artist_synced(self, artist_id: str, **totals: Any) -> None:
        record = await self._storage.get_by_id(Table.ARTISTS, artist_id)
        if record is None:
            raise StorageError(message=f"Unknown artist {artist_id}")
        await self._storage.upsert(
            Table.ARTISTS,
            record.natural_key,
            {"last_synced_at": utc_now().isoformat(), **totals},
        )

    async def upsert_venue(self, venue: Venue, provider: Provider) -> str:
        if venue.provider_venue_id:
            key = f"{provider.value}:{venue.provider_venue_id}"
        else:
            key = f"name:{normalize_key(venue.name)}:{normalize_key(venue.city)}"
        fields = venue.model_dump(mode="json", exclude={"provider_venue_id"})
        fields["normalized_name"] = normalize_key(venue.name)
        if venue.provider_venue_id:
            fields[f"{provider.value}_id"] = venue.provider_venue_id
        return await self.upsert(Table.VENUES, key, fields, provider)

    @staticmethod
    def show_match_key(artist: CanonicalArtist, show_date: str, venue_name: str) -> str:
        artist_key = normalize_key(artist.name) or artist.id
        return f"{artist_key}|{show_date}|{normalize_key(venue_name)}"

    async def upsert_show(
        self,
        artist: CanonicalArtist,
        show: ShowRecord,
        provider: Provider,
        venue_id: str | None = None,
    ) -> str:
        """Create or merge one show.

        The provider's event id is looked up first, then the
        artist/date/venue match key.  A show already holding a different
        event id from the same provider never matches by key, so two
        events on one night stay separate.  Raises
        :class:`MergeConflictError` if the two point at different shows.
        """
        match_key = self.show_match_key(artist, show.date, show.venue_name)
        alias_key = (
            f"{provider.value}:{show.provider_event_id}" if show.provider_event_id else None
        )

        aliased: StoredRecord | None = None
        if alias_key:
            alias = await self._storage.get(Table.SHOW_ALIASES, alias_key)
            if alias is not None:
                aliased = await self._storage.get_by_id(Table.SHOWS, alias.fields["show_id"])
        by_key = await self._storage.get(Table.SHOWS, match_key)
        matched = by_key
        if by_key is not None and _claimed_by_other_event(by_key, provider, show.provider_event_id):
            # Same date and venue but a different event from this provider.
            matched = None

        if aliased is not None and matched is not None and aliased.id != matched.id:
            raise MergeConflictError(
                message=(
                    f"Event {alias_key} is linked to show {aliased.id} but "
                    f"{match_key} belongs to show {matched.id}"
                ),
                provider_name=provider.value,
                natural_key=alias_key,
            )

        current = aliased or matched
        if current is not None:
            target_key = current.natural_key
        elif by_key is not None:
            target_key = f"{match_key}|{alias_key}"
        else:
            target_key = match_key
        event_ids: dict[str, list[str]] = {
            k: list(v) for k, v in ((current.fields.get("event_ids") if current else None) or {}).items()
        }
        if show.provider_event_id:
            ids = event_ids.setdefault(provider.value, [])
            if show.provider_event_id not in ids:
                ids.append(show.provider_event_id)
                ids.sort()

        fields: dict[str, Any] = {
            "headliner_artist_id": artist.id,
            "date": show.date,
            "name": show.name,
            "venue_name": show.venue_name,
            "city": show.city,
            "ticket_url": show.ticket_url,
            "status": show.status,
            "venue_id": venue_id,
            "event_ids": event_ids,
        }
        if current is None:
            fields["match_key"] = match_key
        record = await self._upsert(Table.SHOWS, target_key, fields, provider)

        if alias_key and aliased is None:
            await self._storage.upsert(
                Table.SHOW_ALIASES,
                alias_key,
                {
                    "show_id": record.id,
                    "provider": provider.value,
                    "event_id": show.provider_event_id,
                },
            )
        return record.id

    @staticmethod
    def song_key(artist: CanonicalArtist, song: SongRecord) -> str:
        if song.isrc:
            return f"isrc:{song.isrc.strip().upper()}"
        artist_key = normalize_key(artist.name) or artist.id
        return f"title:{artist_key}:{normalize_key(song.title)}"

    async def upsert_song(
        self,
        artist: CanonicalArtist,
        song: SongRecord,
        provider: Provider,
    ) -> str:
        """Create or merge one song and link it to *artist*."""
        fields = song.model_dump(mode="json")
        if song.isrc:
            fields["isrc"] = song.isrc.strip().upper()
        fields["normalized_title"] = normalize_key(song.title)
        song_id = await self.upsert(Table.SONGS, self.song_key(artist, song), fields, provider)
        await self._link_song(artist.id, song_id)
        return song_id

    async def _link_song(self, artist_id: str, song_id: str) -> None:
        key = f"{artist_id}:{song_id}"
        if await self._storage.get(Table.ARTIST_SONGS, key) is None:
            await self._storage.upsert(
                Table.ARTIST_SONGS, key, {"artist_id": artist_id, "song_id": song_id}
            )

    # ------------------------------------------------------------------
    # Duplicate artists
    # ------------------------------------------------------------------

    async def merge_duplicate_artists(self, survivor_id: str) -> list[str]:
        """Fold other artists with the survivor's normalized name into it.

        A candidate is skipped when it holds an identifier for a provider
        the survivor already has a different id for.  Identifiers, shows
        and song links are repointed; the duplicate keeps its row with
        ``merged_into`` set.  Returns the ids that were merged.
        """
        survivor = await self._storage.get_by_id(Table.ARTISTS, survivor_id)
        if survivor is None:
            raise StorageError(message=f"Unknown artist {survivor_id}")
        normalized = survivor.fields.get("normalized_name")
        if not normalized:
            return []

        survivor_ids = {
            ident.provider: ident.provider_native_id
            for ident in await self._identifiers(survivor_id)
        }
        candidates = await self._storage.query(
            Table.ARTISTS,
            {"normalized_name": normalized, "merged_into": None},
            order_by=["created_at", "id"],
        )

        merged: list[str] = []
        for candidate in candidates:
            if candidate.id == survivor_id:
                continue
            idents = await self._identifiers(candidate.id)
            conflict = any(
                ident.provider in survivor_ids
                and survivor_ids[ident.provider] != ident.provider_native_id
                for ident in idents
            )
            if conflict:
                logger.info(
                    "artist_merge_skipped_conflicting_identifiers",
                    survivor_id=survivor_id,
                    candidate_id=candidate.id,
                )
                continue

            for ident in idents:
                await self._storage.upsert(
                    Table.EXTERNAL_IDENTIFIERS, ident.natural_key, {"artist_id": survivor_id}
                )
                survivor_ids[ident.provider] = ident.provider_native_id

            for show in await self._storage.query(
                Table.SHOWS, {"headliner_artist_id": candidate.id}
            ):
                await self._storage.upsert(
                    Table.SHOWS, show.natural_key, {"headliner_artist_id": survivor_id}
                )

            for link in await self._storage.query(Table.ARTIST_SONGS, {"artist_id": candidate.id}):
                await self._link_song(survivor_id, link.fields["song_id"])
                await self._storage.upsert(
                    Table.ARTIST_SONGS, link.natural_key, {"superseded_by": survivor_id}
                )

            profile = {k: candidate.fields.get(k) for k in _ARTIST_PROFILE_FIELDS}
            fill = {
                k: v for k, v in profile.items()
                if not _is_empty(v) and _is_empty(survivor.fields.get(k))
            }
            if fill:
                survivor = await self._storage.upsert(Table.ARTISTS, survivor.natural_key, fill)

            await self._storage.upsert(
                Table.ARTISTS, candidate.natural_key, {"merged_into": survivor_id}
            )
            merged.append(candidate.id)
            logger.info(
                "artist_duplicate_merged",
                survivor_id=survivor_id,
                duplicate_id=candidate.id,
                identifiers=len(idents),
            )
        return merged

    async def _identifiers(self, artist_id: str) -> list[ExternalIdentifier]:
        records = await self._storage.query(Table.EXTERNAL_IDENTIFIERS, {"artist_id": artist_id})
        return [ExternalIdentifier.model_validate(r.fields) for r in records]
