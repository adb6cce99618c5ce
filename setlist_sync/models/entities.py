"""Canonical catalog entities for setlist-sync.

Defines the provider enum and the Pydantic v2 models for artists, their
external identifiers, venues, shows and songs.  Every model is frozen;
services produce changed copies via ``model_copy(update={...})`` and hand
plain ``model_dump(mode="json")`` dicts to the storage collaborator.

Key relationships:
    - CanonicalArtist has zero or more ExternalIdentifier rows (join table)
    - Show references its headliner CanonicalArtist and a Venue
    - Song is linked to artists through ArtistSong rows
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class Provider(str, Enum):  # noqa: UP042
    """External data sources."""

    TICKETMASTER = "ticketmaster"  # ticketing / event catalog
    SPOTIFY = "spotify"            # music-streaming catalog
    MUSICBRAINZ = "musicbrainz"    # canonical identity registry


class EntityType(str, Enum):  # noqa: UP042
    """Entities that collect activity signals and trending scores."""

    ARTIST = "artist"
    SHOW = "show"


# Storage table names.  Kept in one place so services and tests agree.
class Table:
    ARTISTS = "artists"
    EXTERNAL_IDENTIFIERS = "external_identifiers"
    VENUES = "venues"
    SHOWS = "shows"
    SHOW_ALIASES = "show_aliases"
    SONGS = "songs"
    ARTIST_SONGS = "artist_songs"
    SETLISTS = "setlists"
    SETLIST_SONGS = "setlist_songs"
    ACTIVITY_SIGNALS = "activity_signals"
    TRENDING_SNAPSHOTS = "trending_snapshots"


def identifier_key(provider: Provider | str, native_id: str) -> str:
    """Natural key of an ExternalIdentifier: one artist per (provider, id)."""
    return f"{Provider(provider).value}:{native_id}"


class ExternalIdentifier(BaseModel):
    """Link between a canonical artist and one provider's native id.

    Identifiers are never deleted.  ``confidence`` only ever goes up: a
    fuzzy registry match may later be confirmed by an exact id.
    """

    model_config = ConfigDict(frozen=True)

    artist_id: str
    provider: Provider
    provider_native_id: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def natural_key(self) -> str:
        return identifier_key(self.provider, self.provider_native_id)


class CanonicalArtist(BaseModel):
    """Deduplicated, provider-independent representation of a musical act.

    ``normalized_name`` is not unique; collisions are resolved by
    provider-id matching first and name similarity second.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    normalized_name: str
    # True while only a provider id is known (the import was accepted but
    # the artist record has not been fetched yet).
    provisional: bool = False
    image_url: str | None = None
    genres: list[str] = Field(default_factory=list)
    popularity: int | None = None
    followers: int | None = None
    last_synced_at: datetime | None = None
    trending_score: float = 0.0
    # Set on a duplicate that was folded into another artist.
    merged_into: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class ArtistRef(BaseModel):
    """Result of identity resolution."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    name: str
    created: bool = False
    registry_id: str | None = None


class Venue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    city: str = ""
    state: str = ""
    country: str = ""
    address: str = ""
    postal_code: str = ""
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    provider_venue_id: str | None = None


class ShowRecord(BaseModel):
    """A show as reported by one provider, before merging."""

    model_config = ConfigDict(frozen=True)

    date: str                              # ISO date, e.g. "2025-07-04"
    venue_name: str
    city: str = ""
    name: str | None = None
    ticket_url: str | None = None
    status: str | None = None
    provider_event_id: str | None = None
    venue: Venue | None = None


class SongRecord(BaseModel):
    """A studio track as reported by the streaming provider."""

    model_config = ConfigDict(frozen=True)

    title: str
    artist_name: str
    album_name: str | None = None
    duration_ms: int | None = None
    isrc: str | None = None
    popularity: int = 0
    spotify_id: str | None = None
    is_remix: bool = False


class SetlistSeedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    shows_processed: int = 0
    setlists_created: int = 0
    songs_added: int = 0
    skipped_shows: int = 0


def artist_from_record(record_id: str, fields: dict[str, Any]) -> CanonicalArtist:
    """Build a :class:`CanonicalArtist` from a stored JSON document."""
    return CanonicalArtist.model_validate({**fields, "id": record_id})
