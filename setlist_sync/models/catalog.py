"""Pagination and provider-payload models.

A :class:`ResourceQuery` names what to fetch ("events for attraction X",
"tracks of album Y"); a :class:`PageCursor` says where the next page
starts.  Cursors live only for the duration of one fetch loop and are
never persisted.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from setlist_sync.models.entities import Provider


class ResourceQuery(BaseModel):
    """What to fetch from a provider.

    ``resource`` is a provider-specific name such as ``"events"`` or
    ``"album_tracks"``; ``parent_id`` the id the listing hangs off.
    """

    model_config = ConfigDict(frozen=True)

    resource: str
    parent_id: str
    params: dict[str, Any] = Field(default_factory=dict)


class PageCursor(BaseModel):
    """Position within a paginated listing."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    parent_id: str
    page_number: int = 0
    total_pages: int | None = None
    offset: int = 0
    # Providers that hand out absolute "next" links (Spotify) put them here.
    next_url: str | None = None


class CatalogPage(BaseModel):
    """One page of records plus the cursor for the next page, if any."""

    model_config = ConfigDict(frozen=True)

    items: list[Any] = Field(default_factory=list)
    cursor: PageCursor
    next_cursor: PageCursor | None = None

    @property
    def done(self) -> bool:
        return self.next_cursor is None


class Attraction(BaseModel):
    """An artist as listed by the ticketing provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    image_url: str | None = None
    genres: list[str] = Field(default_factory=list)
    spotify_id: str | None = None
    musicbrainz_id: str | None = None


class StreamingArtist(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    popularity: int | None = None
    followers: int | None = None
    genres: list[str] = Field(default_factory=list)
    image_url: str | None = None


class StreamingAlbum(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    album_type: str | None = None
    release_date: str | None = None


class StreamingTrack(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    album_name: str | None = None
    artist_name: str = ""
    duration_ms: int | None = None
    isrc: str | None = None
    popularity: int = 0


class RegistryMatch(BaseModel):
    """A candidate returned by the identity registry.

    ``score`` is the registry's own 0--100 similarity estimate.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    disambiguation: str | None = None
