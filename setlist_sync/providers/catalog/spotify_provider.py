"""Spotify Web API client.

Uses the client-credentials flow; the access token is cached until
shortly before it expires.  Supplies artist search (identity fallback and
enrichment), the artist's album listing and per-album track listings.

Spotify paginates with ``offset``/``limit`` and an absolute ``next`` link;
the cursor tracks the offset and the listing is finished when ``next`` is
null.  Album track listings return simplified tracks without ISRC or
popularity, so each page is followed by one batched ``/tracks`` lookup.
"""

from __future__ import annotations

import base64
import time
from collections.abc import Callable
from typing import Any

import structlog

from setlist_sync.interfaces.catalog_provider import ICatalogProvider
from setlist_sync.models.catalog import (
    CatalogPage,
    PageCursor,
    ResourceQuery,
    StreamingAlbum,
    StreamingArtist,
    StreamingTrack,
)
from setlist_sync.models.entities import Provider
from setlist_sync.services.fetcher import RateLimitedFetcher
from setlist_sync.utils.errors import FatalProviderError, MalformedPayloadError
from setlist_sync.utils.text_normalizer import fuzzy_match, normalize_key

logger = structlog.get_logger(logger_name=__name__)

_API_URL = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"
_PAGE_LIMIT = 50
_TRACK_BATCH = 50
_TOKEN_EXPIRY_MARGIN = 60.0

RESOURCE_ARTIST_ALBUMS = "artist_albums"
RESOURCE_ALBUM_TRACKS = "album_tracks"


class SpotifyProvider(ICatalogProvider):
    """Artist, album and track data from the Spotify Web API."""

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        client_id: str,
        client_secret: str,
        api_url: str = _API_URL,
        token_url: str = _TOKEN_URL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_url = api_url.rstrip("/")
        self._token_url = token_url
        self._clock = clock
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def provider(self) -> Provider:
        return Provider.SPOTIFY

    def is_available(self) -> bool:
        return bool(self._client_id and self._client_secret)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def _get_token(self) -> str:
        if self._access_token and self._clock() < self._token_expires_at:
            return self._access_token
        if not self.is_available():
            raise FatalProviderError(
                message="Spotify client credentials are not configured",
                provider_name=self.provider.value,
            )

        basic = base64.b64encode(f"{self._client_id}:{self._client_secret}".encode()).decode()
        payload = await self._fetcher.request_json(
            "POST",
            self._token_url,
            headers={"Authorization": f"Basic {basic}"},
            data={"grant_type": "client_credentials"},
        )
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise MalformedPayloadError(
                message="Token response carried no access_token",
                provider_name=self.provider.value,
            )
        expires_in = float(payload.get("expires_in") or 3600)
        self._access_token = token
        self._token_expires_at = self._clock() + max(expires_in - _TOKEN_EXPIRY_MARGIN, 0.0)
        logger.debug("spotify_token_refreshed", expires_in=expires_in)
        return token

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._get_token()
        payload = await self._fetcher.request_json(
            "GET",
            f"{self._api_url}{path}",
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )
        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                message=f"Expected a JSON object from {path}",
                provider_name=self.provider.value,
            )
        return payload

    # ------------------------------------------------------------------
    # Artists
    # ------------------------------------------------------------------

    async def get_artist(self, spotify_id: str) -> StreamingArtist:
        return self._map_artist(await self._get(f"/artists/{spotify_id}"))

    async def search_artist(self, name: str, threshold: float = 90.0) -> StreamingArtist | None:
        """Return the best-matching Spotify artist for *name*, or ``None``.

        An exact normalized-name match wins; otherwise the closest fuzzy
        match at or above *threshold*.
        """
        data = await self._get("/search", {"q": name, "type": "artist", "limit": 10})
        items = (data.get("artists") or {}).get("items") or []
        candidates = [self._map_artist(item) for item in items if item.get("id")]
        if not candidates:
            return None

        wanted = normalize_key(name)
        for candidate in candidates:
            if normalize_key(candidate.name) == wanted:
                return candidate

        match = fuzzy_match(name, [c.name for c in candidates], threshold=threshold)
        if match is None:
            logger.debug("spotify_artist_search_no_match", query=name)
            return None
        best_name, _score = match
        return next(c for c in candidates if c.name == best_name)

    # ------------------------------------------------------------------
    # ICatalogProvider implementation
    # ------------------------------------------------------------------

    async def fetch_page(
        self,
        resource: ResourceQuery,
        cursor: PageCursor | None = None,
    ) -> CatalogPage:
        cursor = cursor or PageCursor(provider=self.provider, parent_id=resource.parent_id)
        limit = int(resource.params.get("limit", _PAGE_LIMIT))

        if resource.resource == RESOURCE_ARTIST_ALBUMS:
            data = await self._get(
                f"/artists/{resource.parent_id}/albums",
                {
                    "include_groups": resource.params.get("include_groups", "album,single"),
                    "limit": limit,
                    "offset": cursor.offset,
                },
            )
            items: list[Any] = [
                self._map_album(raw) for raw in data.get("items") or [] if raw.get("id")
            ]
        elif resource.resource == RESOURCE_ALBUM_TRACKS:
            data = await self._get(
                f"/albums/{resource.parent_id}/tracks",
                {"limit": limit, "offset": cursor.offset},
            )
            track_ids = [raw["id"] for raw in data.get("items") or [] if raw.get("id")]
            items = await self._get_full_tracks(
                track_ids, album_name=resource.params.get("album_name")
            )
        else:
            raise ValueError(f"Unsupported Spotify resource: {resource.resource}")

        total = data.get("total")
        current = cursor.model_copy(
            update={"total_pages": -(-int(total) // limit) if total is not None else None}
        )
        next_cursor = None
        if data.get("next"):
            next_cursor = current.model_copy(
                update={
                    "page_number": current.page_number + 1,
                    "offset": current.offset + limit,
                    "next_url": data["next"],
                }
            )
        return CatalogPage(items=items, cursor=current, next_cursor=next_cursor)

    async def _get_full_tracks(
        self,
        track_ids: list[str],
        album_name: str | None = None,
    ) -> list[StreamingTrack]:
        tracks: list[StreamingTrack] = []
        for start in range(0, len(track_ids), _TRACK_BATCH):
            batch = track_ids[start : start + _TRACK_BATCH]
            data = await self._get("/tracks", {"ids": ",".join(batch)})
            for raw in data.get("tracks") or []:
                if raw and raw.get("id"):
                    tracks.append(self._map_track(raw, album_name))
        return tracks

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _map_artist(raw: dict[str, Any]) -> StreamingArtist:
        images = raw.get("images") or []
        return StreamingArtist(
            id=raw["id"],
            name=raw.get("name", ""),
            popularity=raw.get("popularity"),
            followers=(raw.get("followers") or {}).get("total"),
            genres=list(raw.get("genres") or []),
            image_url=images[0].get("url") if images else None,
        )

    @staticmethod
    def _map_album(raw: dict[str, Any]) -> StreamingAlbum:
        return StreamingAlbum(
            id=raw["id"],
            name=raw.get("name", ""),
            album_type=raw.get("album_type"),
            release_date=raw.get("release_date"),
        )

    @staticmethod
    def _map_track(raw: dict[str, Any], album_name: str | None) -> StreamingTrack:
        artists = raw.get("artists") or []
        return StreamingTrack(
            id=raw["id"],
            name=raw.get("name", ""),
            album_name=(raw.get("album") or {}).get("name") or album_name,
            artist_name=artists[0].get("name", "") if artists else "",
            duration_ms=raw.get("duration_ms"),
            isrc=(raw.get("external_ids") or {}).get("isrc"),
            popularity=int(raw.get("popularity") or 0),
        )
