"""Ticketmaster Discovery API client.

Supplies the attraction record an import starts from and the paginated
event listing that becomes shows and venues.  All HTTP goes through the
provider's :class:`RateLimitedFetcher`, so throttling and retries are
handled there.

Events pages are 0-indexed and report ``page.totalPages``; the cursor
carries both so the next page is only requested when one exists.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import structlog

from setlist_sync.interfaces.catalog_provider import ICatalogProvider
from setlist_sync.models.catalog import Attraction, CatalogPage, PageCursor, ResourceQuery
from setlist_sync.models.entities import Provider, ShowRecord, Venue
from setlist_sync.services.fetcher import RateLimitedFetcher
from setlist_sync.utils.errors import FatalProviderError, MalformedPayloadError

logger = structlog.get_logger(logger_name=__name__)

_BASE_URL = "https://app.ticketmaster.com/discovery/v2"
_EVENTS_PAGE_SIZE = 200

RESOURCE_EVENTS = "events"


def _spotify_id_from_url(url: str) -> str | None:
    # https://open.spotify.com/artist/<id>?si=...
    path = urlparse(url).path.rstrip("/")
    parts = path.split("/")
    if len(parts) >= 2 and parts[-2] == "artist" and parts[-1]:
        return parts[-1]
    return None


def _pick_image(images: list[dict[str, Any]]) -> str | None:
    if not images:
        return None
    best = max(images, key=lambda img: int(img.get("width") or 0))
    return best.get("url")


class TicketmasterProvider(ICatalogProvider):
    """Attractions and events from the Ticketmaster Discovery API."""

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        api_key: str,
        base_url: str = _BASE_URL,
    ) -> None:
        self._fetcher = fetcher
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @property
    def provider(self) -> Provider:
        return Provider.TICKETMASTER

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self._api_key:
            raise FatalProviderError(
                message="Ticketmaster API key is not configured",
                provider_name=self.provider.value,
            )
        query = {"apikey": self._api_key, **(params or {})}
        payload = await self._fetcher.request_json("GET", f"{self._base_url}{path}", params=query)
        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                message=f"Expected a JSON object from {path}",
                provider_name=self.provider.value,
            )
        return payload

    # ------------------------------------------------------------------
    # Attractions
    # ------------------------------------------------------------------

    async def get_attraction(self, attraction_id: str) -> Attraction:
        """Fetch one attraction with its Spotify / MusicBrainz external links."""
        data = await self._get(f"/attractions/{attraction_id}.json")
        name = (data.get("name") or "").strip()
        if not name:
            raise MalformedPayloadError(
                message=f"Attraction {attraction_id} has no name",
                provider_name=self.provider.value,
            )

        links = data.get("externalLinks") or {}
        spotify_id = None
        for link in links.get("spotify") or []:
            spotify_id = _spotify_id_from_url(link.get("url") or "")
            if spotify_id:
                break
        musicbrainz_id = None
        for link in links.get("musicbrainz") or []:
            if link.get("id"):
                musicbrainz_id = link["id"]
                break

        genres: list[str] = []
        for classification in data.get("classifications") or []:
            for level in ("genre", "subGenre"):
                genre_name = (classification.get(level) or {}).get("name")
                if genre_name and genre_name != "Undefined" and genre_name not in genres:
                    genres.append(genre_name)

        attraction = Attraction(
            id=data.get("id") or attraction_id,
            name=name,
            image_url=_pick_image(data.get("images") or []),
            genres=genres,
            spotify_id=spotify_id,
            musicbrainz_id=musicbrainz_id,
        )
        logger.debug(
            "ticketmaster_attraction_fetched",
            attraction_id=attraction.id,
            has_spotify=bool(spotify_id),
            has_musicbrainz=bool(musicbrainz_id),
        )
        return attraction

    # ------------------------------------------------------------------
    # ICatalogProvider implementation
    # ------------------------------------------------------------------

    async def fetch_page(
        self,
        resource: ResourceQuery,
        cursor: PageCursor | None = None,
    ) -> CatalogPage:
        if resource.resource != RESOURCE_EVENTS:
            raise ValueError(f"Unsupported Ticketmaster resource: {resource.resource}")

        cursor = cursor or PageCursor(provider=self.provider, parent_id=resource.parent_id)
        params = {
            "attractionId": resource.parent_id,
            "size": resource.params.get("size", _EVENTS_PAGE_SIZE),
            "page": cursor.page_number,
            "sort": "date,asc",
        }
        data = await self._get("/events.json", params)

        raw_events = (data.get("_embedded") or {}).get("events") or []
        shows = [show for show in (self._map_event(e) for e in raw_events) if show is not None]

        page_info = data.get("page") or {}
        total_pages = int(page_info.get("totalPages") or 0)
        number = int(page_info.get("number", cursor.page_number))
        current = cursor.model_copy(update={"page_number": number, "total_pages": total_pages})
        next_cursor = None
        if number + 1 < total_pages:
            next_cursor = current.model_copy(update={"page_number": number + 1})

        return CatalogPage(items=shows, cursor=current, next_cursor=next_cursor)

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    def _map_event(self, event: dict[str, Any]) -> ShowRecord | None:
        start = (event.get("dates") or {}).get("start") or {}
        event_date = start.get("localDate") or (start.get("dateTime") or "")[:10]
        venues = (event.get("_embedded") or {}).get("venues") or []
        if not event_date or not venues:
            logger.debug("ticketmaster_event_skipped", event_id=event.get("id"))
            return None

        venue = self._map_venue(venues[0])
        if venue is None:
            return None

        return ShowRecord(
            date=event_date,
            venue_name=venue.name,
            city=venue.city,
            name=event.get("name"),
            ticket_url=event.get("url"),
            status=((event.get("dates") or {}).get("status") or {}).get("code"),
            provider_event_id=event.get("id"),
            venue=venue,
        )

    @staticmethod
    def _map_venue(raw: dict[str, Any]) -> Venue | None:
        name = (raw.get("name") or "").strip()
        if not name:
            return None
        location = raw.get("location") or {}
        try:
            latitude = float(location["latitude"]) if location.get("latitude") else None
            longitude = float(location["longitude"]) if location.get("longitude") else None
        except (TypeError, ValueError):
            latitude = longitude = None
        state = raw.get("state") or {}
        country = raw.get("country") or {}
        return Venue(
            name=name,
            city=(raw.get("city") or {}).get("name") or "",
            state=state.get("stateCode") or state.get("name") or "",
            country=country.get("countryCode") or country.get("name") or "",
            address=(raw.get("address") or {}).get("line1") or "",
            postal_code=raw.get("postalCode") or "",
            timezone=raw.get("timezone"),
            latitude=latitude,
            longitude=longitude,
            provider_venue_id=raw.get("id"),
        )
