"""MusicBrainz identity registry implementing IIdentityRegistry.

Uses the musicbrainzngs library to search the MusicBrainz open database
for artists.  musicbrainzngs is synchronous, so calls run in a worker
thread via ``asyncio.to_thread``.  The MusicBrainz limit of one request
per second is enforced by a shared :class:`MinIntervalRateLimiter` rather
than the library's own global throttle.
"""

from __future__ import annotations

import asyncio

import musicbrainzngs
import structlog

from setlist_sync.interfaces.catalog_provider import IIdentityRegistry
from setlist_sync.models.catalog import RegistryMatch
from setlist_sync.utils.errors import FatalProviderError, TransientProviderError
from setlist_sync.utils.rate_limiter import MinIntervalRateLimiter

logger = structlog.get_logger(logger_name=__name__)


class MusicBrainzRegistry(IIdentityRegistry):
    """MusicBrainz artist search.

    No API key is required, but clients must identify themselves via a
    user-agent string.

    Parameters
    ----------
    app_name, app_version, contact:
        User-agent details sent with every request.
    limiter:
        Limiter with the MusicBrainz interval (1 s).
    search_limit:
        Number of candidates requested per search.
    timeout:
        Seconds to wait for one search; musicbrainzngs applies none itself.
    """

    def __init__(
        self,
        app_name: str,
        app_version: str,
        contact: str | None,
        limiter: MinIntervalRateLimiter,
        search_limit: int = 5,
        timeout: float = 10.0,
    ) -> None:
        self._limiter = limiter
        self._search_limit = search_limit
        self._timeout = timeout

        musicbrainzngs.set_useragent(app_name, app_version, contact or None)
        musicbrainzngs.set_rate_limit(False)
        logger.info(
            "musicbrainz_registry_initialized",
            app_name=app_name,
            app_version=app_version,
        )

    async def search_artist(self, name: str) -> list[RegistryMatch]:
        """Search MusicBrainz for artists matching *name*, best first."""
        await self._limiter.acquire()
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    musicbrainzngs.search_artists,
                    artist=name,
                    limit=self._search_limit,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientProviderError(
                message=(
                    f"MusicBrainz artist search for '{name}' timed out after {self._timeout}s"
                ),
                provider_name=self.get_provider_name(),
            ) from exc
        except musicbrainzngs.NetworkError as exc:
            raise TransientProviderError(
                message=f"MusicBrainz artist search failed for '{name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except musicbrainzngs.ResponseError as exc:
            status = getattr(getattr(exc, "cause", None), "code", None)
            error_cls = TransientProviderError if status in (None, 429, 503) else FatalProviderError
            raise error_cls(
                message=f"MusicBrainz artist search failed for '{name}': {exc}",
                provider_name=self.get_provider_name(),
                status_code=status,
            ) from exc
        except musicbrainzngs.WebServiceError as exc:
            raise TransientProviderError(
                message=f"MusicBrainz artist search failed for '{name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        results: list[RegistryMatch] = []
        for artist in response.get("artist-list", []):
            try:
                score = float(artist.get("ext:score", 0))
            except (TypeError, ValueError):
                score = 0.0
            results.append(
                RegistryMatch(
                    id=artist["id"],
                    name=artist.get("name", ""),
                    score=min(max(score, 0.0), 100.0),
                    disambiguation=artist.get("disambiguation"),
                )
            )
        results.sort(key=lambda m: m.score, reverse=True)

        logger.debug("musicbrainz_artist_search", query=name, result_count=len(results))
        return results

    def get_provider_name(self) -> str:
        return "musicbrainz"
