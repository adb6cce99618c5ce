"""Abstract base classes for external catalog providers.

Two kinds of provider feed the ingestion pipeline:

* :class:`ICatalogProvider` -- paginated catalogs (Ticketmaster events,
  Spotify albums and tracks).  Each exposes ``fetch_page`` and is
  rate-limited independently by its own fetcher.
* :class:`IIdentityRegistry` -- the canonical identity registry
  (MusicBrainz) used to enrich and deduplicate artists.

Failures surface as :class:`~setlist_sync.utils.errors.ProviderError`
subclasses that tell retryable transport/429/5xx apart from fatal 4xx.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from setlist_sync.models.catalog import CatalogPage, PageCursor, RegistryMatch, ResourceQuery
from setlist_sync.models.entities import Provider


class ICatalogProvider(ABC):
    """Contract for a paginated external catalog."""

    @property
    @abstractmethod
    def provider(self) -> Provider:
        """The provider this client talks to."""

    @abstractmethod
    async def fetch_page(
        self,
        resource: ResourceQuery,
        cursor: PageCursor | None = None,
    ) -> CatalogPage:
        """Fetch one page of *resource*.

        Parameters
        ----------
        resource:
            What to list, e.g. ``ResourceQuery(resource="events",
            parent_id=<attraction id>)``.
        cursor:
            Where to start; ``None`` for the first page.

        Returns
        -------
        CatalogPage
            Parsed items plus ``next_cursor`` (``None`` when the provider
            reports no further pages).

        Raises
        ------
        TransientProviderError
            Retries were exhausted on timeouts, 429 or 5xx.
        FatalProviderError
            The provider rejected the request (4xx other than 429) or
            returned a payload that could not be parsed.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""


class IIdentityRegistry(ABC):
    """Contract for the canonical music-identity registry."""

    @abstractmethod
    async def search_artist(self, name: str) -> list[RegistryMatch]:
        """Search the registry for *name*; best match first.

        Raises
        ------
        ProviderError
            If the registry cannot be reached.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the registry identifier, e.g. ``"musicbrainz"``."""
