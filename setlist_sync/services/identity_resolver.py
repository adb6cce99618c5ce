"""Cross-provider artist identity resolution.

# ─── RESOLUTION ORDER ──────────────────────────────────────────────────
#
#   1. Exact (provider, native id) lookup in the identifier join table.
#      Merged artists are followed to their survivor.
#   2. Registry search (MusicBrainz).  The top match is accepted when the
#      normalized names are identical or its score reaches the threshold.
#   3. Reuse the artist linked to the accepted registry id, else the oldest
#      non-merged artist with the same normalized name that has no other
#      identifier for this provider, else create a new artist.
#
# Registry failures never fail resolution; the artist is just left
# without a registry link.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog

from setlist_sync.interfaces.catalog_provider import IIdentityRegistry
from setlist_sync.interfaces.storage_provider import IStorageProvider
from setlist_sync.models.catalog import RegistryMatch
from setlist_sync.models.entities import (
    ArtistRef,
    CanonicalArtist,
    ExternalIdentifier,
    Provider,
    Table,
    artist_from_record,
    identifier_key,
    utc_now,
)
from setlist_sync.utils.errors import ProviderError
from setlist_sync.utils.text_normalizer import normalize_display_name, normalize_key

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MATCH_THRESHOLD = 90.0
_MAX_MERGE_HOPS = 10


class IdentityResolver:
    """Maps provider-specific artist ids onto canonical artists.

    Parameters
    ----------
    storage:
        Row store holding ``artists`` and ``external_identifiers``.
    registry:
        Identity registry used for enrichment; ``None`` disables it.
    match_threshold:
        Minimum registry score (0--100) for accepting a non-identical name.
    """

    def __init__(
        self,
        storage: IStorageProvider,
        registry: IIdentityRegistry | None = None,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._match_threshold = match_threshold
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def match_threshold(self) -> float:
        return self._match_threshold

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_artist(self, artist_id: str, follow_merges: bool = True) -> CanonicalArtist | None:
        """Load an artist by id, optionally following ``merged_into`` links."""
        record = await self._storage.get_by_id(Table.ARTISTS, artist_id)
        hops = 0
        while record is not None and follow_merges and record.fields.get("merged_into"):
            if hops >= _MAX_MERGE_HOPS:
                logger.warning("artist_merge_chain_too_long", artist_id=artist_id)
                break
            record = await self._storage.get_by_id(Table.ARTISTS, record.fields["merged_into"])
            hops += 1
        if record is None:
            return None
        return artist_from_record(record.id, record.fields)

    async def find_by_identifier(
        self,
        provider: Provider | str,
        native_id: str,
    ) -> CanonicalArtist | None:
        record = await self._storage.get(
            Table.EXTERNAL_IDENTIFIERS, identifier_key(provider, native_id)
        )
        if record is None:
            return None
        return await self.get_artist(record.fields["artist_id"])

    async def identifiers_for(self, artist_id: str) -> list[ExternalIdentifier]:
        records = await self._storage.query(
            Table.EXTERNAL_IDENTIFIERS, {"artist_id": artist_id}, order_by=["provider"]
        )
        return [ExternalIdentifier.model_validate(r.fields) for r in records]

    async def identifier_for(self, artist_id: str, provider: Provider) -> ExternalIdentifier | None:
        for ident in await self.identifiers_for(artist_id):
            if ident.provider == provider:
                return ident
        return None

    # ------------------------------------------------------------------
    # Identifier links
    # ------------------------------------------------------------------

    async def link_identifier(
        self,
        artist_id: str,
        provider: Provider,
        native_id: str,
        confidence: float = 1.0,
    ) -> ExternalIdentifier | None:
        """Attach (*provider*, *native_id*) to *artist_id*.

        Returns the stored identifier, or ``None`` when the link was refused
        because the id belongs to another artist or the artist already has
        a different identifier for *provider*.  An existing link only ever
        has its confidence raised.
        """
        key = identifier_key(provider, native_id)
        existing = await self._storage.get(Table.EXTERNAL_IDENTIFIERS, key)
        if existing is not None:
            current = ExternalIdentifier.model_validate(existing.fields)
            if current.artist_id != artist_id:
                logger.warning(
                    "identifier_owned_by_other_artist",
                    identifier=key,
                    artist_id=artist_id,
                    owner_id=current.artist_id,
                )
                return None
            if confidence <= current.confidence:
                return current
            record = await self._storage.upsert(
                Table.EXTERNAL_IDENTIFIERS, key, {"confidence": confidence}
            )
            return ExternalIdentifier.model_validate(record.fields)

        other = await self.identifier_for(artist_id, provider)
        if other is not None:
            logger.warning(
                "artist_already_has_provider_identifier",
                artist_id=artist_id,
                provider=provider.value,
                existing=other.provider_native_id,
                rejected=native_id,
            )
            return None

        identifier = ExternalIdentifier(
            artist_id=artist_id,
            provider=provider,
            provider_native_id=native_id,
            confidence=confidence,
        )
        await self._storage.upsert(
            Table.EXTERNAL_IDENTIFIERS, key, identifier.model_dump(mode="json")
        )
        logger.info(
            "identifier_linked",
            artist_id=artist_id,
            provider=provider.value,
            native_id=native_id,
            confidence=confidence,
        )
        return identifier

    # ------------------------------------------------------------------
    # Bootstrap / resolve
    # ------------------------------------------------------------------

    async def bootstrap(self, provider: Provider, native_id: str) -> ArtistRef:
        """Return the artist linked to (*provider*, *native_id*), creating a
        provisional one if the id is unknown.

        Called when an import is accepted, before the artist's name is known,
        so the job has an artist id to be polled under.
        """
        key = identifier_key(provider, native_id)
        async with self._identifier_lock(key):
            existing = await self.find_by_identifier(provider, native_id)
            if existing is not None:
                return ArtistRef(artist_id=existing.id, name=existing.name)

            artist = await self._create_artist(
                origin=key, name=native_id, provisional=True
            )
            await self.link_identifier(artist.id, provider, native_id, 1.0)
            logger.info(
                "provisional_artist_created",
                artist_id=artist.id,
                provider=provider.value,
                native_id=native_id,
            )
            return ArtistRef(artist_id=artist.id, name=artist.name, created=True)

    async def resolve(
        self,
        name_hint: str,
        provider: Provider,
        native_id: str,
    ) -> ArtistRef:
        """Resolve (*provider*, *native_id*) named *name_hint* to a canonical artist."""
        name = normalize_display_name(name_hint)
        key = identifier_key(provider, native_id)

        async with self._identifier_lock(key):
            existing = await self.find_by_identifier(provider, native_id)
            if existing is not None:
                if not existing.provisional:
                    logger.debug("identity_exact_match", artist_id=existing.id, identifier=key)
                    return ArtistRef(artist_id=existing.id, name=existing.name)
                return await self._promote(existing, name)

            match = await self._lookup_registry(name)
            artist = await self._find_reusable(name, provider, match)
            created = artist is None
            if artist is None:
                artist = await self._create_artist(origin=key, name=name, provisional=False)

            await self.link_identifier(artist.id, provider, native_id, 1.0)
            registry_id = None
            if match is not None:
                linked = await self.link_identifier(
                    artist.id, Provider.MUSICBRAINZ, match.id, match.score / 100.0
                )
                registry_id = match.id if linked is not None else None

        logger.info(
            "identity_resolved",
            artist_id=artist.id,
            name=artist.name,
            created=created,
            registry_id=registry_id,
        )
        return ArtistRef(
            artist_id=artist.id,
            name=artist.name,
            created=created,
            registry_id=registry_id,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _identifier_lock(self, key: str) -> AsyncIterator[None]:
        """Serialize work on one identifier; the lock is dropped once unused."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _promote(self, artist: CanonicalArtist, name: str) -> ArtistRef:
        """Give a provisional artist its real name and registry link."""
        fields: dict[str, Any] = {
            "name": name,
            "normalized_name": normalize_key(name),
            "provisional": False,
        }
        await self._storage.upsert(Table.ARTISTS, await self._natural_key_of(artist.id), fields)

        match = await self._lookup_registry(name)
        registry_id = None
        if match is not None:
            linked = await self.link_identifier(
                artist.id, Provider.MUSICBRAINZ, match.id, match.score / 100.0
            )
            registry_id = match.id if linked is not None else None

        logger.info("provisional_artist_promoted", artist_id=artist.id, name=name)
        return ArtistRef(artist_id=artist.id, name=name, registry_id=registry_id)

    async def _lookup_registry(self, name: str) -> RegistryMatch | None:
        if self._registry is None or not name:
            return None
        try:
            matches = await self._registry.search_artist(name)
        except ProviderError as exc:
            logger.warning(
                "identity_registry_unavailable",
                name=name,
                provider=exc.provider_name,
                error=exc.message,
            )
            return None

        if not matches:
            return None
        top = matches[0]
        if normalize_key(top.name) == normalize_key(name) or top.score >= self._match_threshold:
            return top
        logger.debug(
            "identity_registry_match_rejected",
            name=name,
            candidate=top.name,
            score=top.score,
            threshold=self._match_threshold,
        )
        return None

    async def _find_reusable(
        self,
        name: str,
        provider: Provider,
        match: RegistryMatch | None,
    ) -> CanonicalArtist | None:
        if match is not None:
            linked = await self.find_by_identifier(Provider.MUSICBRAINZ, match.id)
            if linked is not None and await self._accepts_identifier(linked.id, provider):
                return linked

        normalized = normalize_key(name)
        if not normalized:
            return None
        candidates = await self._storage.query(
            Table.ARTISTS,
            {"normalized_name": normalized, "merged_into": None},
            order_by=["created_at", "id"],
        )
        for record in candidates:
            if await self._accepts_identifier(record.id, provider):
                return artist_from_record(record.id, record.fields)
        return None

    async def _accepts_identifier(self, artist_id: str, provider: Provider) -> bool:
        return await self.identifier_for(artist_id, provider) is None

    async def _create_artist(self, origin: str, name: str, provisional: bool) -> CanonicalArtist:
        now = utc_now()
        fields = {
            "name": name,
            "normalized_name": "" if provisional else normalize_key(name),
            "provisional": provisional,
            "genres": [],
            "trending_score": 0.0,
            "merged_into": None,
            "created_at": now.isoformat(),
        }
        record = await self._storage.upsert(Table.ARTISTS, f"origin:{origin}", fields)
        return artist_from_record(record.id, record.fields)

    async def _natural_key_of(self, artist_id: str) -> str:
        record = await self._storage.get_by_id(Table.ARTISTS, artist_id)
        if record is None:
            raise LookupError(f"Unknown artist {artist_id}")
        return record.natural_key
