"""Unit tests for IdentityResolver."""

from __future__ import annotations

import asyncio

import pytest

from setlist_sync.models.catalog import RegistryMatch
from setlist_sync.models.entities import Provider, Table
from setlist_sync.providers.storage.sqlite_storage import SQLiteStorageProvider
from setlist_sync.services.identity_resolver import IdentityResolver
from setlist_sync.utils.errors import TransientProviderError
from tests.conftest import FakeRegistry


class TestResolve:
    @pytest.mark.asyncio
    async def test_first_sight_creates_artist(self, storage: SQLiteStorageProvider) -> None:
        resolver = IdentityResolver(storage)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")

        assert ref.created is True
        artist = await resolver.get_artist(ref.artist_id)
        assert artist.name == "Drake"
        assert artist.normalized_name == "drake"
        ident = await resolver.identifier_for(ref.artist_id, Provider.TICKETMASTER)
        assert ident.provider_native_id == "A1"
        assert ident.confidence == 1.0

    @pytest.mark.asyncio
    async def test_same_provider_id_resolves_to_same_artist(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        first = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        again = await resolver.resolve("drake ", Provider.TICKETMASTER, "A1")
        assert again.artist_id == first.artist_id
        assert again.created is False
        assert len(await storage.query(Table.ARTISTS)) == 1

    @pytest.mark.asyncio
    async def test_other_provider_reuses_artist_by_name(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        tm = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        sp = await resolver.resolve("DRAKE", Provider.SPOTIFY, "sp-1")
        assert sp.artist_id == tm.artist_id
        assert {i.provider for i in await resolver.identifiers_for(tm.artist_id)} == {
            Provider.TICKETMASTER,
            Provider.SPOTIFY,
        }

    @pytest.mark.asyncio
    async def test_name_collision_with_different_provider_id_creates_new_artist(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        one = await resolver.resolve("Nirvana", Provider.TICKETMASTER, "A1")
        two = await resolver.resolve("Nirvana", Provider.TICKETMASTER, "A2")
        assert one.artist_id != two.artist_id
        assert two.created is True

    @pytest.mark.asyncio
    async def test_concurrent_resolution_creates_one_artist(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        refs = await asyncio.gather(
            *(resolver.resolve("Drake", Provider.TICKETMASTER, "A1") for _ in range(4))
        )
        assert len({r.artist_id for r in refs}) == 1
        assert len(await storage.query(Table.ARTISTS)) == 1
        assert resolver._locks == {}


class TestRegistryEnrichment:
    @pytest.mark.asyncio
    async def test_identical_name_links_registry_id(self, storage: SQLiteStorageProvider) -> None:
        registry = FakeRegistry({"Drake": [RegistryMatch(id="mb-1", name="Drake", score=100)]})
        resolver = IdentityResolver(storage, registry)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")

        assert ref.registry_id == "mb-1"
        linked = await resolver.find_by_identifier(Provider.MUSICBRAINZ, "mb-1")
        assert linked.id == ref.artist_id

    @pytest.mark.asyncio
    async def test_registry_link_joins_differently_named_listing(
        self, storage: SQLiteStorageProvider
    ) -> None:
        registry = FakeRegistry(
            {
                "Beyoncé": [RegistryMatch(id="mb-b", name="Beyoncé", score=100)],
                "Beyonce Knowles": [RegistryMatch(id="mb-b", name="Beyoncé", score=92)],
            }
        )
        resolver = IdentityResolver(storage, registry)
        tm = await resolver.resolve("Beyoncé", Provider.TICKETMASTER, "A7")
        sp = await resolver.resolve("Beyonce Knowles", Provider.SPOTIFY, "sp-7")
        assert sp.artist_id == tm.artist_id
        assert sp.registry_id == "mb-b"

    @pytest.mark.asyncio
    async def test_registry_id_owned_elsewhere_is_not_reported(
        self, storage: SQLiteStorageProvider
    ) -> None:
        registry = FakeRegistry({"Drake": [RegistryMatch(id="mb-1", name="Drake", score=100)]})
        resolver = IdentityResolver(storage, registry)
        first = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        second = await resolver.resolve("Drake", Provider.TICKETMASTER, "A2")

        assert second.artist_id != first.artist_id
        assert second.registry_id is None
        assert await resolver.identifier_for(second.artist_id, Provider.MUSICBRAINZ) is None
        owner = await resolver.find_by_identifier(Provider.MUSICBRAINZ, "mb-1")
        assert owner.id == first.artist_id

    @pytest.mark.asyncio
    async def test_low_score_match_is_rejected(self, storage: SQLiteStorageProvider) -> None:
        registry = FakeRegistry({"Drake": [RegistryMatch(id="mb-x", name="Drake Bell", score=80)]})
        resolver = IdentityResolver(storage, registry)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        assert ref.registry_id is None
        assert await resolver.identifier_for(ref.artist_id, Provider.MUSICBRAINZ) is None

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, storage: SQLiteStorageProvider) -> None:
        registry = FakeRegistry({"Drake": [RegistryMatch(id="mb-x", name="Drake Bell", score=80)]})
        resolver = IdentityResolver(storage, registry, match_threshold=75.0)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        assert ref.registry_id == "mb-x"
        ident = await resolver.identifier_for(ref.artist_id, Provider.MUSICBRAINZ)
        assert ident.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_registry_failure_is_not_fatal(self, storage: SQLiteStorageProvider) -> None:
        registry = FakeRegistry(error=TransientProviderError(provider_name="musicbrainz"))
        resolver = IdentityResolver(storage, registry)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        assert ref.created is True
        assert ref.registry_id is None
        assert registry.queries == ["Drake"]


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_bootstrap_creates_provisional_artist(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        ref = await resolver.bootstrap(Provider.TICKETMASTER, "A1")
        again = await resolver.bootstrap(Provider.TICKETMASTER, "A1")

        assert ref.created is True
        assert again.artist_id == ref.artist_id
        assert again.created is False
        artist = await resolver.get_artist(ref.artist_id)
        assert artist.provisional is True
        assert artist.normalized_name == ""

    @pytest.mark.asyncio
    async def test_resolve_promotes_provisional_artist(
        self, storage: SQLiteStorageProvider
    ) -> None:
        registry = FakeRegistry({"Drake": [RegistryMatch(id="mb-1", name="Drake", score=100)]})
        resolver = IdentityResolver(storage, registry)
        boot = await resolver.bootstrap(Provider.TICKETMASTER, "A1")
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")

        assert ref.artist_id == boot.artist_id
        assert ref.registry_id == "mb-1"
        artist = await resolver.get_artist(ref.artist_id)
        assert artist.provisional is False
        assert artist.name == "Drake"
        assert artist.normalized_name == "drake"


class TestIdentifierLinks:
    @pytest.mark.asyncio
    async def test_confidence_only_increases(self, storage: SQLiteStorageProvider) -> None:
        resolver = IdentityResolver(storage)
        ref = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        await resolver.link_identifier(ref.artist_id, Provider.MUSICBRAINZ, "mb-1", 0.5)
        raised = await resolver.link_identifier(ref.artist_id, Provider.MUSICBRAINZ, "mb-1", 0.9)
        kept = await resolver.link_identifier(ref.artist_id, Provider.MUSICBRAINZ, "mb-1", 0.3)
        assert raised.confidence == 0.9
        assert kept.confidence == 0.9

    @pytest.mark.asyncio
    async def test_identifier_owned_by_another_artist_is_refused(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        one = await resolver.resolve("Nirvana", Provider.TICKETMASTER, "A1")
        two = await resolver.resolve("Nirvana", Provider.TICKETMASTER, "A2")
        assert await resolver.link_identifier(two.artist_id, Provider.TICKETMASTER, "A1") is None
        assert (await resolver.find_by_identifier(Provider.TICKETMASTER, "A1")).id == one.artist_id

    @pytest.mark.asyncio
    async def test_second_id_for_same_provider_is_refused(
        self, storage: SQLiteStorageProvider
    ) -> None:
        resolver = IdentityResolver(storage)
        ref = await resolver.resolve("Drake", Provider.SPOTIFY, "sp-1")
        assert await resolver.link_identifier(ref.artist_id, Provider.SPOTIFY, "sp-2") is None

    @pytest.mark.asyncio
    async def test_get_artist_follows_merges(self, storage: SQLiteStorageProvider) -> None:
        resolver = IdentityResolver(storage)
        keep = await resolver.resolve("Drake", Provider.TICKETMASTER, "A1")
        dup = await resolver.resolve("Drake", Provider.TICKETMASTER, "A2")
        dup_record = await storage.get_by_id(Table.ARTISTS, dup.artist_id)
        await storage.upsert(Table.ARTISTS, dup_record.natural_key, {"merged_into": keep.artist_id})

        assert (await resolver.get_artist(dup.artist_id)).id == keep.artist_id
        assert (await resolver.get_artist(dup.artist_id, follow_merges=False)).id == dup.artist_id
        assert (await resolver.find_by_identifier(Provider.TICKETMASTER, "A2")).id == keep.artist_id
