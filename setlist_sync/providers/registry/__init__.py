"""Canonical identity registries."""

from setlist_sync.providers.registry.musicbrainz_provider import MusicBrainzRegistry

__all__ = ["MusicBrainzRegistry"]
