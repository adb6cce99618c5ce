"""Ephemeral stores with per-entry TTL (import status, cached rankings)."""

from setlist_sync.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
