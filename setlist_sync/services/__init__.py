"""Core services: fetching, identity, merging, trending and setlists."""

from setlist_sync.services.activity_recorder import ActivityRecorder
from setlist_sync.services.catalog_merger import CatalogMerger
from setlist_sync.services.fetcher import RateLimitedFetcher, fetch_page, iterate_pages
from setlist_sync.services.identity_resolver import IdentityResolver
from setlist_sync.services.setlist_preseeder import SetlistPreseeder
from setlist_sync.services.trending_engine import TrendingEngine

__all__ = [
    "ActivityRecorder",
    "CatalogMerger",
    "IdentityResolver",
    "RateLimitedFetcher",
    "SetlistPreseeder",
    "TrendingEngine",
    "fetch_page",
    "iterate_pages",
]
