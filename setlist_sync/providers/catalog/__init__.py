"""Paginated external catalogs: Ticketmaster events, Spotify albums and tracks."""

from setlist_sync.providers.catalog.spotify_provider import SpotifyProvider
from setlist_sync.providers.catalog.ticketmaster_provider import TicketmasterProvider

__all__ = ["SpotifyProvider", "TicketmasterProvider"]
