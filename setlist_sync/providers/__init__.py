"""Concrete adapters for the interfaces in :mod:`setlist_sync.interfaces`."""
