"""Command-line tools for setlist-sync (``python -m setlist_sync.cli``)."""
