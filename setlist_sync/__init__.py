"""setlist-sync: artist, show and song ingestion with trending rankings."""

__version__ = "0.1.0"
