"""Import pipeline orchestration and job progress tracking."""

from setlist_sync.pipeline.orchestrator import ArtistIngestionPipeline, IngestionCoordinator
from setlist_sync.pipeline.progress_tracker import ImportProgressTracker

__all__ = [
    "ArtistIngestionPipeline",
    "ImportProgressTracker",
    "IngestionCoordinator",
]
