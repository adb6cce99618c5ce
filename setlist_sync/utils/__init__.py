"""Utility modules for setlist-sync.

- **errors** -- exception hierarchy rooted at SetlistSyncError; provider
  errors say whether a retry may help.
- **logging** -- structlog setup (console in development, JSON in
  production) and per-job context binding.
- **rate_limiter** -- minimum-interval limiter, one per provider.
- **text_normalizer** -- natural-key normalization, fuzzy similarity and
  track-title hygiene.
"""

from setlist_sync.utils.errors import (
    ConfigurationError,
    FatalProviderError,
    IdentityResolutionError,
    ImportInProgressError,
    InvalidStageTransitionError,
    MalformedPayloadError,
    MergeConflictError,
    PipelineError,
    ProviderError,
    RateLimitError,
    SetlistSyncError,
    StorageError,
    TransientProviderError,
)
from setlist_sync.utils.logging import bind_job_context, configure_logging, get_logger
from setlist_sync.utils.rate_limiter import MinIntervalRateLimiter
from setlist_sync.utils.text_normalizer import fuzzy_match, normalize_key, similarity

__all__ = [
    "ConfigurationError",
    "FatalProviderError",
    "IdentityResolutionError",
    "ImportInProgressError",
    "InvalidStageTransitionError",
    "MalformedPayloadError",
    "MergeConflictError",
    "MinIntervalRateLimiter",
    "PipelineError",
    "ProviderError",
    "RateLimitError",
    "SetlistSyncError",
    "StorageError",
    "TransientProviderError",
    "bind_job_context",
    "configure_logging",
    "fuzzy_match",
    "get_logger",
    "normalize_key",
    "similarity",
]
