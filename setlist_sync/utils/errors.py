"""Custom exception hierarchy for setlist-sync.

All application exceptions inherit from :class:`SetlistSyncError`, which
carries an optional ``provider_name`` so error handlers can tell which
external service (``"ticketmaster"``, ``"spotify"``, ``"musicbrainz"``)
caused the failure.

The hierarchy mirrors how the ingestion pipeline reacts to a failure:

    SetlistSyncError  (base)
    +-- ProviderError                 (any external provider call)
    |   +-- TransientProviderError    (timeout, transport, 5xx: retried)
    |   |   +-- RateLimitError        (HTTP 429: retried, honours Retry-After)
    |   +-- FatalProviderError        (4xx other than 429: never retried)
    |       +-- MalformedPayloadError (unparseable provider response)
    +-- IdentityResolutionError       (registry enrichment; never fatal)
    +-- MergeConflictError            (one record skipped, pipeline continues)
    +-- PipelineError                 (orchestration / stage transitions)
    |   +-- ImportInProgressError     (a non-terminal job already exists)
    |   +-- InvalidStageTransitionError
    +-- StorageError
    +-- ConfigurationError
"""

from __future__ import annotations


class SetlistSyncError(Exception):
    """Base exception for all setlist-sync errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[spotify] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External provider errors
# ---------------------------------------------------------------------------

class ProviderError(SetlistSyncError):
    """Raised when a call to an external provider fails.

    ``retryable`` tells the fetcher whether another attempt may succeed.
    ``status_code`` is the HTTP status when one was received.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str = "External provider call failed",
        provider_name: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.status_code = status_code
        self.attempts = attempts


class TransientProviderError(ProviderError):
    """Timeout, transport failure or 5xx response; safe to retry."""

    retryable = True

    def __init__(
        self,
        message: str = "Provider temporarily unavailable",
        provider_name: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, provider_name, status_code, attempts)


class RateLimitError(TransientProviderError):
    """Raised when a provider answers HTTP 429.

    ``retry_after`` holds the server's ``Retry-After`` hint in seconds
    when the header was present and numeric.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        status_code: int | None = 429,
        attempts: int = 1,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider_name, status_code, attempts)
        self.retry_after = retry_after


class FatalProviderError(ProviderError):
    """4xx other than 429: the resource is missing or the request invalid."""

    def __init__(
        self,
        message: str = "Provider rejected the request",
        provider_name: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, provider_name, status_code, attempts)


class MalformedPayloadError(FatalProviderError):
    """The provider answered 2xx but the body could not be interpreted."""

    def __init__(
        self,
        message: str = "Malformed provider payload",
        provider_name: str | None = None,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message, provider_name, status_code, attempts)


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class IdentityResolutionError(SetlistSyncError):
    """Raised when the identity registry cannot be consulted."""

    def __init__(
        self,
        message: str = "Identity resolution failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MergeConflictError(SetlistSyncError):
    """Two providers disagree on an immutable natural key for one record."""

    def __init__(
        self,
        message: str = "Conflicting natural keys",
        provider_name: str | None = None,
        natural_key: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.natural_key = natural_key


# ---------------------------------------------------------------------------
# Orchestration / infrastructure errors
# ---------------------------------------------------------------------------

class PipelineError(SetlistSyncError):
    """Raised when pipeline orchestration fails."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ImportInProgressError(PipelineError):
    """A non-terminal import job already exists for the artist."""

    def __init__(self, artist_id: str, stage: str | None = None) -> None:
        detail = f" (stage={stage})" if stage else ""
        super().__init__(message=f"Import already running for artist {artist_id}{detail}")
        self.artist_id = artist_id
        self.stage = stage


class InvalidStageTransitionError(PipelineError):
    """A status update would regress the stage or touch a terminal job."""

    def __init__(
        self,
        message: str = "Invalid import stage transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(SetlistSyncError):
    """Raised when the storage collaborator rejects an operation."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(SetlistSyncError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
