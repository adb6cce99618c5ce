"""Rate-limited, retrying HTTP fetcher shared by the catalog providers.

One :class:`RateLimitedFetcher` exists per provider.  It owns that
provider's :class:`MinIntervalRateLimiter`, so every request (including
retries) waits its turn, and it classifies responses the same way for all
providers:

* 2xx -- parsed JSON body.
* 429, 5xx, timeouts and transport errors -- retried with exponential
  backoff; 429 honours a numeric ``Retry-After`` header.
* any other 4xx -- :class:`FatalProviderError`, never retried.

Pagination helpers (:func:`fetch_page`, :func:`iterate_pages`) sit on top
of the providers' ``fetch_page`` and enforce the page ceiling.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import httpx
import structlog

from setlist_sync.interfaces.catalog_provider import ICatalogProvider
from setlist_sync.models.catalog import CatalogPage, PageCursor, ResourceQuery
from setlist_sync.models.entities import Provider
from setlist_sync.utils.errors import (
    FatalProviderError,
    MalformedPayloadError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)
from setlist_sync.utils.rate_limiter import MinIntervalRateLimiter

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_MAX_PAGES = 5


def _parse_retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        # HTTP-date form; fall back to computed backoff
        return None
    return value if value >= 0 else None


class RateLimitedFetcher:
    """Throttled JSON requests with bounded retries for one provider.

    Parameters
    ----------
    provider:
        Which provider this fetcher talks to; used in errors and logs.
    http_client:
        Shared ``httpx.AsyncClient``.
    limiter:
        The provider's minimum-interval limiter.
    max_attempts:
        Total attempts per request, first try included.
    backoff_base, backoff_max:
        Retry ``n`` waits ``min(backoff_base * 2 ** (n - 1), backoff_max)``.
    timeout:
        Per-request timeout in seconds.
    sleep:
        Coroutine used to wait between attempts, injectable for tests.
    """

    def __init__(
        self,
        provider: Provider,
        http_client: httpx.AsyncClient,
        limiter: MinIntervalRateLimiter,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._provider = provider
        self._http = http_client
        self._limiter = limiter
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._timeout = timeout
        self._sleep = sleep

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def limiter(self) -> MinIntervalRateLimiter:
        return self._limiter

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        if retry_after is not None:
            return min(retry_after, self._backoff_max)
        return min(self._backoff_base * 2 ** (attempt - 1), self._backoff_max)

    async def request_json(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises
        ------
        TransientProviderError
            After ``max_attempts`` retryable failures (``RateLimitError``
            when the last failure was a 429).
        FatalProviderError
            On a non-retryable 4xx or an undecodable 2xx body.
        """
        provider_name = self._provider.value
        last_error: ProviderError | None = None

        for attempt in range(1, self._max_attempts + 1):
            await self._limiter.acquire()
            retry_after: float | None = None
            try:
                response = await self._http.request(
                    method,
                    url,
                    params=params,
                    headers=headers,
                    data=data,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as exc:
                last_error = TransientProviderError(
                    message=f"Request to {url} timed out: {exc}",
                    provider_name=provider_name,
                    attempts=attempt,
                )
            except httpx.HTTPError as exc:
                last_error = TransientProviderError(
                    message=f"Request to {url} failed: {exc}",
                    provider_name=provider_name,
                    attempts=attempt,
                )
            else:
                status = response.status_code
                if 200 <= status < 300:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise MalformedPayloadError(
                            message=f"Non-JSON body from {url}: {exc}",
                            provider_name=provider_name,
                            status_code=status,
                            attempts=attempt,
                        ) from exc

                if status == 429:
                    retry_after = _parse_retry_after(response)
                    last_error = RateLimitError(
                        message=f"Rate limited by {url}",
                        provider_name=provider_name,
                        attempts=attempt,
                        retry_after=retry_after,
                    )
                elif status >= 500:
                    last_error = TransientProviderError(
                        message=f"Server error {status} from {url}",
                        provider_name=provider_name,
                        status_code=status,
                        attempts=attempt,
                    )
                else:
                    logger.warning(
                        "fetch_rejected",
                        provider=provider_name,
                        url=url,
                        status=status,
                    )
                    raise FatalProviderError(
                        message=f"HTTP {status} from {url}",
                        provider_name=provider_name,
                        status_code=status,
                        attempts=attempt,
                    )

            if attempt == self._max_attempts:
                break

            delay = self.backoff_delay(attempt, retry_after)
            logger.warning(
                "fetch_retry_scheduled",
                provider=provider_name,
                url=url,
                attempt=attempt,
                status=last_error.status_code,
                backoff_s=delay,
                error=last_error.message,
            )
            await self._sleep(delay)

        assert last_error is not None
        last_error.attempts = self._max_attempts
        logger.error(
            "fetch_retries_exhausted",
            provider=provider_name,
            url=url,
            attempts=self._max_attempts,
            error=last_error.message,
        )
        raise last_error


async def fetch_page(
    provider: ICatalogProvider,
    resource: ResourceQuery,
    cursor: PageCursor | None = None,
) -> CatalogPage:
    """Fetch one page of *resource* from *provider*."""
    page = await provider.fetch_page(resource, cursor)
    logger.debug(
        "catalog_page_fetched",
        provider=provider.provider.value,
        resource=resource.resource,
        parent_id=resource.parent_id,
        page=page.cursor.page_number,
        items=len(page.items),
        done=page.done,
    )
    return page


async def iterate_pages(
    provider: ICatalogProvider,
    resource: ResourceQuery,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> AsyncIterator[CatalogPage]:
    """Yield pages of *resource* until the provider runs out or *max_pages* is hit."""
    cursor: PageCursor | None = None
    for fetched in range(1, max_pages + 1):
        page = await fetch_page(provider, resource, cursor)
        yield page
        if page.next_cursor is None:
            return
        cursor = page.next_cursor
        if fetched == max_pages:
            logger.info(
                "page_ceiling_reached",
                provider=provider.provider.value,
                resource=resource.resource,
                parent_id=resource.parent_id,
                max_pages=max_pages,
            )
