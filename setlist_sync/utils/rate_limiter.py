"""Provider-scoped minimum-interval rate limiting.

Each external provider gets its own :class:`MinIntervalRateLimiter`.  Calls
through one limiter are serialized: a caller that arrives before the
interval has elapsed is suspended until it has, never rejected.  Limiters
for different providers are independent, so Spotify and Ticketmaster pages
can be fetched at the same time.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

_Sleep = Callable[[float], Awaitable[None]]


class MinIntervalRateLimiter:
    """Enforce a strict minimum delay between successive requests.

    Parameters
    ----------
    min_interval:
        Seconds that must separate two requests to the same provider.
    clock:
        Monotonic clock, injectable for tests.
    sleep:
        Coroutine used to wait, injectable for tests.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: _Sleep = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> float:
        """Wait for the next request slot.

        Returns the number of seconds the caller was suspended.
        """
        async with self._lock:
            waited = 0.0
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self._min_interval:
                    waited = self._min_interval - elapsed
                    await self._sleep(waited)
            self._last_request = self._clock()
            return waited
