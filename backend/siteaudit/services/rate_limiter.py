"""
Crawl-delay limiter for requests to the audited host.

One limiter exists per run. Every request to the audited site (robots,
sitemaps, pages, internal link checks) is issued inside ``slot()``, which
serializes requests and keeps at least ``delay_ms`` between the start of
one request and the start of the next. Calls to the AI provider never go
through it.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)


class CrawlRateLimiter:
    """Serializes requests to one host with a minimum start-to-start gap."""

    def __init__(
        self,
        delay_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._delay_ms = max(0, delay_ms)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    def raise_delay(self, delay_ms: int | float | None) -> None:
        """Apply a site-requested delay (robots ``Crawl-delay``) if it is larger."""
        if delay_ms is None:
            return
        new_delay = int(delay_ms)
        if new_delay > self._delay_ms:
            logger.info(f"Crawl delay raised from {self._delay_ms}ms to {new_delay}ms")
            self._delay_ms = new_delay

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold the host for the duration of one request."""
        async with self._lock:
            if self._last_start is not None:
                elapsed_ms = (self._clock() - self._last_start) * 1000
                wait_ms = self._delay_ms - elapsed_ms
                if wait_ms > 0:
                    await self._sleep(wait_ms / 1000)
            self._last_start = self._clock()
            yield
