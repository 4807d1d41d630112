"""
Single-page fetcher for the analysis phase.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field

import httpx

from siteaudit.config import AuditConfig
from siteaudit.core.errors import PageFetchError
from siteaudit.services.rate_limiter import CrawlRateLimiter

logger = logging.getLogger(__name__)

FETCH_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


@dataclass
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: str
    html: str
    response_time_ms: int
    size_bytes: int
    headers: dict = field(default_factory=dict)

    @property
    def redirected(self) -> bool:
        return self.final_url.rstrip("/") != self.url.rstrip("/")


class PageFetcher:
    """Fetches raw HTML for one URL with the audit user agent and a hard timeout.

    The whole request, including the body download, is bounded by
    ``page_fetch_timeout_ms`` so a slow trickle cannot stall a batch.
    """

    def __init__(self, client: httpx.AsyncClient, limiter: CrawlRateLimiter, config: AuditConfig):
        self.client = client
        self.limiter = limiter
        self.config = config

    async def fetch(self, url: str) -> FetchedPage:
        timeout = self.config.page_fetch_timeout_ms / 1000
        async with self.limiter.slot():
            start_time = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    self.client.get(
                        url,
                        headers=FETCH_HEADERS,
                        timeout=timeout,
                        follow_redirects=True,
                    ),
                    timeout=timeout,
                )
            except (httpx.TimeoutException, asyncio.TimeoutError):
                raise PageFetchError(
                    f"Timed out after {self.config.page_fetch_timeout_ms}ms",
                    kind=PageFetchError.TIMEOUT,
                )
            except httpx.HTTPError as e:
                raise PageFetchError(f"Network error: {e}", kind=PageFetchError.NETWORK)
            response_time_ms = int((time.monotonic() - start_time) * 1000)

        if not response.is_success:
            raise PageFetchError(
                f"HTTP {response.status_code}",
                kind=PageFetchError.HTTP_STATUS,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type.lower():
            raise PageFetchError(
                f"Not an HTML page: {content_type or 'no content type'}",
                kind=PageFetchError.NOT_HTML,
                status_code=response.status_code,
            )

        logger.debug(f"Fetched {url} ({response.status_code}) in {response_time_ms}ms")
        return FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=content_type,
            html=response.text,
            response_time_ms=response_time_ms,
            size_bytes=len(response.content),
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def is_reachable(self, url: str) -> bool:
        """Return True if the host answers for ``url`` with a non-error status."""
        timeout = self.config.page_fetch_timeout_ms / 1000
        try:
            async with self.limiter.slot():
                response = await asyncio.wait_for(
                    self.client.get(url, headers=FETCH_HEADERS, timeout=timeout, follow_redirects=True),
                    timeout=timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(f"Root page check timed out for {url}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Root page check failed for {url}: {e}")
            return False
        return response.status_code < 400
