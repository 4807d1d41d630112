"""
Sitemap resolution.

Candidates are tried in this order: the explicit sitemap URL of the run,
then every sitemap declared in robots.txt, then (only when none of those
responded) the standard fallback locations until the first one parses.
A sitemap index is expanded one level deep; nested indexes are ignored.
"""
import asyncio
import gzip
import logging
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from siteaudit.config import AuditConfig
from siteaudit.services.rate_limiter import CrawlRateLimiter
from siteaudit.services.urls import is_asset_url, is_same_site, normalize_url

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


@dataclass
class SitemapDocument:
    url: str
    is_index: bool
    locations: list[str] = field(default_factory=list)


class UrlCollector:
    """Ordered, deduplicated, capped set of page URLs for one run.

    URLs are normalized before comparison. Off-site URLs, asset URLs and
    URLs rejected by ``accept`` (robots disallow) are dropped without
    counting against the cap.
    """

    def __init__(
        self,
        root_url: str,
        max_urls: int,
        accept: Callable[[str], bool] | None = None,
    ):
        self.root_url = root_url
        self.max_urls = max_urls
        self.accept = accept
        self.urls: list[str] = []
        self._seen: set[str] = set()
        self.rejected = 0

    @property
    def full(self) -> bool:
        return len(self.urls) >= self.max_urls

    def add(self, url: str) -> bool:
        if self.full:
            return False
        try:
            normalized = normalize_url(url)
        except ValueError:
            self.rejected += 1
            return False
        if normalized in self._seen:
            return False
        self._seen.add(normalized)
        if not is_same_site(normalized, self.root_url) or is_asset_url(normalized):
            self.rejected += 1
            return False
        if self.accept is not None and not self.accept(normalized):
            self.rejected += 1
            return False
        self.urls.append(normalized)
        return True


def _locations(container, entry_tag: str) -> list[str]:
    locations = []
    for entry in container.find_all(entry_tag):
        # Direct <loc> children only; image:loc and video:loc live deeper
        loc = entry.find("loc", recursive=False)
        if loc is not None:
            text = loc.get_text(strip=True)
            if text:
                locations.append(text)
    return locations


def parse_sitemap(url: str, content: bytes) -> SitemapDocument | None:
    """Parse a urlset or sitemapindex document. Returns None if it is neither."""
    if content[:2] == GZIP_MAGIC:
        try:
            content = gzip.decompress(content)
        except OSError:
            return None

    soup = BeautifulSoup(content, "xml")
    index = soup.find("sitemapindex")
    if index is not None:
        return SitemapDocument(url=url, is_index=True, locations=_locations(index, "sitemap"))

    urlset = soup.find("urlset")
    if urlset is not None:
        return SitemapDocument(url=url, is_index=False, locations=_locations(urlset, "url"))

    return None


@dataclass
class SitemapResult:
    urls: list[str] = field(default_factory=list)
    sitemap_url: str | None = None
    responded: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class SitemapResolver:
    """Fetches sitemaps through the run's crawl-delay limiter."""

    def __init__(self, client: httpx.AsyncClient, limiter: CrawlRateLimiter, config: AuditConfig):
        self.client = client
        self.limiter = limiter
        self.config = config

    async def resolve(
        self,
        root_url: str,
        collector: UrlCollector,
        explicit_url: str | None = None,
        declared_urls: list[str] | None = None,
    ) -> SitemapResult:
        result = SitemapResult()

        candidates: list[str] = []
        for candidate in [explicit_url, *(declared_urls or [])]:
            if candidate and candidate not in candidates:
                candidates.append(candidate)

        for candidate in candidates:
            if collector.full:
                break
            if await self._expand(candidate, collector, result, allow_children=True):
                result.responded.append(candidate)

        if not result.responded:
            for location in self.config.sitemap_locations:
                candidate = urljoin(root_url.rstrip("/") + "/", location.lstrip("/"))
                if await self._expand(candidate, collector, result, allow_children=True):
                    result.responded.append(candidate)
                    break

        result.urls = list(collector.urls)
        result.sitemap_url = result.responded[0] if result.responded else None
        logger.info(
            f"Sitemap resolution for {root_url}: {len(result.urls)} URLs from "
            f"{len(result.responded)} sitemap(s), {len(result.errors)} errors"
        )
        return result

    async def _expand(
        self,
        url: str,
        collector: UrlCollector,
        result: SitemapResult,
        allow_children: bool,
    ) -> bool:
        document = await self._fetch(url, result)
        if document is None:
            return False

        if document.is_index:
            if not allow_children:
                result.errors.append(f"Nested sitemap index ignored: {url}")
                return True
            for child_url in document.locations[: self.config.max_child_sitemaps]:
                if collector.full:
                    break
                await self._expand(child_url, collector, result, allow_children=False)
            return True

        for location in document.locations:
            if collector.full:
                break
            collector.add(location)
        return True

    async def _fetch(self, url: str, result: SitemapResult) -> SitemapDocument | None:
        timeout = self.config.sitemap_timeout_ms / 1000
        try:
            async with self.limiter.slot():
                response = await asyncio.wait_for(
                    self.client.get(url, timeout=timeout, follow_redirects=True),
                    timeout=timeout,
                )
        except asyncio.TimeoutError:
            result.errors.append(f"Sitemap {url} timed out after {self.config.sitemap_timeout_ms}ms")
            return None
        except httpx.HTTPError as e:
            logger.debug(f"Sitemap fetch failed for {url}: {e}")
            result.errors.append(f"Error fetching sitemap {url}: {e}")
            return None

        if not response.is_success:
            result.errors.append(f"Failed to fetch sitemap {url}: HTTP {response.status_code}")
            return None

        document = parse_sitemap(url, response.content)
        if document is None:
            result.errors.append(f"Not a sitemap document: {url}")
            return None
        logger.debug(
            f"Parsed {'sitemap index' if document.is_index else 'urlset'} {url} "
            f"with {len(document.locations)} entries"
        )
        return document
