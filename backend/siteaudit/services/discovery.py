"""
Discovery phase: enumerate a site's pages and persist them all as PENDING
before any page is analyzed.
"""
import logging
from dataclasses import dataclass, field

from siteaudit.config import AuditConfig
from siteaudit.core.errors import DiscoveryFailedError
from siteaudit.models import AuditPage, AuditPhase, AuditRun
from siteaudit.models.base import utcnow
from siteaudit.services.audit_store import AuditStore
from siteaudit.services.fetcher import PageFetcher
from siteaudit.services.rate_limiter import CrawlRateLimiter
from siteaudit.services.robots import RobotsResolver
from siteaudit.services.sitemap import SitemapResolver, UrlCollector
from siteaudit.services.urls import normalize_url, site_root

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryOutcome:
    pages: list[AuditPage]
    sitemap_url: str | None = None
    crawl_delay_ms: int = 0
    used_root_fallback: bool = False
    errors: list[str] = field(default_factory=list)


class DiscoveryCoordinator:
    """robots.txt, then sitemaps, then disallow filtering, then one bulk insert."""

    def __init__(
        self,
        store: AuditStore,
        robots: RobotsResolver,
        sitemaps: SitemapResolver,
        fetcher: PageFetcher,
        limiter: CrawlRateLimiter,
        config: AuditConfig,
    ):
        self.store = store
        self.robots = robots
        self.sitemaps = sitemaps
        self.fetcher = fetcher
        self.limiter = limiter
        self.config = config

    async def discover(self, run: AuditRun, respect_robots_txt: bool = True) -> DiscoveryOutcome:
        """Discover and persist every page of the run.

        Raises DiscoveryFailedError, with no pages created, when nothing
        crawlable could be found.
        """
        root = site_root(run.root_url)
        root_page = normalize_url(run.root_url)
        errors: list[str] = []

        rules = await self.robots.resolve(root)
        if rules.error:
            errors.append(rules.error)
        self.limiter.raise_delay(self._capped_delay(rules.crawl_delay_ms, errors))

        accept = rules.is_allowed if respect_robots_txt else None
        collector = UrlCollector(root, run.max_pages_discovered, accept=accept)
        sitemap = await self.sitemaps.resolve(
            root,
            collector,
            explicit_url=run.sitemap_url,
            declared_urls=rules.sitemap_urls,
        )
        errors.extend(sitemap.errors)
        if collector.rejected:
            logger.info(f"Dropped {collector.rejected} off-site, asset or disallowed sitemap URLs")

        urls = list(sitemap.urls)
        used_root_fallback = False
        if not urls:
            used_root_fallback = True
            errors.append("No sitemap URLs found. Only auditing the root page.")
            if accept is not None and not accept(root_page):
                raise DiscoveryFailedError(
                    f"No crawlable URL for {run.root_url}: root page is disallowed by robots.txt"
                )
            reachable = await self.fetcher.is_reachable(root_page)
            if not reachable and not rules.fetched:
                raise DiscoveryFailedError(
                    f"Root URL {run.root_url} and every sitemap candidate were unreachable"
                )
            urls = [root_page]

        pages = await self.store.create_pages(run.id, urls)
        await self.store.update_run(
            run.id,
            phase=AuditPhase.ANALYZING,
            total_pages=len(pages),
            sitemap_url=sitemap.sitemap_url or run.sitemap_url,
            crawl_delay_ms=self.limiter.delay_ms,
            discovery_errors=errors,
            discovery_completed_at=utcnow(),
        )
        logger.info(
            f"Discovered {len(pages)} pages for {run.root_url} "
            f"(sitemap: {sitemap.sitemap_url or 'none'}, delay: {self.limiter.delay_ms}ms)"
        )
        return DiscoveryOutcome(
            pages=pages,
            sitemap_url=sitemap.sitemap_url,
            crawl_delay_ms=self.limiter.delay_ms,
            used_root_fallback=used_root_fallback,
            errors=errors,
        )

    def _capped_delay(self, delay_ms: int | None, errors: list[str]) -> int | None:
        cap = self.config.max_crawl_delay_ms
        if delay_ms is None or delay_ms <= cap:
            return delay_ms
        message = f"robots.txt Crawl-delay of {delay_ms}ms capped at {cap}ms"
        logger.warning(message)
        errors.append(message)
        return cap
