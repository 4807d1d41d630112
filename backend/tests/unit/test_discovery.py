"""
Unit tests for the discovery phase.
"""
import httpx
import pytest

from siteaudit.core.errors import DiscoveryFailedError
from siteaudit.models import AuditPhase, PageStatus
from siteaudit.services.discovery import DiscoveryCoordinator
from siteaudit.services.fetcher import PageFetcher
from siteaudit.services.robots import RobotsResolver
from siteaudit.services.sitemap import SitemapResolver
from tests.fixtures.sample_pages import ROBOTS_TXT, simple_page, urlset

ROOT = "https://example.com"


@pytest.fixture
def discovery(store, http_client, limiter, audit_config) -> DiscoveryCoordinator:
    return DiscoveryCoordinator(
        store,
        RobotsResolver(http_client, limiter, audit_config),
        SitemapResolver(http_client, limiter, audit_config),
        PageFetcher(http_client, limiter, audit_config),
        limiter,
        audit_config,
    )


class TestDiscovery:
    """Test robots, sitemap and persistence of discovered pages."""

    @pytest.mark.asyncio
    async def test_all_pages_stored_pending(self, discovery, fake_site, store, run):
        fake_site.add_text(f"{ROOT}/robots.txt", ROBOTS_TXT)
        fake_site.add_xml(
            f"{ROOT}/sitemap.xml",
            urlset(f"{ROOT}/", f"{ROOT}/about", f"{ROOT}/admin/panel", f"{ROOT}/blog"),
        )

        outcome = await discovery.discover(run)

        assert [p.url for p in outcome.pages] == [f"{ROOT}/", f"{ROOT}/about", f"{ROOT}/blog"]
        pages = await store.list_pages(run.id)
        assert len(pages) == 3
        assert all(p.status == PageStatus.PENDING for p in pages)

        loaded = await store.get_run(run.id)
        assert loaded.phase == AuditPhase.ANALYZING
        assert loaded.total_pages == 3
        assert loaded.sitemap_url == f"{ROOT}/sitemap.xml"
        assert loaded.discovery_completed_at is not None

    @pytest.mark.asyncio
    async def test_robots_ignored_when_not_respected(self, discovery, fake_site, run):
        fake_site.add_text(f"{ROOT}/robots.txt", ROBOTS_TXT)
        fake_site.add_xml(f"{ROOT}/sitemap.xml", urlset(f"{ROOT}/admin/panel", f"{ROOT}/a"))

        outcome = await discovery.discover(run, respect_robots_txt=False)

        assert [p.url for p in outcome.pages] == [f"{ROOT}/admin/panel", f"{ROOT}/a"]

    @pytest.mark.asyncio
    async def test_discovery_cap(self, discovery, fake_site, store, run):
        await store.update_run(run.id, max_pages_discovered=2)
        run = await store.get_run(run.id)
        fake_site.add_xml(f"{ROOT}/sitemap.xml", urlset(*[f"{ROOT}/p{i}" for i in range(10)]))

        outcome = await discovery.discover(run)

        assert len(outcome.pages) == 2
        assert await store.count_pages(run.id) == 2

    @pytest.mark.asyncio
    async def test_crawl_delay_raises_limiter(self, discovery, fake_site, store, run, limiter):
        fake_site.add_text(f"{ROOT}/robots.txt", "User-agent: *\nCrawl-delay: 2\n")
        fake_site.add_xml(f"{ROOT}/sitemap.xml", urlset(f"{ROOT}/a"))

        outcome = await discovery.discover(run)

        assert outcome.crawl_delay_ms == 2000
        assert limiter.delay_ms == 2000
        assert (await store.get_run(run.id)).crawl_delay_ms == 2000

    @pytest.mark.asyncio
    async def test_huge_crawl_delay_is_capped(self, discovery, fake_site, store, run, limiter, audit_config):
        fake_site.add_text(f"{ROOT}/robots.txt", "User-agent: *\nCrawl-delay: 86400\n")
        fake_site.add_xml(f"{ROOT}/sitemap.xml", urlset(f"{ROOT}/a"))
        cap = audit_config.max_crawl_delay_ms

        outcome = await discovery.discover(run)

        assert limiter.delay_ms == cap
        assert outcome.crawl_delay_ms == cap
        message = f"robots.txt Crawl-delay of 86400000ms capped at {cap}ms"
        assert message in outcome.errors
        assert message in (await store.get_run(run.id)).discovery_errors

    @pytest.mark.asyncio
    async def test_root_fallback_without_sitemap(self, discovery, fake_site, run):
        """No sitemap: the root page alone is audited."""
        fake_site.add(f"{ROOT}/", simple_page("Home"))

        outcome = await discovery.discover(run)

        assert outcome.used_root_fallback is True
        assert [p.url for p in outcome.pages] == [f"{ROOT}/"]
        assert any("Only auditing the root page" in error for error in outcome.errors)

    @pytest.mark.asyncio
    async def test_unreachable_site_fails(self, discovery, fake_site, store, run):
        """Root and every sitemap candidate unreachable: no pages are created."""
        for path in ["/robots.txt", "/", "/sitemap.xml", "/sitemap_index.xml",
                     "/sitemap-index.xml", "/sitemaps.xml", "/sitemap1.xml"]:
            fake_site.fail(f"{ROOT}{path}", httpx.ConnectError("refused"))

        with pytest.raises(DiscoveryFailedError):
            await discovery.discover(run)

        assert await store.count_pages(run.id) == 0

    @pytest.mark.asyncio
    async def test_disallowed_root_fails(self, discovery, fake_site, store, run):
        fake_site.add_text(f"{ROOT}/robots.txt", "User-agent: *\nDisallow: /\n")

        with pytest.raises(DiscoveryFailedError):
            await discovery.discover(run)

        assert await store.count_pages(run.id) == 0

    @pytest.mark.asyncio
    async def test_explicit_sitemap_url(self, discovery, fake_site, store):
        run = await store.create_run(
            project_id="p",
            root_url=ROOT,
            sitemap_url=f"{ROOT}/custom.xml",
            max_pages_discovered=10,
            max_pages_to_analyze=1,
        )
        fake_site.add_xml(f"{ROOT}/custom.xml", urlset(f"{ROOT}/c"))

        outcome = await discovery.discover(run)

        assert outcome.sitemap_url == f"{ROOT}/custom.xml"
        assert [p.url for p in outcome.pages] == [f"{ROOT}/c"]
