"""
Audit orchestrator: the entry points for running and resuming audits.

``run_audit`` discovers every page of a site, persists them as PENDING and
analyzes the first batch. ``scan_more_pages`` resumes analysis on the next
pending pages without re-running discovery. Calling ``run_audit`` again on a
run that already has pages finishes its first batch instead of rediscovering.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from typing import AsyncIterator
from uuid import UUID

import httpx

from siteaudit.config import AuditConfig
from siteaudit.core.errors import DiscoveryFailedError
from siteaudit.integrations.llm import LLMClient
from siteaudit.models import AuditPhase, AuditRun, PageStatus
from siteaudit.models.base import utcnow
from siteaudit.services.analysis import AnalysisCoordinator, BatchSummary, PageProcessingResult
from siteaudit.services.analyzer import PageAnalyzer
from siteaudit.services.audit_store import AuditStore
from siteaudit.services.discovery import DiscoveryCoordinator
from siteaudit.services.fetcher import PageFetcher
from siteaudit.services.page_records import LinkChecker
from siteaudit.services.rate_limiter import CrawlRateLimiter
from siteaudit.services.robots import RobotsResolver
from siteaudit.services.sitemap import SitemapResolver

logger = logging.getLogger(__name__)


@dataclass
class AuditRequest:
    project_id: str
    root_url: str
    max_pages_discovered: int | None = None
    max_pages_to_analyze: int | None = None
    sitemap_url: str | None = None
    respect_robots_txt: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AuditResult:
    run_id: UUID
    discovered: int
    analyzed: int
    failed: int
    pending: int
    skipped: int = 0
    sitemap_url: str | None = None
    discovery_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["run_id"] = str(self.run_id)
        return data


@dataclass
class ScanMorePagesResult:
    run_id: UUID
    analyzed: int
    failed: int
    pending: int
    skipped: int = 0
    results: list[PageProcessingResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "run_id": str(self.run_id),
            "analyzed": self.analyzed,
            "failed": self.failed,
            "pending": self.pending,
            "skipped": self.skipped,
        }


async def create_audit_run(store: AuditStore, request: AuditRequest, config: AuditConfig) -> AuditRun:
    """Create the run record for ``request`` with its caps clamped to config."""
    max_pages_to_analyze = request.max_pages_to_analyze
    if max_pages_to_analyze is None:
        max_pages_to_analyze = config.default_max_pages_to_scan
    return await store.create_run(
        project_id=request.project_id,
        root_url=request.root_url,
        sitemap_url=request.sitemap_url,
        max_pages_discovered=config.clamp_max_pages(request.max_pages_discovered),
        max_pages_to_analyze=max(0, min(max_pages_to_analyze, config.max_pages_limit)),
        crawl_delay_ms=config.crawl_delay_ms,
    )


@dataclass
class _RunServices:
    discovery: DiscoveryCoordinator
    analysis: AnalysisCoordinator


class AuditOrchestrator:
    """Top-level audit entry points.

    One crawl-delay limiter is kept per run for the lifetime of the
    orchestrator, so overlapping calls on the same run share it.
    """

    def __init__(
        self,
        store: AuditStore,
        llm: LLMClient,
        config: AuditConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter_factory=CrawlRateLimiter,
    ):
        self.store = store
        self.llm = llm
        self.config = config or AuditConfig.from_settings()
        self.transport = transport
        self.limiter_factory = limiter_factory
        self._limiters: dict[UUID, CrawlRateLimiter] = {}

    def _limiter_for(self, run: AuditRun) -> CrawlRateLimiter:
        limiter = self._limiters.get(run.id)
        if limiter is None:
            limiter = self.limiter_factory(self.config.crawl_delay_ms)
            self._limiters[run.id] = limiter
        limiter.raise_delay(run.crawl_delay_ms)
        return limiter

    @asynccontextmanager
    async def _services(self, run: AuditRun) -> AsyncIterator[_RunServices]:
        limiter = self._limiter_for(run)
        async with httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent},
            transport=self.transport,
        ) as client:
            fetcher = PageFetcher(client, limiter, self.config)
            link_checker = (
                LinkChecker(client, limiter, self.config)
                if self.config.link_check_enabled
                else None
            )
            yield _RunServices(
                discovery=DiscoveryCoordinator(
                    self.store,
                    RobotsResolver(client, limiter, self.config),
                    SitemapResolver(client, limiter, self.config),
                    fetcher,
                    limiter,
                    self.config,
                ),
                analysis=AnalysisCoordinator(
                    self.store,
                    fetcher,
                    PageAnalyzer(self.llm, self.config),
                    self.config,
                    link_checker=link_checker,
                ),
            )

    async def run_audit(self, request: AuditRequest, run_id: UUID | None = None) -> AuditResult:
        """Discover all pages of a site, then analyze the first batch.

        ``run_id`` lets a caller create the run record up front (for example
        to return its id before the work is queued). A run that already has
        pages is not rediscovered: only the rest of its first batch is
        analyzed, so a retried task does not duplicate work.
        """
        if run_id is None:
            run = await create_audit_run(self.store, request, self.config)
        else:
            run = await self.store.get_run(run_id)
            if await self.store.count_pages(run.id) > 0:
                return await self._resume_first_batch(run)
            await self.store.update_run(run.id, phase=AuditPhase.DISCOVERING, started_at=utcnow())

        logger.info(f"Starting audit {run.id} for {run.root_url}")
        async with self._services(run) as services:
            try:
                outcome = await services.discovery.discover(
                    run, respect_robots_txt=request.respect_robots_txt
                )
            except DiscoveryFailedError as e:
                logger.error(f"Discovery failed for audit {run.id}: {e.message}")
                await self.store.update_run(
                    run.id,
                    phase=AuditPhase.IDLE,
                    error_message=e.message,
                    completed_at=utcnow(),
                )
                raise

            first = outcome.pages[: min(run.max_pages_to_analyze, len(outcome.pages))]
            batch = await self._analyze(run, services, [page.id for page in first])

        pending = await self.store.count_pages(run.id, PageStatus.PENDING)
        result = AuditResult(
            run_id=run.id,
            discovered=len(outcome.pages),
            analyzed=batch.analyzed,
            failed=batch.failed,
            pending=pending,
            skipped=batch.skipped,
            sitemap_url=outcome.sitemap_url,
            discovery_errors=outcome.errors,
        )
        logger.info(
            f"Audit {run.id}: {result.discovered} discovered, {result.analyzed} analyzed, "
            f"{result.failed} failed, {result.pending} pending"
        )
        return result

    async def _resume_first_batch(self, run: AuditRun) -> AuditResult:
        finished = (
            await self.store.count_pages(run.id, PageStatus.ANALYZED)
            + await self.store.count_pages(run.id, PageStatus.FAILED)
        )
        remaining = max(0, run.max_pages_to_analyze - finished)
        logger.info(f"Audit {run.id} already discovered; resuming with {remaining} pages")
        pages = await self.store.list_pages(run.id, status=PageStatus.PENDING, limit=remaining)
        async with self._services(run) as services:
            batch = await self._analyze(run, services, [page.id for page in pages])

        return AuditResult(
            run_id=run.id,
            discovered=await self.store.count_pages(run.id),
            analyzed=batch.analyzed,
            failed=batch.failed,
            pending=await self.store.count_pages(run.id, PageStatus.PENDING),
            skipped=batch.skipped,
            sitemap_url=run.sitemap_url,
            discovery_errors=list(run.discovery_errors or []),
        )

    async def scan_more_pages(
        self,
        run_id: UUID,
        count: int | None = None,
        include_failed: bool = False,
    ) -> ScanMorePagesResult:
        """Analyze the next ``count`` pending pages in discovery order.

        With ``include_failed`` the next ``count`` failed pages are first
        returned to PENDING so they are retried.
        """
        run = await self.store.get_run(run_id)
        count = self.config.default_max_pages_to_scan if count is None else max(0, count)
        if include_failed and count:
            await self.store.reset_failed_pages(run.id, limit=count)

        pages = await self.store.list_pages(run.id, status=PageStatus.PENDING, limit=count)
        return await self._scan(run, [page.id for page in pages])

    async def scan_pages(self, run_id: UUID, page_ids: list[UUID]) -> ScanMorePagesResult:
        """Analyze specific pending pages of a run."""
        run = await self.store.get_run(run_id)
        return await self._scan(run, list(page_ids))

    async def retry_failed_pages(self, run_id: UUID, page_ids: list[UUID] | None = None) -> int:
        """Return failed pages to PENDING so a later scan picks them up."""
        run = await self.store.get_run(run_id)
        reset = await self.store.reset_failed_pages(run.id, page_ids=page_ids)
        await self.store.refresh_run_summary(run.id)
        return reset

    async def analyze_stored_page(self, page_id: UUID) -> PageProcessingResult:
        """Analyze one stored page, re-running it if it already finished."""
        page = await self.store.get_page(page_id)
        if page.status in (PageStatus.ANALYZED, PageStatus.FAILED):
            await self.store.reset_page(page.id)
        run = await self.store.get_run(page.run_id)
        result = await self._scan(run, [page.id])
        if result.results:
            return result.results[0]
        return PageProcessingResult(page_id=page.id, url=page.url, status=page.status, skipped=True)

    async def _scan(self, run: AuditRun, page_ids: list[UUID]) -> ScanMorePagesResult:
        async with self._services(run) as services:
            batch = await self._analyze(run, services, page_ids)
        pending = await self.store.count_pages(run.id, PageStatus.PENDING)
        return ScanMorePagesResult(
            run_id=run.id,
            analyzed=batch.analyzed,
            failed=batch.failed,
            pending=pending,
            skipped=batch.skipped,
            results=batch.results,
        )

    async def _analyze(
        self,
        run: AuditRun,
        services: _RunServices,
        page_ids: list[UUID],
    ) -> BatchSummary:
        await self.store.update_run(run.id, phase=AuditPhase.ANALYZING)
        try:
            return await services.analysis.analyze_batch(run.id, page_ids)
        finally:
            await self.store.update_run(run.id, phase=AuditPhase.IDLE, completed_at=utcnow())
