"""
Analysis phase: fetch, extract, record and AI-score pending pages.

Pages are selected in discovery order and processed in chunks of
``batch_size``. Inside a chunk the page pipelines run concurrently; every
request to the audited host still waits for the run's crawl-delay limiter,
so one page's AI call overlaps the next page's fetch. Page-scoped failures
are recorded on the page and never raised. StoreError aborts the batch
after returning the chunk's unfinished pages to PENDING.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from siteaudit.config import AuditConfig
from siteaudit.core.errors import AnalyzerError, ExtractionError, PageFetchError, StoreError
from siteaudit.models import AnalysisStatus, AuditPage, FetchStatus, PageStatus
from siteaudit.models.base import utcnow
from siteaudit.services.analyzer import PageAnalyzer
from siteaudit.services.audit_store import AuditStore
from siteaudit.services.extractor import extract_page_data
from siteaudit.services.fetcher import PageFetcher
from siteaudit.services.page_records import LinkChecker, build_page_records

logger = logging.getLogger(__name__)


@dataclass
class PageProcessingResult:
    page_id: UUID
    url: str
    status: PageStatus
    skipped: bool = False
    error: str | None = None
    score: int | None = None
    issue_counts: dict = field(default_factory=dict)
    tokens_used: int = 0
    cost: float = 0.0


@dataclass
class BatchSummary:
    analyzed: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[PageProcessingResult] = field(default_factory=list)

    def add(self, result: PageProcessingResult) -> None:
        self.results.append(result)
        if result.skipped:
            self.skipped += 1
        elif result.status == PageStatus.ANALYZED:
            self.analyzed += 1
        else:
            self.failed += 1


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class AnalysisCoordinator:
    def __init__(
        self,
        store: AuditStore,
        fetcher: PageFetcher,
        analyzer: PageAnalyzer,
        config: AuditConfig,
        link_checker: LinkChecker | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.analyzer = analyzer
        self.config = config
        self.link_checker = link_checker

    async def analyze_batch(self, run_id: UUID, page_ids: list[UUID]) -> BatchSummary:
        """Analyze the given pages of a run.

        Only pages that are still PENDING when their chunk starts are
        processed; the rest are reported as skipped.
        """
        summary = BatchSummary()
        if not page_ids:
            return summary

        pages = await self.store.list_pages(run_id, page_ids=page_ids)
        for chunk in chunked(pages, self.config.batch_size):
            claimed: list[AuditPage] = []
            for page in chunk:
                if await self.store.claim_page(page.id):
                    claimed.append(page)
                else:
                    logger.debug(f"Skipping {page.url}: already claimed or not pending")
                    summary.add(PageProcessingResult(
                        page_id=page.id, url=page.url, status=page.status, skipped=True,
                    ))

            outcomes = await asyncio.gather(
                *(self._process_page(page) for page in claimed),
                return_exceptions=True,
            )
            try:
                for page, outcome in zip(claimed, outcomes):
                    if isinstance(outcome, Exception) and not isinstance(outcome, StoreError):
                        logger.error(f"Unexpected failure processing {page.url}: {outcome!r}")
                        outcome = await self._fail(page, f"unexpected: {outcome}")
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    summary.add(outcome)
            except BaseException:
                # StoreError or cancellation: unfinished claims go back to PENDING
                await self._release(claimed)
                raise

            await self.store.refresh_run_summary(run_id)

        logger.info(
            f"Batch for run {run_id}: {summary.analyzed} analyzed, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    async def _process_page(self, page: AuditPage) -> PageProcessingResult:
        try:
            fetched = await self.fetcher.fetch(page.url)
        except PageFetchError as e:
            return await self._fail(
                page,
                f"{e.kind}: {e.message}",
                fetch_status=FetchStatus.FETCH_FAILED,
                status_code=e.status_code,
            )

        try:
            extracted = extract_page_data(fetched.html, fetched.final_url)
        except ExtractionError as e:
            return await self._fail(
                page,
                f"extraction: {e.message}",
                fetch_status=FetchStatus.FETCHED,
                status_code=fetched.status_code,
            )

        records = await build_page_records(extracted, fetched, self.link_checker)
        await self.store.replace_page_records(page.id, records)
        await self.store.update_page(
            page.id,
            fetch_status=FetchStatus.FETCHED,
            status_code=fetched.status_code,
            title=(extracted.metadata.title or "")[:1024] or None,
        )

        try:
            analysis = await self.analyzer.analyze(
                extracted,
                broken_links=records.broken_links,
                response_time_ms=fetched.response_time_ms,
            )
        except AnalyzerError as e:
            return await self._fail(
                page,
                f"analyzer: {e.message}",
                analysis_status=AnalysisStatus.ANALYSIS_FAILED,
            )
        except StoreError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected analyzer failure for {page.url}")
            return await self._fail(
                page,
                f"analyzer: {e}",
                analysis_status=AnalysisStatus.ANALYSIS_FAILED,
            )

        await self.store.save_page_analysis(
            page.id,
            analysis,
            metadata_snapshot=extracted.metadata.to_dict(),
            markdown_content=extracted.markdown_content,
        )
        await self.store.update_page(
            page.id,
            status=PageStatus.ANALYZED,
            analysis_status=AnalysisStatus.ANALYZED,
            analyzed_at=utcnow(),
        )
        logger.info(f"Analyzed {page.url}: score {analysis.score}")
        return PageProcessingResult(
            page_id=page.id,
            url=page.url,
            status=PageStatus.ANALYZED,
            score=analysis.score,
            issue_counts=analysis.issue_counts(),
            tokens_used=analysis.tokens_used,
            cost=analysis.cost,
        )

    async def _fail(self, page: AuditPage, error: str, **values) -> PageProcessingResult:
        logger.warning(f"Page failed {page.url}: {error}")
        await self.store.update_page(
            page.id,
            status=PageStatus.FAILED,
            last_error=error,
            analyzed_at=utcnow(),
            **values,
        )
        return PageProcessingResult(
            page_id=page.id,
            url=page.url,
            status=PageStatus.FAILED,
            error=error,
        )

    async def _release(self, pages: list[AuditPage]) -> None:
        """Return claimed pages that never finished to PENDING."""
        try:
            released = await self.store.release_pages([page.id for page in pages])
        except StoreError as e:
            logger.error(f"Could not release {len(pages)} claimed pages: {e.message}")
            return
        if released:
            logger.warning(f"Returned {released} unfinished pages to pending")
