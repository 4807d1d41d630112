"""
Persistence for runs, pages, analyses and per-page records.

Each operation opens its own short session so that concurrent page
pipelines never share a session. Every SQLAlchemy failure is surfaced as
StoreError.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from siteaudit.core.errors import AuditNotFoundError, PageNotFoundError, StoreError
from siteaudit.models import (
    AnalysisStatus,
    AssetAudit,
    AuditPage,
    AuditPhase,
    AuditRun,
    FetchStatus,
    LinkAudit,
    PageAnalysisRecord,
    PageStatus,
    PerformanceAudit,
)
from siteaudit.models.base import utcnow
from siteaudit.schemas.analysis import PageAnalysis
from siteaudit.services.page_records import PageRecords
from siteaudit.services.scoring import RunSummary, summarize_run
from siteaudit.services.urls import url_path

logger = logging.getLogger(__name__)


class AuditStore:
    """Record store for audit runs backed by SQLAlchemy async sessions."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_maker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except SQLAlchemyError as e:
            logger.error(f"Audit store failure: {e}")
            raise StoreError(f"Audit store failure: {e}") from e

    # Runs

    async def create_run(
        self,
        project_id: str,
        root_url: str,
        max_pages_discovered: int,
        max_pages_to_analyze: int,
        sitemap_url: str | None = None,
        crawl_delay_ms: int | None = None,
    ) -> AuditRun:
        run = AuditRun(
            project_id=project_id,
            root_url=root_url,
            sitemap_url=sitemap_url,
            max_pages_discovered=max_pages_discovered,
            max_pages_to_analyze=max_pages_to_analyze,
            phase=AuditPhase.DISCOVERING,
            crawl_delay_ms=crawl_delay_ms,
            discovery_errors=[],
            started_at=utcnow(),
        )
        async with self._session() as session:
            session.add(run)
        return run

    async def get_run(self, run_id: UUID) -> AuditRun:
        async with self._session() as session:
            run = await session.get(AuditRun, run_id)
        if run is None:
            raise AuditNotFoundError(f"Audit run {run_id} not found")
        return run

    async def update_run(self, run_id: UUID, **values) -> None:
        async with self._session() as session:
            result = await session.execute(
                update(AuditRun)
                .where(AuditRun.id == run_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise AuditNotFoundError(f"Audit run {run_id} not found")

    async def refresh_run_summary(self, run_id: UUID) -> RunSummary:
        """Recompute counts, severities and mean scores from the stored pages."""
        async with self._session() as session:
            rows = await session.execute(
                select(AuditPage.status, func.count())
                .where(AuditPage.run_id == run_id)
                .group_by(AuditPage.status)
            )
            status_counts = {status.value: count for status, count in rows.all()}

            records = await session.scalars(
                select(PageAnalysisRecord)
                .join(AuditPage, PageAnalysisRecord.page_id == AuditPage.id)
                .where(AuditPage.run_id == run_id, AuditPage.status == PageStatus.ANALYZED)
            )
            analyses = [
                {
                    "issues": record.issues or [],
                    "overall_score": record.score,
                    "seo_score": record.seo_score,
                    "aeo_score": record.aeo_score,
                    "content_score": record.content_score,
                    "technical_score": record.technical_score,
                }
                for record in records.all()
            ]

            summary = summarize_run(status_counts, analyses)
            await session.execute(
                update(AuditRun)
                .where(AuditRun.id == run_id)
                .values(
                    total_pages=summary.total_pages,
                    pages_analyzed=summary.pages_analyzed,
                    pages_failed=summary.pages_failed,
                    critical_issues=summary.critical_issues,
                    warning_issues=summary.warning_issues,
                    info_issues=summary.info_issues,
                    health_score=summary.health_score,
                    overall_score=summary.overall_score,
                    seo_score=summary.seo_score,
                    aeo_score=summary.aeo_score,
                    content_score=summary.content_score,
                    technical_score=summary.technical_score,
                )
                .execution_options(synchronize_session=False)
            )
        return summary

    # Pages

    async def create_pages(self, run_id: UUID, urls: list[str]) -> list[AuditPage]:
        """Bulk-create PENDING pages in one transaction, ordered as given."""
        now = utcnow()
        pages = [
            AuditPage(
                run_id=run_id,
                url=url,
                path=url_path(url),
                status=PageStatus.PENDING,
                discovery_order=index,
                discovered_at=now,
                fetch_status=FetchStatus.NOT_ATTEMPTED,
                analysis_status=AnalysisStatus.NOT_ATTEMPTED,
                attempts=0,
            )
            for index, url in enumerate(urls)
        ]
        async with self._session() as session:
            session.add_all(pages)
        return pages

    async def list_pages(
        self,
        run_id: UUID,
        status: PageStatus | None = None,
        limit: int | None = None,
        page_ids: Iterable[UUID] | None = None,
    ) -> list[AuditPage]:
        """Pages of a run in ascending discovery order."""
        query = select(AuditPage).where(AuditPage.run_id == run_id)
        if status is not None:
            query = query.where(AuditPage.status == status)
        if page_ids is not None:
            query = query.where(AuditPage.id.in_(list(page_ids)))
        query = query.order_by(AuditPage.discovery_order)
        if limit is not None:
            query = query.limit(limit)
        async with self._session() as session:
            result = await session.scalars(query)
            return list(result.all())

    async def count_pages(self, run_id: UUID, status: PageStatus | None = None) -> int:
        query = select(func.count()).select_from(AuditPage).where(AuditPage.run_id == run_id)
        if status is not None:
            query = query.where(AuditPage.status == status)
        async with self._session() as session:
            return int(await session.scalar(query) or 0)

    async def get_page(self, page_id: UUID) -> AuditPage:
        async with self._session() as session:
            page = await session.get(AuditPage, page_id)
        if page is None:
            raise PageNotFoundError(f"Page {page_id} not found")
        return page

    async def claim_page(self, page_id: UUID) -> bool:
        """Atomically move a page from PENDING to ANALYZING.

        Returns False when another caller already claimed it.
        """
        async with self._session() as session:
            result = await session.execute(
                update(AuditPage)
                .where(AuditPage.id == page_id, AuditPage.status == PageStatus.PENDING)
                .values(
                    status=PageStatus.ANALYZING,
                    attempts=AuditPage.attempts + 1,
                    last_error=None,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def update_page(self, page_id: UUID, **values) -> None:
        values.setdefault("updated_at", utcnow())
        async with self._session() as session:
            result = await session.execute(
                update(AuditPage)
                .where(AuditPage.id == page_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise PageNotFoundError(f"Page {page_id} not found")

    async def reset_failed_pages(
        self,
        run_id: UUID,
        page_ids: Iterable[UUID] | None = None,
        limit: int | None = None,
    ) -> int:
        """Return FAILED pages of a run to PENDING, oldest discovery first."""
        query = (
            select(AuditPage.id)
            .where(AuditPage.run_id == run_id, AuditPage.status == PageStatus.FAILED)
            .order_by(AuditPage.discovery_order)
        )
        if page_ids is not None:
            query = query.where(AuditPage.id.in_(list(page_ids)))
        if limit is not None:
            query = query.limit(limit)

        async with self._session() as session:
            ids = list((await session.scalars(query)).all())
            if not ids:
                return 0
            result = await session.execute(
                update(AuditPage)
                .where(AuditPage.id.in_(ids), AuditPage.status == PageStatus.FAILED)
                .values(**_reset_values())
                .execution_options(synchronize_session=False)
            )
        logger.info(f"Reset {result.rowcount} failed pages to pending for run {run_id}")
        return result.rowcount

    async def release_pages(self, page_ids: Iterable[UUID]) -> int:
        """Return pages still ANALYZING to PENDING after an aborted batch."""
        ids = list(page_ids)
        if not ids:
            return 0
        async with self._session() as session:
            result = await session.execute(
                update(AuditPage)
                .where(AuditPage.id.in_(ids), AuditPage.status == PageStatus.ANALYZING)
                .values(**_reset_values())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    async def reset_page(self, page_id: UUID) -> bool:
        """Return a finished page to PENDING. Pages currently ANALYZING are left alone."""
        async with self._session() as session:
            result = await session.execute(
                update(AuditPage)
                .where(
                    AuditPage.id == page_id,
                    AuditPage.status.in_([PageStatus.FAILED, PageStatus.ANALYZED]),
                )
                .values(**_reset_values())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    # Analyses and derived records

    async def save_page_analysis(
        self,
        page_id: UUID,
        analysis: PageAnalysis,
        metadata_snapshot: dict | None = None,
        markdown_content: str | None = None,
    ) -> PageAnalysisRecord:
        """Store the analysis for a page, replacing any earlier one."""
        record = PageAnalysisRecord(
            page_id=page_id,
            score=analysis.score,
            seo_score=analysis.scores.seo,
            aeo_score=analysis.scores.aeo,
            content_score=analysis.scores.content,
            technical_score=analysis.scores.technical,
            issues=[issue.model_dump(mode="json") for issue in analysis.issues],
            analysis=analysis.analysis,
            metadata_snapshot=metadata_snapshot or {},
            markdown_content=markdown_content,
            tokens_used=analysis.tokens_used,
            cost=analysis.cost,
        )
        async with self._session() as session:
            await session.execute(
                delete(PageAnalysisRecord).where(PageAnalysisRecord.page_id == page_id)
            )
            session.add(record)
        return record

    async def get_page_analysis(self, page_id: UUID) -> PageAnalysisRecord | None:
        async with self._session() as session:
            return await session.scalar(
                select(PageAnalysisRecord).where(PageAnalysisRecord.page_id == page_id)
            )

    async def replace_page_records(self, page_id: UUID, records: PageRecords) -> None:
        """Replace the link, asset and performance rows of a page."""
        async with self._session() as session:
            for model in (LinkAudit, AssetAudit, PerformanceAudit):
                await session.execute(delete(model).where(model.page_id == page_id))
            session.add_all(LinkAudit(page_id=page_id, **values) for values in records.links)
            session.add_all(AssetAudit(page_id=page_id, **values) for values in records.assets)
            if records.performance is not None:
                session.add(PerformanceAudit(page_id=page_id, **records.performance))

    async def list_link_audits(self, page_id: UUID) -> list[LinkAudit]:
        async with self._session() as session:
            result = await session.scalars(select(LinkAudit).where(LinkAudit.page_id == page_id))
            return list(result.all())

    async def list_asset_audits(self, page_id: UUID) -> list[AssetAudit]:
        async with self._session() as session:
            result = await session.scalars(select(AssetAudit).where(AssetAudit.page_id == page_id))
            return list(result.all())

    async def get_performance_audit(self, page_id: UUID) -> PerformanceAudit | None:
        async with self._session() as session:
            return await session.scalar(
                select(PerformanceAudit).where(PerformanceAudit.page_id == page_id)
            )


def _reset_values() -> dict:
    return {
        "status": PageStatus.PENDING,
        "last_error": None,
        "fetch_status": FetchStatus.NOT_ATTEMPTED,
        "analysis_status": AnalysisStatus.NOT_ATTEMPTED,
        "updated_at": utcnow(),
    }
