"""
Audit schemas.
"""
from datetime import datetime
from uuid import UUID

from pydantic import Field, HttpUrl

from siteaudit.models import (
    AnalysisStatus,
    AssetType,
    AuditPhase,
    FetchStatus,
    LinkStatus,
    LinkType,
    PageStatus,
)
from siteaudit.schemas.common import BaseSchema, IDSchema, RecordSchema


class AuditCreate(BaseSchema):
    """Start audit request."""

    project_id: str = Field(min_length=1, max_length=255)
    root_url: HttpUrl
    max_pages_discovered: int | None = Field(default=None, ge=1)
    max_pages_to_analyze: int | None = Field(default=None, ge=0)
    sitemap_url: HttpUrl | None = None
    respect_robots_txt: bool = True


class AuditRunResponse(RecordSchema):
    """Audit run response."""

    project_id: str
    root_url: str
    sitemap_url: str | None
    phase: AuditPhase
    max_pages_discovered: int
    max_pages_to_analyze: int
    crawl_delay_ms: int | None
    total_pages: int
    pages_analyzed: int
    pages_failed: int
    critical_issues: int
    warning_issues: int
    info_issues: int
    health_score: int | None
    overall_score: float | None
    seo_score: float | None
    aeo_score: float | None
    content_score: float | None
    technical_score: float | None
    discovery_errors: list[str] = []
    error_message: str | None
    started_at: datetime | None
    discovery_completed_at: datetime | None
    completed_at: datetime | None


class AuditPageResponse(RecordSchema):
    """Discovered page response."""

    run_id: UUID
    url: str
    path: str
    status: PageStatus
    discovery_order: int
    discovered_at: datetime
    analyzed_at: datetime | None
    last_error: str | None
    title: str | None
    status_code: int | None
    fetch_status: FetchStatus
    analysis_status: AnalysisStatus
    attempts: int


class PageAnalysisResponse(RecordSchema):
    """Stored AI analysis of a page."""

    score: float
    seo_score: float | None
    aeo_score: float | None
    content_score: float | None
    technical_score: float | None
    issues: list[dict] = []
    analysis: dict = {}
    metadata_snapshot: dict = {}
    tokens_used: int
    cost: float


class LinkAuditResponse(IDSchema):
    href: str
    anchor_text: str | None
    link_type: LinkType
    status: LinkStatus
    status_code: int | None
    response_time_ms: int | None
    is_nofollow: bool
    issues: list[dict] = []


class AssetAuditResponse(IDSchema):
    src: str
    asset_type: AssetType
    format: str | None
    alt_text: str | None
    has_alt: bool
    width: int | None
    height: int | None
    is_lazy_loaded: bool
    issues: list[dict] = []


class PerformanceAuditResponse(IDSchema):
    response_time_ms: int | None
    response_size_bytes: int | None
    score: float | None
    metrics: dict = {}
    issues: list[dict] = []


class PageDetailResponse(BaseSchema):
    """A page with its analysis and derived records."""

    page: AuditPageResponse
    analysis: PageAnalysisResponse | None = None
    links: list[LinkAuditResponse] = []
    assets: list[AssetAuditResponse] = []
    performance: PerformanceAuditResponse | None = None


class ScanMoreRequest(BaseSchema):
    """Resume analysis on the next pending pages."""

    count: int | None = Field(default=None, ge=0)
    include_failed: bool = False
    page_ids: list[UUID] | None = None


class RetryFailedRequest(BaseSchema):
    page_ids: list[UUID] | None = None


class RetryFailedResponse(BaseSchema):
    run_id: UUID
    reset: int


class TaskQueuedResponse(BaseSchema):
    """Background task accepted."""

    task_id: str
    run_id: UUID | None = None
    page_id: UUID | None = None
    message: str
