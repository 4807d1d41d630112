"""
Audit endpoints.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Query, status

from siteaudit.config import AuditConfig
from siteaudit.core.deps import Store
from siteaudit.core.errors import AuditError
from siteaudit.core.exceptions import to_http_error
from siteaudit.models import PageStatus
from siteaudit.schemas.common import NOT_FOUND_RESPONSES
from siteaudit.schemas.audit import (
    AuditCreate,
    AuditPageResponse,
    AuditRunResponse,
    RetryFailedRequest,
    RetryFailedResponse,
    ScanMoreRequest,
    TaskQueuedResponse,
)
from siteaudit.services.orchestrator import AuditRequest, create_audit_run

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audits"])


@router.post(
    "/audits",
    response_model=AuditRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_audit(data: AuditCreate, store: Store):
    """Create an audit run and queue discovery plus the first analysis batch."""
    request = AuditRequest(
        project_id=data.project_id,
        root_url=str(data.root_url),
        max_pages_discovered=data.max_pages_discovered,
        max_pages_to_analyze=data.max_pages_to_analyze,
        sitemap_url=str(data.sitemap_url) if data.sitemap_url else None,
        respect_robots_txt=data.respect_robots_txt,
    )
    try:
        run = await create_audit_run(store, request, AuditConfig.from_settings())
    except AuditError as e:
        raise to_http_error(e) from e

    from siteaudit.tasks.audit_tasks import run_website_audit
    run_website_audit.delay(request.to_dict(), str(run.id))
    logger.info(f"Queued audit {run.id} for {request.root_url}")

    return AuditRunResponse.model_validate(run)


@router.get("/audits/{run_id}", response_model=AuditRunResponse, responses=NOT_FOUND_RESPONSES)
async def get_audit(run_id: UUID, store: Store):
    """Get an audit run with its aggregated results."""
    try:
        run = await store.get_run(run_id)
    except AuditError as e:
        raise to_http_error(e) from e
    return AuditRunResponse.model_validate(run)


@router.get(
    "/audits/{run_id}/pages",
    response_model=list[AuditPageResponse],
    responses=NOT_FOUND_RESPONSES,
)
async def list_audit_pages(
    run_id: UUID,
    store: Store,
    status: PageStatus | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
):
    """List the pages of a run in discovery order."""
    try:
        await store.get_run(run_id)
        pages = await store.list_pages(run_id, status=status, limit=limit)
    except AuditError as e:
        raise to_http_error(e) from e
    return [AuditPageResponse.model_validate(page) for page in pages]


@router.post(
    "/audits/{run_id}/scan-more",
    response_model=TaskQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=NOT_FOUND_RESPONSES,
)
async def scan_more(run_id: UUID, data: ScanMoreRequest, store: Store):
    """Queue analysis of the next pending pages (or of specific pages)."""
    try:
        await store.get_run(run_id)
    except AuditError as e:
        raise to_http_error(e) from e

    if data.page_ids:
        from siteaudit.tasks.audit_tasks import scan_pages
        task = scan_pages.delay(str(run_id), [str(page_id) for page_id in data.page_ids])
        message = f"Queued {len(data.page_ids)} pages for analysis"
    else:
        from siteaudit.tasks.audit_tasks import scan_more_pages
        task = scan_more_pages.delay(str(run_id), data.count, data.include_failed)
        message = "Queued next pending pages for analysis"

    return TaskQueuedResponse(task_id=task.id, run_id=run_id, message=message)


@router.post(
    "/audits/{run_id}/retry-failed",
    response_model=RetryFailedResponse,
    responses=NOT_FOUND_RESPONSES,
)
async def retry_failed(run_id: UUID, data: RetryFailedRequest, store: Store):
    """Return failed pages to pending so the next scan picks them up."""
    try:
        await store.get_run(run_id)
        reset = await store.reset_failed_pages(run_id, page_ids=data.page_ids)
        await store.refresh_run_summary(run_id)
    except AuditError as e:
        raise to_http_error(e) from e
    return RetryFailedResponse(run_id=run_id, reset=reset)
