"""
Page endpoints.
"""
from uuid import UUID

from fastapi import APIRouter, status

from siteaudit.core.deps import Store
from siteaudit.core.errors import AuditError
from siteaudit.core.exceptions import to_http_error
from siteaudit.schemas.common import NOT_FOUND_RESPONSES
from siteaudit.schemas.audit import (
    AssetAuditResponse,
    AuditPageResponse,
    LinkAuditResponse,
    PageAnalysisResponse,
    PageDetailResponse,
    PerformanceAuditResponse,
    TaskQueuedResponse,
)

router = APIRouter(tags=["Pages"])


@router.get("/pages/{page_id}", response_model=PageDetailResponse, responses=NOT_FOUND_RESPONSES)
async def get_page(page_id: UUID, store: Store):
    """Get a page with its analysis, links, assets and performance record."""
    try:
        page = await store.get_page(page_id)
        analysis = await store.get_page_analysis(page_id)
        links = await store.list_link_audits(page_id)
        assets = await store.list_asset_audits(page_id)
        performance = await store.get_performance_audit(page_id)
    except AuditError as e:
        raise to_http_error(e) from e

    return PageDetailResponse(
        page=AuditPageResponse.model_validate(page),
        analysis=PageAnalysisResponse.model_validate(analysis) if analysis else None,
        links=[LinkAuditResponse.model_validate(link) for link in links],
        assets=[AssetAuditResponse.model_validate(asset) for asset in assets],
        performance=(
            PerformanceAuditResponse.model_validate(performance) if performance else None
        ),
    )


@router.post(
    "/pages/{page_id}/analyze",
    response_model=TaskQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=NOT_FOUND_RESPONSES,
)
async def analyze_page(page_id: UUID, store: Store):
    """Queue (re-)analysis of a single stored page."""
    try:
        page = await store.get_page(page_id)
    except AuditError as e:
        raise to_http_error(e) from e

    from siteaudit.tasks.audit_tasks import analyze_stored_page
    task = analyze_stored_page.delay(str(page.id))

    return TaskQueuedResponse(
        task_id=task.id,
        run_id=page.run_id,
        page_id=page.id,
        message="Page queued for analysis",
    )
