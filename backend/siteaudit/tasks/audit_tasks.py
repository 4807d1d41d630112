"""
Audit Tasks

Background tasks for running and resuming website audits.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from celery import shared_task

from siteaudit.core.errors import AuditError, DiscoveryFailedError, StoreError
from siteaudit.database import get_sync_compatible_session_maker
from siteaudit.integrations.llm import LLMClient
from siteaudit.services.audit_store import AuditStore
from siteaudit.services.orchestrator import AuditOrchestrator, AuditRequest, create_audit_run

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _with_orchestrator(action):
    """Run ``action(orchestrator)`` with a task-local store and LLM client."""
    session_maker = get_sync_compatible_session_maker()
    try:
        async with LLMClient() as llm:
            orchestrator = AuditOrchestrator(AuditStore(session_maker), llm)
            return await action(orchestrator)
    finally:
        await session_maker.kw["bind"].dispose()


@shared_task(bind=True, max_retries=3)
def run_website_audit(self, config: Dict[str, Any], run_id: Optional[str] = None):
    """Discover a site's pages and analyze the first batch.

    The run record is created before any work starts and its id is passed on
    retry, so a retried task resumes the same run.
    """
    request = AuditRequest(**config)
    try:
        if run_id is None:
            run = run_async(_with_orchestrator(
                lambda orchestrator: create_audit_run(orchestrator.store, request, orchestrator.config)
            ))
            run_id = str(run.id)
        result = run_async(_with_orchestrator(
            lambda orchestrator: orchestrator.run_audit(request, run_id=UUID(run_id))
        ))
    except DiscoveryFailedError as e:
        logger.error(f"Audit for {request.root_url} failed: {e.message}")
        return {"run_id": run_id, "error": e.message, "code": e.code}
    except StoreError as e:
        logger.error(f"Store failure during audit of {request.root_url}: {e.message}")
        raise self.retry(exc=e, args=(config, run_id), kwargs={})
    return result.to_dict()


@shared_task(bind=True, max_retries=3)
def scan_more_pages(self, run_id: str, count: Optional[int] = None, include_failed: bool = False):
    """Analyze the next pending pages of an existing run."""
    try:
        result = run_async(_with_orchestrator(
            lambda orchestrator: orchestrator.scan_more_pages(
                UUID(run_id), count=count, include_failed=include_failed
            )
        ))
    except StoreError as e:
        logger.error(f"Store failure while scanning run {run_id}: {e.message}")
        raise self.retry(exc=e)
    except AuditError as e:
        return {"run_id": run_id, "error": e.message, "code": e.code}
    return result.to_dict()


@shared_task(bind=True, max_retries=3)
def scan_pages(self, run_id: str, page_ids: List[str]):
    """Analyze specific pending pages of a run."""
    try:
        result = run_async(_with_orchestrator(
            lambda orchestrator: orchestrator.scan_pages(
                UUID(run_id), [UUID(page_id) for page_id in page_ids]
            )
        ))
    except StoreError as e:
        raise self.retry(exc=e)
    except AuditError as e:
        return {"run_id": run_id, "error": e.message, "code": e.code}
    return result.to_dict()


@shared_task(bind=True, max_retries=3)
def analyze_stored_page(self, page_id: str):
    """Analyze (or re-analyze) a single stored page."""
    try:
        result = run_async(_with_orchestrator(
            lambda orchestrator: orchestrator.analyze_stored_page(UUID(page_id))
        ))
    except StoreError as e:
        raise self.retry(exc=e)
    except AuditError as e:
        return {"page_id": page_id, "error": e.message, "code": e.code}
    return {
        "page_id": page_id,
        "status": result.status.value,
        "skipped": result.skipped,
        "score": result.score,
        "error": result.error,
    }
