"""
Unit tests for the background audit tasks.

The orchestrator is replaced with mocks; these tests only cover how the
tasks create runs, report failures and retry.
"""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from celery.exceptions import Retry

from siteaudit.config import AuditConfig
from siteaudit.core.errors import DiscoveryFailedError, StoreError
from siteaudit.tasks.audit_tasks import run_website_audit, scan_more_pages

CONFIG = {"project_id": "project-1", "root_url": "https://example.com"}


def mock_orchestrator(run_id: uuid.UUID) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.config = AuditConfig.from_settings()
    orchestrator.store.create_run = AsyncMock(return_value=SimpleNamespace(id=run_id))
    return orchestrator


def patch_orchestrator(orchestrator: MagicMock):
    async def with_orchestrator(action):
        return await action(orchestrator)

    return patch("siteaudit.tasks.audit_tasks._with_orchestrator", new=with_orchestrator)


class TestRunWebsiteAudit:
    """Test run creation and retries of the audit task."""

    def test_store_error_retries_with_created_run(self):
        """The retry resumes the run created by the first attempt."""
        run_id = uuid.uuid4()
        orchestrator = mock_orchestrator(run_id)
        orchestrator.run_audit = AsyncMock(side_effect=StoreError("database is locked"))

        with patch_orchestrator(orchestrator), \
                patch("celery.app.task.Task.retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                run_website_audit(CONFIG)

        orchestrator.store.create_run.assert_awaited_once()
        assert orchestrator.run_audit.await_args.kwargs["run_id"] == run_id
        assert retry.call_args.kwargs["args"] == (CONFIG, str(run_id))
        assert isinstance(retry.call_args.kwargs["exc"], StoreError)

    def test_existing_run_is_not_recreated(self):
        run_id = uuid.uuid4()
        orchestrator = mock_orchestrator(run_id)
        orchestrator.run_audit = AsyncMock(side_effect=StoreError("database is locked"))

        with patch_orchestrator(orchestrator), \
                patch("celery.app.task.Task.retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                run_website_audit(CONFIG, str(run_id))

        orchestrator.store.create_run.assert_not_awaited()
        assert retry.call_args.kwargs["args"] == (CONFIG, str(run_id))

    def test_created_run_caps_are_clamped(self):
        run_id = uuid.uuid4()
        orchestrator = mock_orchestrator(run_id)
        orchestrator.run_audit = AsyncMock(
            return_value=SimpleNamespace(to_dict=lambda: {"run_id": str(run_id)})
        )
        config = dict(CONFIG, max_pages_discovered=10**6, max_pages_to_analyze=None)

        with patch_orchestrator(orchestrator):
            result = run_website_audit(config)

        assert result == {"run_id": str(run_id)}
        values = orchestrator.store.create_run.await_args.kwargs
        assert values["max_pages_discovered"] == orchestrator.config.max_pages_limit
        assert values["max_pages_to_analyze"] == orchestrator.config.default_max_pages_to_scan

    def test_discovery_failure_is_reported(self):
        run_id = uuid.uuid4()
        orchestrator = mock_orchestrator(run_id)
        orchestrator.run_audit = AsyncMock(side_effect=DiscoveryFailedError("nothing to crawl"))

        with patch_orchestrator(orchestrator):
            result = run_website_audit(CONFIG)

        assert result == {
            "run_id": str(run_id),
            "error": "nothing to crawl",
            "code": DiscoveryFailedError.code,
        }


class TestScanMorePages:
    def test_store_error_retries(self):
        orchestrator = MagicMock()
        orchestrator.scan_more_pages = AsyncMock(side_effect=StoreError("database is locked"))

        with patch_orchestrator(orchestrator), \
                patch("celery.app.task.Task.retry", side_effect=Retry()):
            with pytest.raises(Retry):
                scan_more_pages(str(uuid.uuid4()))
