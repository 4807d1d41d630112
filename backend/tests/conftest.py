"""
Pytest configuration and fixtures for SiteAudit tests.
"""
import asyncio
import json
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from siteaudit.config import AuditConfig
from siteaudit.integrations.llm import LLMResponse
from siteaudit.models import Base
from siteaudit.services.audit_store import AuditStore
from siteaudit.services.rate_limiter import CrawlRateLimiter
from tests.fixtures.sample_pages import ai_reply


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine; page pipelines open concurrent sessions."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def store(session_maker) -> AuditStore:
    return AuditStore(session_maker)


@pytest_asyncio.fixture
async def run(store):
    """An audit run with no pages yet."""
    return await store.create_run(
        project_id="project-1",
        root_url="https://example.com",
        max_pages_discovered=100,
        max_pages_to_analyze=2,
        crawl_delay_ms=0,
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def audit_config() -> AuditConfig:
    """Fast config: no crawl delay, small batches."""
    return AuditConfig.from_settings(
        crawl_delay_ms=0,
        batch_size=2,
        page_fetch_timeout_ms=2000,
        ai_timeout_ms=2000,
        default_max_pages_to_scan=50,
    )


@pytest.fixture
def short_timeouts() -> AuditConfig:
    """Config whose robots, sitemap and page timeouts are 50ms."""
    return AuditConfig.from_settings(
        crawl_delay_ms=0,
        robots_timeout_ms=50,
        sitemap_timeout_ms=50,
        page_fetch_timeout_ms=50,
    )


@pytest.fixture
def limiter() -> CrawlRateLimiter:
    return CrawlRateLimiter(0)


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self):
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# HTTP Fixtures
# ============================================================================

class FakeSite:
    """In-memory website served through ``httpx.MockTransport``.

    Routes map absolute URLs to ``(status, body, content_type)``. Unknown
    URLs answer 404. Every request is recorded in ``requests``.
    """

    def __init__(self):
        self.routes: dict[str, tuple[int, bytes, str]] = {}
        self.errors: dict[str, Exception] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, body: str | bytes, status: int = 200, content_type: str = "text/html; charset=utf-8"):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = (status, body, content_type)

    def add_xml(self, url: str, body: str | bytes, status: int = 200):
        self.add(url, body, status=status, content_type="application/xml")

    def add_text(self, url: str, body: str, status: int = 200):
        self.add(url, body, status=status, content_type="text/plain")

    def fail(self, url: str, error: Exception):
        self.errors[url] = error

    def requested(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.routes:
            return httpx.Response(404, text="Not Found", request=request)
        status, body, content_type = self.routes[url]
        return httpx.Response(
            status,
            content=body,
            headers={"content-type": content_type},
            request=request,
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_site() -> FakeSite:
    return FakeSite()


@pytest_asyncio.fixture
async def http_client(fake_site) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=fake_site.transport) as client:
        yield client


@pytest_asyncio.fixture
async def slow_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Client whose every response takes a second to arrive."""
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, text="User-agent: *\n", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client


# ============================================================================
# LLM Fixtures
# ============================================================================

class FakeLLM:
    """Stands in for LLMClient. Replies with ``reply`` unless the prompt
    mentions one of the URLs in ``fail_for``."""

    def __init__(self, reply: dict | str | None = None):
        self.reply = reply if reply is not None else ai_reply()
        self.fail_for: set[str] = set()
        self.prompts: list[str] = []

    async def chat(self, messages, temperature=None, max_tokens=None, json_mode=False) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        for url in self.fail_for:
            if f"**URL**: {url}\n" in prompt:
                raise httpx.ConnectError("LLM provider unavailable")
        content = self.reply if isinstance(self.reply, str) else json.dumps(self.reply)
        return LLMResponse(
            content=content,
            model="test-model",
            usage={"prompt_tokens": 1000, "completion_tokens": 500},
        )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()
