"""
Link, asset and performance records derived from a fetched page.

These are built as soon as extraction succeeds and persisted whether or
not the AI analyzer succeeds afterwards.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from siteaudit.config import AuditConfig
from siteaudit.models.page_records import AssetType, LinkStatus, LinkType
from siteaudit.schemas.analysis import IssueSeverity, IssueType
from siteaudit.services.extractor import ExtractedPage, ImageInfo, LinkInfo
from siteaudit.services.fetcher import FETCH_HEADERS, FetchedPage
from siteaudit.services.rate_limiter import CrawlRateLimiter

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {
    ".webp": "webp",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".gif": "gif",
    ".svg": "svg",
    ".avif": "avif",
    ".ico": "ico",
}
VIDEO_FORMATS = {".mp4": "mp4", ".webm": "webm", ".mov": "mov"}

SLOW_TTFB_MS = 800
VERY_SLOW_TTFB_MS = 1800


@dataclass
class LinkCheckResult:
    status: LinkStatus
    status_code: int | None = None
    redirect_url: str | None = None
    response_time_ms: int | None = None


@dataclass
class PageRecords:
    links: list[dict] = field(default_factory=list)
    assets: list[dict] = field(default_factory=list)
    performance: dict | None = None

    @property
    def broken_links(self) -> int:
        return sum(1 for link in self.links if link["status"] == LinkStatus.BROKEN)


def _record_issue(issue_type: str, severity: IssueSeverity, message: str, fix: str) -> dict:
    return {"type": issue_type, "severity": severity.value, "message": message, "fix": fix}


class LinkChecker:
    """HEAD-checks outbound links. Internal checks go through the crawl-delay limiter."""

    def __init__(self, client: httpx.AsyncClient, limiter: CrawlRateLimiter, config: AuditConfig):
        self.client = client
        self.limiter = limiter
        self.config = config

    async def check(self, link: LinkInfo) -> LinkCheckResult:
        if link.is_internal:
            async with self.limiter.slot():
                return await self._head(link.href)
        return await self._head(link.href)

    async def check_all(self, links: list[LinkInfo]) -> list[LinkCheckResult | None]:
        """Check the first ``link_check_max_links`` links; the rest stay unchecked."""
        limit = self.config.link_check_max_links
        checked = await asyncio.gather(*(self.check(link) for link in links[:limit]))
        return list(checked) + [None] * max(0, len(links) - limit)

    async def _head(self, url: str) -> LinkCheckResult:
        start_time = time.monotonic()
        try:
            response = await self.client.head(
                url,
                headers=FETCH_HEADERS,
                timeout=self.config.link_check_timeout_ms / 1000,
                follow_redirects=True,
            )
        except httpx.TimeoutException:
            return LinkCheckResult(status=LinkStatus.TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug(f"Link check failed for {url}: {e}")
            return LinkCheckResult(status=LinkStatus.BROKEN)

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        final_url = str(response.url)
        if response.status_code >= 400:
            status = LinkStatus.BROKEN
        elif response.history or 300 <= response.status_code < 400:
            status = LinkStatus.REDIRECT
        else:
            status = LinkStatus.ACTIVE
        return LinkCheckResult(
            status=status,
            status_code=response.status_code,
            redirect_url=final_url if final_url != url else None,
            response_time_ms=elapsed_ms,
        )


def build_link_record(link: LinkInfo, check: LinkCheckResult | None) -> dict:
    check = check or LinkCheckResult(status=LinkStatus.UNCHECKED)
    issues = []
    if check.status == LinkStatus.BROKEN:
        issues.append(_record_issue(
            IssueType.BROKEN_LINK.value, IssueSeverity.CRITICAL,
            f"Broken link: {link.href} returns {check.status_code or 'error'}",
            "Remove or update the broken link to a valid URL",
        ))
    elif check.status == LinkStatus.REDIRECT:
        issues.append(_record_issue(
            IssueType.REDIRECT_CHAIN.value, IssueSeverity.WARNING,
            f"Link redirects to: {check.redirect_url}",
            "Update the link to point directly to the final destination",
        ))
    elif check.status == LinkStatus.TIMEOUT:
        issues.append(_record_issue(
            "slow_link", IssueSeverity.WARNING,
            "Link took too long to respond",
            "Check if the linked resource is slow or unavailable",
        ))
    if not link.text.strip():
        issues.append(_record_issue(
            "empty_anchor", IssueSeverity.WARNING,
            "Link has no anchor text",
            "Add descriptive anchor text for better SEO and accessibility",
        ))
    if not link.is_internal and not link.is_nofollow:
        issues.append(_record_issue(
            "external_dofollow", IssueSeverity.INFO,
            "External link without nofollow attribute",
            'Consider adding rel="nofollow" to untrusted external links',
        ))

    return {
        "href": link.href,
        "anchor_text": link.text,
        "link_type": LinkType.INTERNAL if link.is_internal else LinkType.EXTERNAL,
        "status": check.status,
        "status_code": check.status_code,
        "response_time_ms": check.response_time_ms,
        "is_nofollow": link.is_nofollow,
        "issues": issues,
    }


def detect_asset_format(src: str) -> tuple[AssetType, str]:
    path = urlsplit(src).path.lower()
    for extension, fmt in VIDEO_FORMATS.items():
        if path.endswith(extension):
            return AssetType.VIDEO, fmt
    for extension, fmt in IMAGE_FORMATS.items():
        if path.endswith(extension):
            if fmt == "svg":
                return AssetType.SVG, fmt
            if fmt == "gif":
                return AssetType.GIF, fmt
            return AssetType.IMAGE, fmt
    return AssetType.IMAGE, "unknown"


def build_asset_record(image: ImageInfo) -> dict:
    asset_type, fmt = detect_asset_format(image.src)
    has_alt = bool(image.alt and image.alt.strip())
    is_lazy = (image.loading or "").lower() == "lazy"

    issues = []
    if not has_alt:
        issues.append(_record_issue(
            "missing_alt", IssueSeverity.WARNING,
            "Image missing alt text",
            "Add descriptive alt text for better SEO and accessibility",
        ))
    if not is_lazy:
        issues.append(_record_issue(
            "not_lazy_loaded", IssueSeverity.INFO,
            "Image not lazy loaded",
            'Add loading="lazy" attribute to defer offscreen images',
        ))
    if fmt not in ("webp", "avif", "svg", "ico") and asset_type != AssetType.VIDEO:
        issues.append(_record_issue(
            "not_webp", IssueSeverity.INFO,
            f"Image uses {fmt.upper()} format",
            "Consider converting to WebP for better compression",
        ))
    if not image.width or not image.height:
        issues.append(_record_issue(
            "missing_dimensions", IssueSeverity.WARNING,
            "Image missing explicit width/height attributes",
            "Add width and height attributes to prevent layout shift (CLS)",
        ))

    return {
        "src": image.src,
        "asset_type": asset_type,
        "format": fmt,
        "alt_text": image.alt,
        "has_alt": has_alt,
        "width": image.width,
        "height": image.height,
        "is_lazy_loaded": is_lazy,
        "issues": issues,
    }


def build_performance_record(fetched: FetchedPage) -> dict:
    """Score the server response from measured timing only."""
    ttfb = fetched.response_time_ms
    score = 100
    if ttfb > SLOW_TTFB_MS:
        score -= 20
    if ttfb > VERY_SLOW_TTFB_MS:
        score -= 20

    issues = []
    if ttfb > SLOW_TTFB_MS:
        severity = IssueSeverity.CRITICAL if ttfb > VERY_SLOW_TTFB_MS else IssueSeverity.WARNING
        issues.append(_record_issue(
            IssueType.SLOW_RESPONSE.value, severity,
            f"Time to First Byte is {ttfb}ms (target: <{SLOW_TTFB_MS}ms)",
            "Optimize server response time, use caching, or CDN",
        ))

    return {
        "response_time_ms": ttfb,
        "response_size_bytes": fetched.size_bytes,
        "score": float(score),
        "metrics": {
            "status_code": fetched.status_code,
            "final_url": fetched.final_url,
            "redirected": fetched.redirected,
            "content_type": fetched.content_type,
        },
        "issues": issues,
    }


async def build_page_records(
    extracted: ExtractedPage,
    fetched: FetchedPage,
    link_checker: LinkChecker | None = None,
) -> PageRecords:
    links = extracted.metadata.links
    if link_checker is not None:
        checks = await link_checker.check_all(links)
    else:
        checks = [None] * len(links)

    return PageRecords(
        links=[build_link_record(link, check) for link, check in zip(links, checks)],
        assets=[build_asset_record(image) for image in extracted.metadata.images],
        performance=build_performance_record(fetched),
    )
