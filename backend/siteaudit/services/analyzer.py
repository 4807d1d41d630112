"""
AI page analyzer.

Builds a prompt from extracted page data, calls the LLM, and parses the
loosely structured reply into a strict ``PageAnalysis``. AI issues that
contradict the extracted facts are dropped and deterministic issues
computed from the page itself are merged in.
"""
import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from siteaudit.config import AuditConfig, settings
from siteaudit.core.errors import AnalyzerError
from siteaudit.integrations.llm import LLMClient, Message, extract_json
from siteaudit.schemas.analysis import (
    IssueSeverity,
    IssueType,
    PageAnalysis,
    PageIssue,
    PageScores,
)
from siteaudit.services.extractor import ExtractedPage
from siteaudit.services.prompts import (
    SYSTEM_PROMPT,
    PageAnalysisInput,
    build_page_analysis_prompt,
)

logger = logging.getLogger(__name__)

THIN_CONTENT_WORDS = 300
SLOW_RESPONSE_MS = 800
VERY_SLOW_RESPONSE_MS = 1800
DEFAULT_SCORE = 50
MAX_ANALYSIS_ITEMS = 5


def prepare_analysis_input(
    page: ExtractedPage,
    broken_links: int = 0,
    response_time_ms: int | None = None,
) -> PageAnalysisInput:
    meta = page.metadata
    return PageAnalysisInput(
        url=page.url,
        path=page.path,
        title=meta.title,
        description=meta.description,
        h1=meta.h1,
        h1_count=meta.h1_count,
        h2s=list(meta.h2s),
        text_content=page.text_content,
        word_count=meta.word_count,
        has_structured_data=bool(meta.structured_data),
        structured_data_types=[item.type for item in meta.structured_data],
        has_og_tags=bool(meta.og_title or meta.og_description or meta.og_image),
        has_canonical=bool(meta.canonical_url),
        has_viewport=bool(meta.viewport),
        language=meta.language,
        images_without_alt=sum(1 for img in meta.images if not img.alt),
        total_images=len(meta.images),
        internal_links=sum(1 for link in meta.links if link.is_internal),
        external_links=sum(1 for link in meta.links if not link.is_internal),
        broken_links=broken_links,
        response_time_ms=response_time_ms,
    )


def clamp_score(value: Any) -> int:
    """Scores outside 0-100 are clamped; a missing or non-numeric score becomes 50."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    return max(0, min(100, round(value)))


def score_status(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "needs-improvement"
    return "poor"


def _issue(issue_type: IssueType, severity: IssueSeverity, message: str, fix: str) -> PageIssue:
    return PageIssue(type=issue_type, severity=severity, message=message, fix=fix)


def generate_automatic_issues(data: PageAnalysisInput) -> list[PageIssue]:
    """Issues that follow directly from the extracted page facts."""
    issues = []
    if not data.title:
        issues.append(_issue(
            IssueType.MISSING_TITLE, IssueSeverity.CRITICAL,
            "Page is missing a title tag",
            "Add a unique, descriptive title tag (50-60 characters)",
        ))
    if not data.description:
        issues.append(_issue(
            IssueType.MISSING_DESCRIPTION, IssueSeverity.WARNING,
            "Page is missing a meta description",
            "Add a compelling meta description (120-160 characters)",
        ))
    if not data.h1:
        issues.append(_issue(
            IssueType.MISSING_H1, IssueSeverity.CRITICAL,
            "Page is missing an H1 heading",
            "Add a single, descriptive H1 heading to the page",
        ))
    if data.images_without_alt > 0:
        issues.append(_issue(
            IssueType.MISSING_ALT_TEXT, IssueSeverity.WARNING,
            f"{data.images_without_alt} images are missing alt text",
            "Add descriptive alt text to all images for accessibility and SEO",
        ))
    if not data.has_canonical:
        issues.append(_issue(
            IssueType.MISSING_CANONICAL, IssueSeverity.WARNING,
            "Page is missing a canonical URL",
            "Add a canonical link tag to prevent duplicate content issues",
        ))
    if not data.has_og_tags:
        issues.append(_issue(
            IssueType.MISSING_OG_TAGS, IssueSeverity.INFO,
            "Page is missing Open Graph meta tags",
            "Add og:title, og:description, and og:image for better social sharing",
        ))
    if not data.has_structured_data:
        issues.append(_issue(
            IssueType.NO_STRUCTURED_DATA, IssueSeverity.INFO,
            "Page has no structured data (JSON-LD)",
            "Add relevant schema.org structured data to improve AI understanding",
        ))
    if data.word_count < THIN_CONTENT_WORDS:
        issues.append(_issue(
            IssueType.THIN_CONTENT, IssueSeverity.WARNING,
            f"Page has only {data.word_count} words (thin content)",
            "Expand content to at least 500-1000 words for better ranking potential",
        ))
    if not data.has_viewport:
        issues.append(_issue(
            IssueType.MISSING_VIEWPORT, IssueSeverity.WARNING,
            "Page is missing a viewport meta tag",
            'Add <meta name="viewport" content="width=device-width, initial-scale=1">',
        ))
    if not data.language:
        issues.append(_issue(
            IssueType.MISSING_LANG, IssueSeverity.INFO,
            "Page does not declare its language",
            "Add a lang attribute to the <html> element",
        ))
    if data.response_time_ms is not None and data.response_time_ms > SLOW_RESPONSE_MS:
        severity = (
            IssueSeverity.CRITICAL
            if data.response_time_ms > VERY_SLOW_RESPONSE_MS
            else IssueSeverity.WARNING
        )
        issues.append(_issue(
            IssueType.SLOW_RESPONSE, severity,
            f"Server responded in {data.response_time_ms}ms (target: <{SLOW_RESPONSE_MS}ms)",
            "Optimize server response time, use caching, or a CDN",
        ))
    return issues


def contradicts_facts(issue: PageIssue, data: PageAnalysisInput) -> bool:
    """True for AI issues the extracted data proves wrong."""
    message = issue.message.lower()
    if issue.type == IssueType.MISSING_ALT_TEXT and data.images_without_alt == 0:
        return True
    if "image" in message and "alt" in message and data.total_images == 0:
        return True
    if issue.type == IssueType.BROKEN_LINK and data.broken_links == 0:
        return True
    if issue.type == IssueType.MISSING_TITLE and data.title:
        return True
    if issue.type == IssueType.MISSING_DESCRIPTION and data.description:
        return True
    if issue.type == IssueType.MISSING_H1 and data.h1:
        return True
    return False


def deduplicate_issues(issues: list[PageIssue]) -> list[PageIssue]:
    seen = set()
    unique = []
    for issue in issues:
        if issue.dedupe_key in seen:
            continue
        seen.add(issue.dedupe_key)
        unique.append(issue)
    return unique


def _parse_ai_issue(raw: Any) -> PageIssue:
    if not isinstance(raw, dict):
        raise AnalyzerError(f"Malformed issue entry: {raw!r}")
    try:
        severity = IssueSeverity(str(raw.get("severity") or "info").lower())
    except ValueError:
        severity = IssueSeverity.INFO
    element = raw.get("element")
    return PageIssue(
        type=IssueType.parse(raw.get("type")),
        severity=severity,
        message=str(raw.get("message") or "Unknown issue"),
        fix=str(raw.get("fix") or "Review and fix this issue"),
        element=str(element) if element else None,
    )


def _first_items(value: Any) -> list:
    return list(value)[:MAX_ANALYSIS_ITEMS] if isinstance(value, list) else []


def build_page_analysis(
    payload: dict,
    data: PageAnalysisInput,
    tokens_used: int = 0,
    cost: float = 0.0,
) -> PageAnalysis:
    """Validate a decoded AI reply and merge it with the automatic issues."""
    raw_scores = payload.get("scores") or {}
    raw_analysis = payload.get("analysis") or {}
    raw_issues = payload.get("issues") or []
    if not isinstance(raw_scores, dict) or not isinstance(raw_analysis, dict):
        raise AnalyzerError("Malformed AI response: scores and analysis must be objects")
    if not isinstance(raw_issues, list):
        raise AnalyzerError("Malformed AI response: issues must be a list")

    scores = PageScores(
        overall=clamp_score(raw_scores.get("overall")),
        seo=clamp_score(raw_scores.get("seo")),
        aeo=clamp_score(raw_scores.get("aeo")),
        content=clamp_score(raw_scores.get("content")),
        technical=clamp_score(raw_scores.get("technical")),
    )

    ai_issues = [_parse_ai_issue(raw) for raw in raw_issues]
    kept = [issue for issue in ai_issues if not contradicts_facts(issue, data)]
    if len(kept) != len(ai_issues):
        logger.debug(f"Dropped {len(ai_issues) - len(kept)} contradicted AI issues for {data.url}")
    issues = deduplicate_issues(kept + generate_automatic_issues(data))

    aeo_readiness = raw_analysis.get("aeoReadiness")
    if not isinstance(aeo_readiness, dict):
        aeo_readiness = {"score": scores.aeo, "status": score_status(scores.aeo)}

    analysis = {
        "strengths": _first_items(raw_analysis.get("strengths")),
        "recommendations": _first_items(raw_analysis.get("recommendations")),
        "aeo_readiness": aeo_readiness,
        "content_quality": raw_analysis.get("contentQuality") or {},
        "status": score_status(scores.overall),
    }

    try:
        return PageAnalysis(
            score=scores.overall,
            scores=scores,
            issues=issues,
            analysis=analysis,
            tokens_used=tokens_used,
            cost=cost,
        )
    except ValidationError as e:
        raise AnalyzerError(f"Malformed AI response: {e}") from e


class PageAnalyzer:
    """Scores one extracted page with the LLM."""

    def __init__(
        self,
        llm: LLMClient,
        config: AuditConfig,
        input_cost_per_mtok: float | None = None,
        output_cost_per_mtok: float | None = None,
    ):
        self.llm = llm
        self.config = config
        self.input_cost_per_mtok = (
            settings.LLM_INPUT_COST_PER_MTOK if input_cost_per_mtok is None else input_cost_per_mtok
        )
        self.output_cost_per_mtok = (
            settings.LLM_OUTPUT_COST_PER_MTOK if output_cost_per_mtok is None else output_cost_per_mtok
        )

    async def analyze(
        self,
        page: ExtractedPage,
        broken_links: int = 0,
        response_time_ms: int | None = None,
    ) -> PageAnalysis:
        data = prepare_analysis_input(page, broken_links, response_time_ms)
        messages = [
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=build_page_analysis_prompt(data)),
        ]

        try:
            response = await asyncio.wait_for(
                self.llm.chat(messages, temperature=0.3, json_mode=True),
                timeout=self.config.ai_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise AnalyzerError(f"AI analysis timed out after {self.config.ai_timeout_ms}ms")
        except httpx.HTTPError as e:
            raise AnalyzerError(f"AI request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AnalyzerError(f"Unexpected AI response shape: {e}") from e

        try:
            payload = extract_json(response.content)
        except ValueError as e:
            raise AnalyzerError(f"Could not parse AI response: {e}") from e

        cost = (
            response.input_tokens / 1_000_000 * self.input_cost_per_mtok
            + response.output_tokens / 1_000_000 * self.output_cost_per_mtok
        )
        analysis = build_page_analysis(
            payload,
            data,
            tokens_used=response.input_tokens + response.output_tokens,
            cost=cost,
        )
        logger.debug(f"Analyzed {page.url}: score {analysis.score}, {len(analysis.issues)} issues")
        return analysis
