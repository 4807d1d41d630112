"""
Unit tests for the AI page analyzer.

Tests:
- Score clamping and defaults
- Automatic issue generation from page facts
- Dropping AI issues that contradict extracted data
- Deduplication and malformed replies
- Timeout and provider failures
"""
import asyncio
import json

import httpx
import pytest

from siteaudit.core.errors import AnalyzerError
from siteaudit.schemas.analysis import IssueSeverity, IssueType, PageIssue
from siteaudit.services.analyzer import (
    PageAnalyzer,
    build_page_analysis,
    clamp_score,
    contradicts_facts,
    deduplicate_issues,
    generate_automatic_issues,
    prepare_analysis_input,
    score_status,
)
from siteaudit.services.extractor import extract_page_data
from siteaudit.services.prompts import PageAnalysisInput, build_page_analysis_prompt
from tests.conftest import FakeLLM
from tests.fixtures.sample_pages import PERFECT_PAGE_HTML, POOR_SEO_PAGE_HTML, ai_reply


def complete_input(**overrides) -> PageAnalysisInput:
    values = dict(
        url="https://example.com/a",
        path="/a",
        title="A good title",
        description="A good description",
        h1="Heading",
        h1_count=1,
        word_count=800,
        has_structured_data=True,
        structured_data_types=["WebPage"],
        has_og_tags=True,
        has_canonical=True,
        has_viewport=True,
        language="en",
        total_images=2,
        images_without_alt=0,
    )
    values.update(overrides)
    return PageAnalysisInput(**values)


class TestScores:
    """Test score normalization."""

    @pytest.mark.parametrize("raw, expected", [
        (75, 75),
        (150, 100),
        (-10, 0),
        (72.6, 73),
        (None, 50),
        ("high", 50),
        (True, 50),
    ])
    def test_clamp_score(self, raw, expected):
        assert clamp_score(raw) == expected

    @pytest.mark.parametrize("score, status", [
        (95, "excellent"),
        (80, "excellent"),
        (60, "good"),
        (40, "needs-improvement"),
        (39, "poor"),
    ])
    def test_score_status(self, score, status):
        assert score_status(score) == status


class TestAutomaticIssues:
    """Test deterministic issues derived from page facts."""

    def test_complete_page_has_no_issues(self):
        assert generate_automatic_issues(complete_input()) == []

    def test_poor_page_issues(self):
        data = prepare_analysis_input(
            extract_page_data(POOR_SEO_PAGE_HTML, "https://example.com/poor")
        )

        types = {issue.type for issue in generate_automatic_issues(data)}

        assert {
            IssueType.MISSING_TITLE,
            IssueType.MISSING_DESCRIPTION,
            IssueType.MISSING_H1,
            IssueType.MISSING_ALT_TEXT,
            IssueType.MISSING_CANONICAL,
            IssueType.MISSING_OG_TAGS,
            IssueType.NO_STRUCTURED_DATA,
            IssueType.THIN_CONTENT,
            IssueType.MISSING_VIEWPORT,
            IssueType.MISSING_LANG,
        } <= types

    def test_missing_title_is_critical(self):
        issues = generate_automatic_issues(complete_input(title=None))

        assert issues[0].type == IssueType.MISSING_TITLE
        assert issues[0].severity == IssueSeverity.CRITICAL

    def test_slow_response_severity(self):
        warning = generate_automatic_issues(complete_input(response_time_ms=1000))
        critical = generate_automatic_issues(complete_input(response_time_ms=2500))

        assert warning[0].type == IssueType.SLOW_RESPONSE
        assert warning[0].severity == IssueSeverity.WARNING
        assert critical[0].severity == IssueSeverity.CRITICAL

    def test_fast_response_has_no_issue(self):
        assert generate_automatic_issues(complete_input(response_time_ms=300)) == []


class TestIssueFiltering:
    """Test contradiction checks and deduplication."""

    def test_alt_text_issue_dropped_when_all_images_have_alt(self):
        issue = PageIssue(
            type=IssueType.MISSING_ALT_TEXT,
            severity=IssueSeverity.WARNING,
            message="Images lack alt text",
        )

        assert contradicts_facts(issue, complete_input())

    def test_image_issue_dropped_when_page_has_no_images(self):
        issue = PageIssue(
            type=IssueType.OTHER,
            severity=IssueSeverity.INFO,
            message="Image alt attributes could be improved",
        )

        assert contradicts_facts(issue, complete_input(total_images=0))

    def test_broken_link_issue_dropped_without_broken_links(self):
        issue = PageIssue(type=IssueType.BROKEN_LINK, severity=IssueSeverity.CRITICAL, message="x")

        assert contradicts_facts(issue, complete_input(broken_links=0))
        assert not contradicts_facts(issue, complete_input(broken_links=2))

    def test_missing_title_dropped_when_title_present(self):
        issue = PageIssue(type=IssueType.MISSING_TITLE, severity=IssueSeverity.CRITICAL, message="x")

        assert contradicts_facts(issue, complete_input())
        assert not contradicts_facts(issue, complete_input(title=None))

    def test_deduplicate_by_type_and_message(self):
        first = PageIssue(type=IssueType.THIN_CONTENT, severity=IssueSeverity.WARNING, message="Thin")
        duplicate = PageIssue(type=IssueType.THIN_CONTENT, severity=IssueSeverity.INFO, message="Thin")
        other = PageIssue(type=IssueType.OTHER, severity=IssueSeverity.INFO, message="Thin")

        assert deduplicate_issues([first, duplicate, other]) == [first, other]


class TestBuildPageAnalysis:
    """Test parsing of the decoded AI reply."""

    def test_builds_analysis(self):
        analysis = build_page_analysis(ai_reply(overall=82), complete_input(), tokens_used=10, cost=0.5)

        assert analysis.score == 82
        assert analysis.scores.technical == 90
        assert analysis.tokens_used == 10
        assert analysis.cost == 0.5
        assert analysis.analysis["status"] == "excellent"
        assert analysis.analysis["aeo_readiness"] == {"score": 70, "status": "good"}
        assert len(analysis.analysis["strengths"]) == 1

    def test_out_of_range_and_missing_scores(self):
        payload = {"scores": {"overall": 140, "seo": -3}, "analysis": {}, "issues": []}

        analysis = build_page_analysis(payload, complete_input())

        assert analysis.score == 100
        assert analysis.scores.seo == 0
        assert analysis.scores.aeo == 50
        assert analysis.analysis["aeo_readiness"] == {"score": 50, "status": "needs-improvement"}

    def test_unknown_issue_type_maps_to_other(self):
        payload = ai_reply(issues=[
            {"type": "weird_thing", "severity": "SEVERE", "message": "Odd", "fix": "Fix it"},
        ])

        analysis = build_page_analysis(payload, complete_input())

        assert analysis.issues[0].type == IssueType.OTHER
        assert analysis.issues[0].severity == IssueSeverity.INFO

    def test_prompt_vocabulary_issue_types(self):
        payload = ai_reply(issues=[
            {"type": "missing_structured_data", "severity": "info", "message": "No schema"},
            {"type": "slow_loading", "severity": "warning", "message": "Slow"},
        ])

        analysis = build_page_analysis(payload, complete_input())

        assert [issue.type for issue in analysis.issues] == [
            IssueType.NO_STRUCTURED_DATA,
            IssueType.SLOW_RESPONSE,
        ]

    def test_contradicted_ai_issues_are_dropped_and_automatic_merged(self):
        payload = ai_reply(issues=[
            {"type": "missing_title", "severity": "critical", "message": "No title"},
        ])

        analysis = build_page_analysis(payload, complete_input(description=None))

        types = [issue.type for issue in analysis.issues]
        assert IssueType.MISSING_TITLE not in types
        assert IssueType.MISSING_DESCRIPTION in types

    def test_malformed_issues(self):
        with pytest.raises(AnalyzerError):
            build_page_analysis({"scores": {}, "issues": "none"}, complete_input())
        with pytest.raises(AnalyzerError):
            build_page_analysis({"scores": {}, "issues": ["just text"]}, complete_input())

    def test_malformed_scores(self):
        with pytest.raises(AnalyzerError):
            build_page_analysis({"scores": [1, 2, 3]}, complete_input())

    def test_issue_counts(self):
        analysis = build_page_analysis(ai_reply(), complete_input(title=None, language=None))

        assert analysis.issue_counts() == {"critical": 1, "warning": 0, "info": 1}


class TestPrompt:
    def test_prompt_contains_page_facts(self):
        prompt = build_page_analysis_prompt(complete_input(description=None))

        assert "**URL**: https://example.com/a" in prompt
        assert "**Meta Description**: MISSING" in prompt
        assert "Has structured data (WebPage)" in prompt


class TestPageAnalyzer:
    """Test the analyzer against a fake LLM."""

    @pytest.mark.asyncio
    async def test_analyze(self, audit_config):
        llm = FakeLLM()
        analyzer = PageAnalyzer(llm, audit_config, input_cost_per_mtok=1.0, output_cost_per_mtok=2.0)
        page = extract_page_data(PERFECT_PAGE_HTML, "https://example.com/perfect-page")

        analysis = await analyzer.analyze(page, response_time_ms=120)

        assert analysis.score == 80
        assert analysis.tokens_used == 1500
        assert analysis.cost == pytest.approx(0.001 + 0.001)
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_fenced_json_reply(self, audit_config):
        llm = FakeLLM(reply=f"Here you go:\n```json\n{json.dumps(ai_reply(overall=64))}\n```")
        analyzer = PageAnalyzer(llm, audit_config)
        page = extract_page_data(PERFECT_PAGE_HTML, "https://example.com/perfect-page")

        analysis = await analyzer.analyze(page)

        assert analysis.score == 64

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, audit_config):
        analyzer = PageAnalyzer(FakeLLM(reply="I cannot help with that."), audit_config)
        page = extract_page_data(PERFECT_PAGE_HTML, "https://example.com/perfect-page")

        with pytest.raises(AnalyzerError):
            await analyzer.analyze(page)

    @pytest.mark.asyncio
    async def test_provider_failure(self, audit_config):
        llm = FakeLLM()
        llm.fail_for.add("https://example.com/perfect-page")
        analyzer = PageAnalyzer(llm, audit_config)
        page = extract_page_data(PERFECT_PAGE_HTML, "https://example.com/perfect-page")

        with pytest.raises(AnalyzerError, match="AI request failed"):
            await analyzer.analyze(page)

    @pytest.mark.asyncio
    async def test_timeout(self, audit_config):
        class SlowLLM:
            async def chat(self, messages, **kwargs):
                await asyncio.sleep(5)

        audit_config.ai_timeout_ms = 20
        analyzer = PageAnalyzer(SlowLLM(), audit_config)
        page = extract_page_data(PERFECT_PAGE_HTML, "https://example.com/perfect-page")

        with pytest.raises(AnalyzerError, match="timed out"):
            await analyzer.analyze(page)
