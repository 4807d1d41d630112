"""
Run-level aggregation: issue counts by severity and mean page scores.
"""
from dataclasses import asdict, dataclass
from typing import Iterable

from siteaudit.schemas.analysis import SEVERITY_WEIGHTS, IssueSeverity


@dataclass
class RunSummary:
    total_pages: int = 0
    pages_analyzed: int = 0
    pages_failed: int = 0
    pages_pending: int = 0
    critical_issues: int = 0
    warning_issues: int = 0
    info_issues: int = 0
    health_score: int | None = None
    overall_score: float | None = None
    seo_score: float | None = None
    aeo_score: float | None = None
    content_score: float | None = None
    technical_score: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def count_issues_by_severity(issues: Iterable[dict]) -> dict[str, int]:
    counts = {severity.value: 0 for severity in IssueSeverity}
    for issue in issues:
        severity = issue.get("severity")
        if severity in counts:
            counts[severity] += 1
    return counts


def calculate_health_score(counts: dict[str, int]) -> int:
    """100 minus the severity-weighted issue penalty, floored at 0."""
    penalty = sum(
        SEVERITY_WEIGHTS[severity] * counts.get(severity.value, 0)
        for severity in IssueSeverity
    )
    return max(0, 100 - penalty)


def score_band(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "needs-improvement"
    return "poor"


def _mean(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round(sum(present) / len(present), 1)


def summarize_run(status_counts: dict[str, int], analyses: list[dict]) -> RunSummary:
    """Build the run summary.

    ``status_counts`` maps page status values to counts for the whole run;
    ``analyses`` are the stored analyses of its ANALYZED pages, each with
    ``issues`` and the per-dimension ``*_score`` keys.
    """
    all_issues = [issue for analysis in analyses for issue in (analysis.get("issues") or [])]
    counts = count_issues_by_severity(all_issues)
    per_page_health = [
        calculate_health_score(count_issues_by_severity(analysis.get("issues") or []))
        for analysis in analyses
    ]
    health = _mean(per_page_health)

    return RunSummary(
        total_pages=sum(status_counts.values()),
        pages_analyzed=status_counts.get("analyzed", 0),
        pages_failed=status_counts.get("failed", 0),
        pages_pending=status_counts.get("pending", 0),
        critical_issues=counts[IssueSeverity.CRITICAL.value],
        warning_issues=counts[IssueSeverity.WARNING.value],
        info_issues=counts[IssueSeverity.INFO.value],
        health_score=round(health) if health is not None else None,
        overall_score=_mean([a.get("overall_score") for a in analyses]),
        seo_score=_mean([a.get("seo_score") for a in analyses]),
        aeo_score=_mean([a.get("aeo_score") for a in analyses]),
        content_score=_mean([a.get("content_score") for a in analyses]),
        technical_score=_mean([a.get("technical_score") for a in analyses]),
    )
