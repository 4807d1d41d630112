"""
Issue taxonomy and the strict analysis types the AI reply is parsed into.
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


SEVERITY_WEIGHTS = {
    IssueSeverity.CRITICAL: 10,
    IssueSeverity.WARNING: 5,
    IssueSeverity.INFO: 1,
}


class IssueType(str, Enum):
    MISSING_TITLE = "missing_title"
    MISSING_DESCRIPTION = "missing_description"
    MISSING_H1 = "missing_h1"
    MULTIPLE_H1 = "multiple_h1"
    MISSING_ALT_TEXT = "missing_alt_text"
    BROKEN_LINK = "broken_link"
    MISSING_CANONICAL = "missing_canonical"
    MISSING_OG_TAGS = "missing_og_tags"
    NO_STRUCTURED_DATA = "missing_structured_data"
    DUPLICATE_CONTENT = "duplicate_content"
    THIN_CONTENT = "thin_content"
    SLOW_RESPONSE = "slow_loading"
    MOBILE_UNFRIENDLY = "mobile_unfriendly"
    MISSING_VIEWPORT = "missing_viewport"
    BLOCKED_BY_ROBOTS = "blocked_by_robots"
    REDIRECT_CHAIN = "redirect_chain"
    MIXED_CONTENT = "mixed_content"
    MISSING_LANG = "missing_lang"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "IssueType":
        """Map a loosely typed value to a known type; anything unknown is OTHER."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            pass
        try:
            return cls[key.upper()]
        except KeyError:
            return cls.OTHER


class PageIssue(BaseModel):
    """A single detected problem. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    type: IssueType
    severity: IssueSeverity
    message: str
    fix: str | None = None
    element: str | None = None

    @property
    def dedupe_key(self) -> str:
        return f"{self.type.value}:{self.message}"


class PageScores(BaseModel):
    overall: int = Field(ge=0, le=100)
    seo: int = Field(ge=0, le=100)
    aeo: int = Field(ge=0, le=100)
    content: int = Field(ge=0, le=100)
    technical: int = Field(ge=0, le=100)


class PageAnalysis(BaseModel):
    """The AI verdict for one page."""

    score: int = Field(ge=0, le=100)
    scores: PageScores
    issues: list[PageIssue] = Field(default_factory=list)
    analysis: dict = Field(default_factory=dict)
    tokens_used: int = 0
    cost: float = 0.0

    def issue_counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in IssueSeverity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts
