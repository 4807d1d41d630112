"""
Prompt templates for AI page analysis.
"""
from dataclasses import dataclass, field

SYSTEM_PROMPT = (
    "You are an expert SEO/AEO (Answer Engine Optimization) auditor. "
    "You respond with a single valid JSON object and nothing else."
)

ISSUE_TYPES_HINT = (
    "missing_title|missing_description|missing_h1|multiple_h1|missing_alt_text|"
    "broken_link|missing_canonical|missing_og_tags|missing_structured_data|"
    "duplicate_content|thin_content|slow_loading|mobile_unfriendly|missing_viewport|"
    "blocked_by_robots|redirect_chain|mixed_content|missing_lang|other"
)

CONTENT_PREVIEW_CHARS = 500


@dataclass
class PageAnalysisInput:
    """Facts about a page that the prompt and the issue filters rely on."""

    url: str
    path: str
    title: str | None
    description: str | None
    h1: str | None
    h1_count: int = 0
    h2s: list[str] = field(default_factory=list)
    text_content: str = ""
    word_count: int = 0
    has_structured_data: bool = False
    structured_data_types: list[str] = field(default_factory=list)
    has_og_tags: bool = False
    has_canonical: bool = False
    has_viewport: bool = False
    language: str | None = None
    images_without_alt: int = 0
    total_images: int = 0
    internal_links: int = 0
    external_links: int = 0
    broken_links: int = 0
    response_time_ms: int | None = None


RESPONSE_SCHEMA = """{
  "scores": {
    "overall": 0-100,
    "seo": 0-100,
    "aeo": 0-100,
    "content": 0-100,
    "technical": 0-100
  },
  "analysis": {
    "strengths": [{"title": "string", "description": "string", "impact": "high|medium|low"}],
    "recommendations": [{"title": "string", "description": "string", "impact": "high|medium|low"}],
    "aeoReadiness": {
      "score": 0-100,
      "status": "excellent|good|needs-improvement|poor",
      "factors": {"structuredData": 0-100, "contentClarity": 0-100, "answerability": 0-100, "semanticMarkup": 0-100}
    },
    "contentQuality": {
      "readabilityScore": 0-100,
      "uniquenessIndicator": "high|medium|low",
      "topicRelevance": 0-100,
      "keywordOptimization": 0-100
    }
  },
  "issues": [
    {
      "type": "%s",
      "severity": "critical|warning|info",
      "message": "string",
      "fix": "string",
      "element": "optional CSS selector"
    }
  ]
}""" % ISSUE_TYPES_HINT


SCORING_GUIDELINES = """## Scoring Guidelines

Overall: SEO 30%, AEO 30%, Content 25%, Technical 15%.
SEO: title, meta description, H1, heading hierarchy, internal linking, images, URL structure, canonical, mobile friendliness.
AEO: structured data, content clarity and answerability, semantic HTML, FAQ/how-to patterns, entity readiness.
Content: word count, depth, readability, topic relevance.
Technical: meta tag completeness, structured data validity, link health, performance indicators.

## Severity Guidelines

critical: missing title, missing H1, blocked by robots, broken internal links.
warning: missing meta description, images without alt text, missing canonical, thin content (< 300 words).
info: missing Open Graph tags, missing structured data, suboptimal heading structure."""


def build_page_analysis_prompt(data: PageAnalysisInput) -> str:
    """Render the user prompt for one page."""
    if data.has_structured_data:
        structured = f"Has structured data ({', '.join(data.structured_data_types)})"
    else:
        structured = "No structured data found"
    h2s = ", ".join(data.h2s[:5]) if data.h2s else "None found"
    preview = data.text_content[:CONTENT_PREVIEW_CHARS]

    return f"""Analyze this web page and provide a detailed SEO/AEO assessment.

## Page Information

**URL**: {data.url}
**Path**: {data.path}
**Title**: {data.title or 'MISSING'}
**Meta Description**: {data.description or 'MISSING'}
**H1**: {data.h1 or 'MISSING'}
**H2 Tags**: {h2s}
**Word Count**: {data.word_count}
**Images**: {data.total_images} total, {data.images_without_alt} missing alt text
**Links**: {data.internal_links} internal, {data.external_links} external, {data.broken_links} broken
**Structured Data**: {structured}
**Open Graph**: {'Has Open Graph tags' if data.has_og_tags else 'Missing Open Graph tags'}
**Canonical**: {'Has canonical URL' if data.has_canonical else 'Missing canonical URL'}

## Content Preview (first {CONTENT_PREVIEW_CHARS} chars)
{preview}

## Response Format

Return JSON with this structure:

{RESPONSE_SCHEMA}

{SCORING_GUIDELINES}

Provide 2-4 strengths, 2-5 issues and 2-4 recommendations based on the page's actual content."""
