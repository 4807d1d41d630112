"""
HTML to structured page data.

Parses raw HTML with BeautifulSoup and produces the metadata, links,
images and JSON-LD blocks the analyzer and the page records are built
from, plus a plain-text body and a markdown rendering of the main content.
"""
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, NavigableString, Tag

from siteaudit.core.errors import ExtractionError
from siteaudit.services.urls import is_same_site, url_path

logger = logging.getLogger(__name__)

SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")
NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]
CHROME_TAGS = ["nav", "header", "footer", "aside", "form"]


@dataclass
class ImageInfo:
    src: str
    alt: str | None = None
    width: int | None = None
    height: int | None = None
    loading: str | None = None


@dataclass
class LinkInfo:
    href: str
    text: str = ""
    is_internal: bool = True
    is_nofollow: bool = False


@dataclass
class StructuredDataItem:
    type: str
    data: dict | list


@dataclass
class PageMetadata:
    title: str | None = None
    description: str | None = None
    h1: str | None = None
    h1_count: int = 0
    h2s: list[str] = field(default_factory=list)
    canonical_url: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    robots: str | None = None
    viewport: str | None = None
    charset: str | None = None
    language: str | None = None
    structured_data: list[StructuredDataItem] = field(default_factory=list)
    word_count: int = 0
    images: list[ImageInfo] = field(default_factory=list)
    links: list[LinkInfo] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ExtractedPage:
    url: str
    path: str
    metadata: PageMetadata
    text_content: str = ""
    markdown_content: str = ""


def _meta_content(soup: BeautifulSoup, **attrs) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def _int_attr(value) -> int | None:
    if value is None:
        return None
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def _structured_data(soup: BeautifulSoup) -> list[StructuredDataItem]:
    items = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        blocks = data if isinstance(data, list) else [data]
        for block in blocks:
            if not isinstance(block, dict):
                continue
            block_type = block.get("@type") or "Unknown"
            if isinstance(block_type, list):
                block_type = ",".join(str(t) for t in block_type)
            items.append(StructuredDataItem(type=str(block_type), data=block))
    return items


def _links(soup: BeautifulSoup, page_url: str) -> list[LinkInfo]:
    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            continue
        try:
            full_url = urljoin(page_url, href)
            if urlparse(full_url).scheme not in ("http", "https"):
                continue
            is_internal = is_same_site(full_url, page_url)
        except ValueError:
            logger.debug(f"Skipping unparseable link {href!r} on {page_url}")
            continue
        rel = a.get("rel") or []
        links.append(LinkInfo(
            href=full_url,
            text=a.get_text(" ", strip=True)[:100],
            is_internal=is_internal,
            is_nofollow="nofollow" in [r.lower() for r in rel],
        ))
    return links


def _images(soup: BeautifulSoup, page_url: str) -> list[ImageInfo]:
    images = []
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or ""
        if not src:
            continue
        try:
            full_src = urljoin(page_url, src.strip())
        except ValueError:
            logger.debug(f"Skipping unparseable image src {src!r} on {page_url}")
            continue
        alt = img.get("alt")
        images.append(ImageInfo(
            src=full_src,
            alt=alt.strip() if alt and alt.strip() else None,
            width=_int_attr(img.get("width")),
            height=_int_attr(img.get("height")),
            loading=(img.get("loading") or None),
        ))
    return images


def _charset(soup: BeautifulSoup) -> str | None:
    tag = soup.find("meta", charset=True)
    if tag is not None:
        return tag["charset"].strip() or None
    content_type = _meta_content(soup, **{"http-equiv": re.compile("^content-type$", re.I)})
    if content_type:
        match = re.search(r"charset=([^\s;]+)", content_type, re.I)
        if match:
            return match.group(1)
    return None


def _main_content(soup: BeautifulSoup) -> Tag | None:
    for candidate in (
        soup.find("article"),
        soup.find("main"),
        soup.find(id="content"),
        soup.find("div", class_=re.compile(r"content|post|entry")),
        soup.body,
    ):
        if candidate is not None:
            return candidate
    return None


def _inline_markdown(node) -> str:
    if isinstance(node, NavigableString):
        return str(node)
    if not isinstance(node, Tag):
        return ""
    inner = "".join(_inline_markdown(child) for child in node.children)
    if node.name in ("strong", "b") and inner.strip():
        return f"**{inner.strip()}**"
    if node.name in ("em", "i") and inner.strip():
        return f"*{inner.strip()}*"
    if node.name == "a":
        href = node.get("href", "")
        text = inner.strip()
        if text and href and not href.lower().startswith("javascript:"):
            return f"[{text}]({href})"
        return text
    if node.name == "br":
        return "\n"
    return inner


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def render_markdown(container: Tag | None) -> str:
    """Render headings, paragraphs, lists and quotes of a content node as markdown."""
    if container is None:
        return ""
    blocks: list[str] = []
    for node in container.find_all(
        ["h1", "h2", "h3", "h4", "p", "ul", "ol", "blockquote", "pre"]
    ):
        # Nested blocks are rendered by their outermost block ancestor
        if node.find_parent(["p", "ul", "ol", "blockquote", "pre"]) is not None:
            continue
        if node.name in ("h1", "h2", "h3", "h4"):
            text = _clean(node.get_text(" "))
            if text:
                blocks.append(f"{'#' * int(node.name[1])} {text}")
        elif node.name in ("ul", "ol"):
            items = []
            for index, li in enumerate(node.find_all("li", recursive=False), start=1):
                text = _clean(_inline_markdown(li))
                if text:
                    marker = f"{index}." if node.name == "ol" else "-"
                    items.append(f"{marker} {text}")
            if items:
                blocks.append("\n".join(items))
        elif node.name == "blockquote":
            text = _clean(node.get_text(" "))
            if text:
                blocks.append(f"> {text}")
        elif node.name == "pre":
            text = node.get_text().strip("\n")
            if text:
                blocks.append(f"```\n{text}\n```")
        else:
            text = _clean(_inline_markdown(node))
            if text:
                blocks.append(text)
    return "\n\n".join(blocks)


def extract_page_data(html: str, url: str) -> ExtractedPage:
    """Convert raw HTML into structured page data.

    Raises ExtractionError when the document cannot be parsed at all.
    """
    if not html or not html.strip():
        raise ExtractionError("Empty HTML document")
    try:
        soup = BeautifulSoup(html, "lxml")
    except Exception as e:
        raise ExtractionError(f"Could not parse HTML: {e}") from e
    if soup.find() is None:
        raise ExtractionError("HTML document has no elements")

    try:
        return _build_page(soup, url)
    except ExtractionError:
        raise
    except Exception as e:
        logger.exception(f"Extraction failed for {url}")
        raise ExtractionError(f"Could not extract page data: {e}") from e


def _build_page(soup: BeautifulSoup, url: str) -> ExtractedPage:
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    h1_tags = [h.get_text(" ", strip=True) for h in soup.find_all("h1")]
    h1_tags = [h for h in h1_tags if h]
    h2_tags = [h.get_text(" ", strip=True) for h in soup.find_all("h2")][:20]

    canonical = None
    for link in soup.find_all("link", href=True):
        if "canonical" in [r.lower() for r in (link.get("rel") or [])]:
            canonical = link["href"].strip() or None
            break

    html_tag = soup.find("html")
    language = (html_tag.get("lang") if html_tag else None) or _meta_content(soup, name="language")

    # Structured data and links are read before script and chrome tags are stripped
    structured_data = _structured_data(soup)
    links = _links(soup, url)
    images = _images(soup, url)

    metadata = PageMetadata(
        title=title or None,
        description=_meta_content(soup, name="description"),
        h1=h1_tags[0] if h1_tags else None,
        h1_count=len(h1_tags),
        h2s=[h for h in h2_tags if h],
        canonical_url=canonical,
        og_title=_meta_content(soup, property="og:title"),
        og_description=_meta_content(soup, property="og:description"),
        og_image=_meta_content(soup, property="og:image"),
        robots=_meta_content(soup, name="robots"),
        viewport=_meta_content(soup, name="viewport"),
        charset=_charset(soup),
        language=language or None,
        structured_data=structured_data,
        images=images,
        links=links,
    )

    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()
    text_content = _clean(soup.get_text(" "))
    metadata.word_count = len(text_content.split())

    for tag in soup.find_all(CHROME_TAGS):
        tag.decompose()
    markdown_content = render_markdown(_main_content(soup))

    return ExtractedPage(
        url=url,
        path=url_path(url),
        metadata=metadata,
        text_content=text_content,
        markdown_content=markdown_content,
    )
