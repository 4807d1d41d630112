"""
Unit tests for HTML extraction.
"""
import pytest

from siteaudit.core.errors import ExtractionError
from siteaudit.services.extractor import extract_page_data
from tests.fixtures.sample_pages import (
    PERFECT_PAGE_HTML,
    POOR_SEO_PAGE_HTML,
    PRODUCT_PAGE_HTML,
)

URL = "https://example.com/perfect-page"


class TestExtractMetadata:
    """Test metadata extraction from a complete page."""

    def test_head_metadata(self):
        meta = extract_page_data(PERFECT_PAGE_HTML, URL).metadata

        assert meta.title == "Perfect SEO Page - Complete with All Elements"
        assert meta.description.startswith("This is a perfectly optimized")
        assert meta.canonical_url == "https://example.com/perfect-page"
        assert meta.og_title == "Perfect SEO Page"
        assert meta.og_description == "Optimized for social sharing"
        assert meta.og_image == "https://example.com/og-image.jpg"
        assert meta.robots == "index, follow"
        assert meta.viewport.startswith("width=device-width")
        assert meta.charset == "UTF-8"
        assert meta.language == "en"

    def test_headings(self):
        meta = extract_page_data(PERFECT_PAGE_HTML, URL).metadata

        assert meta.h1 == "Perfect SEO Page Title"
        assert meta.h1_count == 1
        assert meta.h2s == ["Section One - Important Topic", "Section Two - Another Key Topic"]

    def test_structured_data(self):
        meta = extract_page_data(PERFECT_PAGE_HTML, URL).metadata

        assert [item.type for item in meta.structured_data] == ["WebPage"]

    def test_structured_data_list_and_invalid_blocks(self):
        """JSON-LD arrays yield one item per block; invalid JSON is skipped."""
        meta = extract_page_data(PRODUCT_PAGE_HTML, "https://example.com/p").metadata

        assert [item.type for item in meta.structured_data] == ["Product", "BreadcrumbList"]
        assert meta.h1_count == 2

    def test_links(self):
        meta = extract_page_data(PERFECT_PAGE_HTML, URL).metadata
        by_href = {link.href: link for link in meta.links}

        assert by_href["https://example.com/about"].is_internal is True
        assert by_href["https://example.com/guide"].text == "related guides"
        partner = by_href["https://partner.example.org/"]
        assert partner.is_internal is False
        assert partner.is_nofollow is True

    def test_images(self):
        meta = extract_page_data(PERFECT_PAGE_HTML, URL).metadata

        assert len(meta.images) == 1
        image = meta.images[0]
        assert image.src == "https://example.com/images/relevant-image.webp"
        assert image.alt == "Descriptive alt text"
        assert (image.width, image.height) == (800, 600)
        assert image.loading == "lazy"

    def test_word_count_excludes_scripts(self):
        page = extract_page_data(PERFECT_PAGE_HTML, URL)

        assert page.metadata.word_count > 20
        assert "schema.org" not in page.text_content


class TestExtractPoorPage:
    """Test extraction of a page missing most elements."""

    def test_missing_elements_are_none(self):
        meta = extract_page_data(POOR_SEO_PAGE_HTML, "https://example.com/poor").metadata

        assert meta.title is None
        assert meta.description is None
        assert meta.h1 is None
        assert meta.canonical_url is None
        assert meta.language is None
        assert meta.viewport is None
        assert meta.structured_data == []

    def test_image_without_alt(self):
        meta = extract_page_data(POOR_SEO_PAGE_HTML, "https://example.com/poor").metadata

        assert meta.images[0].alt is None
        assert meta.images[0].width is None

    def test_empty_anchor_link(self):
        meta = extract_page_data(POOR_SEO_PAGE_HTML, "https://example.com/poor").metadata

        assert meta.links[0].text == ""
        assert meta.links[0].is_internal is False

    def test_skips_non_http_links(self):
        html = '<html><body><a href="mailto:a@b.c">Mail</a><a href="#top">Top</a><a href="/x">X</a></body></html>'
        meta = extract_page_data(html, "https://example.com/").metadata

        assert [link.href for link in meta.links] == ["https://example.com/x"]

    def test_skips_unparseable_urls(self):
        """A malformed href or src is dropped instead of failing the page."""
        html = (
            '<html><body><a href="http://[bad">Bad</a><a href="/ok">OK</a>'
            '<img src="http://[bad/logo.png" alt="Logo"></body></html>'
        )
        meta = extract_page_data(html, "https://example.com/").metadata

        assert [link.href for link in meta.links] == ["https://example.com/ok"]
        assert meta.images == []


class TestMarkdown:
    """Test markdown rendering of the main content."""

    def test_renders_main_content(self):
        markdown = extract_page_data(PERFECT_PAGE_HTML, URL).markdown_content

        assert "# Perfect SEO Page Title" in markdown
        assert "## Section One - Important Topic" in markdown
        assert "**main content**" in markdown
        assert "[related guides](/guide)" in markdown
        assert "- First point" in markdown
        assert "- Second *point*" in markdown

    def test_excludes_navigation_and_footer(self):
        markdown = extract_page_data(PERFECT_PAGE_HTML, URL).markdown_content

        assert "About Us" not in markdown
        assert "All rights reserved" not in markdown


class TestExtractionErrors:
    """Test extraction failures."""

    def test_empty_document(self):
        with pytest.raises(ExtractionError):
            extract_page_data("", URL)

    def test_whitespace_document(self):
        with pytest.raises(ExtractionError):
            extract_page_data("   \n ", URL)
