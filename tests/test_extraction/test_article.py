"""Tests for direct segment extraction and readability (trafilatura mocked)."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from link_preview.extraction.article import (
    collect_segments,
    extract_article_content,
    extract_plain_text,
    extract_readability,
    sanitize_html_for_markdown,
    to_readability_html,
)

PARAGRAPH = "This paragraph is long enough to survive segment filtering. " * 4


def test_heading_and_paragraph_collected():
    html = f"<html><body><h1>Hello world heading</h1><p>{PARAGRAPH}</p></body></html>"
    segments = collect_segments(html)
    assert segments[0] == "Hello world heading"
    assert segments[1] == PARAGRAPH.strip()


def test_short_heading_and_list_item_dropped():
    """A heading of 8 characters and a list item of 15 are below their minimums."""
    html = (
        "<h2>Eight ch</h2>"
        "<ul><li>Fifteen chars..</li><li>This list item is long enough</li></ul>"
        f"<p>{PARAGRAPH}</p>"
    )
    segments = collect_segments(html)
    assert "Eight ch" not in segments
    assert not any("Fifteen chars" in s for s in segments)
    assert "• This list item is long enough" in segments


def test_short_paragraph_dropped():
    html = f"<p>Too short.</p><p>{PARAGRAPH}</p>"
    assert collect_segments(html) == [PARAGRAPH.strip()]


def test_no_segments_falls_back_to_body_text():
    html = "<html><body><div>Just a tiny page</div></body></html>"
    assert extract_article_content(html) == "Just a tiny page"


def test_body_fallback_ignores_title():
    html = "<html><head><title>PageTitle</title></head><body><p>short</p></body></html>"
    assert extract_article_content(html) == "short"
    assert "PageTitle" not in sanitize_html_for_markdown(html)


def test_scripts_and_styles_removed():
    html = f"<script>var x = 'secret';</script><style>p {{}}</style><p>{PARAGRAPH}</p>"
    content = extract_article_content(html)
    assert "secret" not in content
    assert "secret" not in extract_plain_text(html)


def test_sanitize_for_markdown_keeps_links_only_href():
    html = '<div class="x"><a href="/a" onclick="evil()">link</a><img src="i.png"></div>'
    sanitized = sanitize_html_for_markdown(html)
    assert '<a href="/a">link</a>' in sanitized
    assert "onclick" not in sanitized
    assert "img" not in sanitized
    assert 'class="x"' not in sanitized


def test_to_readability_html_escapes_text():
    result = SimpleNamespace(html=None, text="a < b")
    assert to_readability_html(result) == "<article><p>a &lt; b</p></article>"
    assert to_readability_html(None) is None


@pytest.mark.asyncio
async def test_extract_readability_maps_trafilatura_fields():
    """bare_extraction output becomes a ReadabilityResult with paragraph HTML."""
    fake_doc = SimpleNamespace(
        text="First paragraph.\nSecond paragraph.",
        title="Article",
        description="Summary",
    )
    with patch("link_preview.extraction.article.bare_extraction", return_value=fake_doc):
        result = await extract_readability("<html></html>", "https://example.com")

    assert result.text == "First paragraph. Second paragraph."
    assert result.html == "<article><p>First paragraph.</p><p>Second paragraph.</p></article>"
    assert result.title == "Article"
    assert result.excerpt == "Summary"


@pytest.mark.asyncio
async def test_extract_readability_none_when_empty():
    with patch("link_preview.extraction.article.bare_extraction", return_value=None):
        assert await extract_readability("<html></html>") is None


@pytest.mark.asyncio
async def test_extract_readability_swallows_errors():
    with patch("link_preview.extraction.article.bare_extraction", side_effect=ValueError("bad")):
        assert await extract_readability("<html></html>") is None
