"""Article text extraction: allow-list sanitizing, segment collection, readability.

Direct extraction sanitizes the page with BeautifulSoup and collects text
from heading, paragraph, list, blockquote and code elements. Readability
extraction runs trafilatura and is preferred by the strategy selector when
it yields substantially more text.
"""

import asyncio
import html as html_lib
import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Comment, Doctype
from trafilatura import bare_extraction

from link_preview.extraction.cleaner import normalize_for_prompt

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({
    "article", "section", "div", "p",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ol", "ul", "li", "blockquote", "pre", "code",
    "span", "strong", "em", "br",
})
# Elements removed together with their text
NON_TEXT_TAGS = (
    "style", "script", "noscript", "template", "svg",
    "canvas", "iframe", "object", "embed",
)
SEGMENT_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "li", "p", "blockquote", "pre")

MIN_HEADING_LENGTH = 10
MIN_LIST_ITEM_LENGTH = 20
MIN_SEGMENT_LENGTH = 30
LIST_ITEM_PREFIX = "• "


@dataclass(frozen=True)
class ReadabilityResult:
    text: str
    html: str | None
    title: str | None
    excerpt: str | None


def _sanitized_soup(html: str, allow_links: bool = False) -> BeautifulSoup:
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(("head", "title", *NON_TEXT_TAGS)):
        tag.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, (Comment, Doctype))):
        node.extract()

    allowed = ALLOWED_TAGS | {"a"} if allow_links else ALLOWED_TAGS
    for tag in soup.find_all(True):
        if tag.name not in allowed:
            tag.unwrap()
        elif tag.name == "a" and tag.get("href"):
            tag.attrs = {"href": tag["href"]}
        else:
            tag.attrs = {}
    return soup


def sanitize_html(html: str, allow_links: bool = False) -> str:
    """Reduce ``html`` to the text-bearing allow-list with no attributes.

    With ``allow_links`` the output also keeps ``<a href>``, which is the
    form handed to the markdown converter.
    """
    return str(_sanitized_soup(html, allow_links=allow_links))


def sanitize_html_for_markdown(html: str) -> str:
    return sanitize_html(html, allow_links=True)


def extract_plain_text(html: str) -> str:
    """All visible text with script/style-like elements removed."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(NON_TEXT_TAGS):
        tag.decompose()
    return soup.get_text()


def collect_segments(html: str) -> list[str]:
    """Collect readable text segments in document order.

    Headings shorter than 10 characters and list items shorter than 20 are
    dropped; list items get a bullet prefix; other segments shorter than 30
    characters are dropped. When nothing survives the sanitized body text
    is returned as a single segment.
    """
    soup = _sanitized_soup(html)
    segments: list[str] = []
    for element in soup.find_all(SEGMENT_TAGS):
        text = normalize_for_prompt(element.get_text()).replace("\n", " ")
        if not text:
            continue
        tag = element.name
        if tag.startswith("h"):
            if len(text) >= MIN_HEADING_LENGTH:
                segments.append(text)
        elif tag == "li":
            if len(text) >= MIN_LIST_ITEM_LENGTH:
                segments.append(f"{LIST_ITEM_PREFIX}{text}")
        elif len(text) >= MIN_SEGMENT_LENGTH:
            segments.append(text)

    if not segments:
        fallback = normalize_for_prompt(soup.get_text())
        return [fallback] if fallback else []
    return segments


def extract_article_content(html: str) -> str:
    return "\n".join(collect_segments(html))


def to_readability_html(result: ReadabilityResult | None) -> str | None:
    if result is None:
        return None
    if result.html:
        return result.html
    if not result.text:
        return None
    return f"<article><p>{html_lib.escape(result.text)}</p></article>"


def _run_readability(html: str, url: str | None) -> ReadabilityResult | None:
    doc = bare_extraction(html, url=url)
    if doc is None or not doc.text:
        return None
    paragraphs = [line.strip() for line in doc.text.splitlines() if line.strip()]
    article_html = "<article>" + "".join(
        f"<p>{html_lib.escape(paragraph)}</p>" for paragraph in paragraphs
    ) + "</article>"
    return ReadabilityResult(
        text=" ".join(doc.text.split()),
        html=article_html if paragraphs else None,
        title=doc.title or None,
        excerpt=doc.description or None,
    )


async def extract_readability(html: str, url: str | None = None) -> ReadabilityResult | None:
    """Main-content extraction via trafilatura, or None if nothing was found.

    trafilatura is synchronous and runs in a worker thread.
    """
    try:
        return await asyncio.to_thread(_run_readability, html, url)
    except Exception:
        logger.debug("Readability extraction failed for %s", url, exc_info=True)
        return None
