"""Content extraction: URL classification, page fetch and strategy selection.

Public API:
    classify_url(url, client) -> UrlKind
        Website or direct asset, from the URL shape or a HEAD probe.
    fetch_html_document(client, url, timeout_seconds, on_progress) -> FetchedDocument
        Streaming, timeout-bounded GET reporting the post-redirect URL.
    apply_content_budget(text, max_characters) -> ContentBudgetResult
        Sentence-aware truncation used for every result.
"""

from link_preview.extraction.cleaner import apply_content_budget, normalize_for_prompt
from link_preview.extraction.fetcher import FetchedDocument, fetch_html_document
from link_preview.extraction.router import UrlKind, classify_url

__all__ = [
    "apply_content_budget",
    "normalize_for_prompt",
    "classify_url",
    "UrlKind",
    "fetch_html_document",
    "FetchedDocument",
]
