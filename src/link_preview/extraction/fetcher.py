"""Streaming HTML fetch with progress events and content-type gating."""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from link_preview.errors import FetchFailed, FetchTimeout, UnsupportedContentType
from link_preview.models.progress import FetchHtmlDone, FetchHtmlProgress, FetchHtmlStart
from link_preview.progress import ProgressSink, emit_progress

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

_DOCUMENT_CONTENT_TYPES = (
    "text/html",
    "application/xhtml+xml",
    "application/xml",
    "text/xml",
    "application/rss+xml",
    "application/atom+xml",
)


@dataclass(frozen=True)
class FetchedDocument:
    url: str  # Final URL after redirects
    html: str
    status: int
    content_type: str | None
    downloaded_bytes: int


def is_document_content_type(content_type: str | None) -> bool:
    """Accept HTML, XHTML, XML feeds and any ``text/*``. A missing header is accepted."""
    if not content_type:
        return True
    lowered = content_type.lower()
    return lowered.startswith("text/") or any(t in lowered for t in _DOCUMENT_CONTENT_TYPES)


def parse_content_length(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


async def fetch_html_document(
    client: httpx.AsyncClient,
    url: str,
    timeout_seconds: float,
    on_progress: ProgressSink | None = None,
) -> FetchedDocument:
    """GET ``url`` and return the decoded body and the post-redirect URL.

    Emits ``fetch-html-start``, one ``fetch-html-progress`` per received
    chunk (cumulative bytes) and ``fetch-html-done``.

    Raises:
        FetchTimeout: The whole fetch exceeded ``timeout_seconds``.
        FetchFailed: Non-2xx status or transport error.
        UnsupportedContentType: The response is not an HTML/XML/text document.
    """
    emit_progress(on_progress, FetchHtmlStart(url=url))
    try:
        async with asyncio.timeout(timeout_seconds):
            async with client.stream(
                "GET", url, headers=REQUEST_HEADERS, follow_redirects=True
            ) as response:
                final_url = str(response.url)
                if not response.is_success:
                    raise FetchFailed(final_url, status=response.status_code)

                content_type = response.headers.get("content-type")
                if not is_document_content_type(content_type):
                    raise UnsupportedContentType(final_url, content_type, response.status_code)

                total_bytes = parse_content_length(response.headers.get("content-length"))
                chunks: list[bytes] = []
                downloaded = 0
                async for chunk in response.aiter_bytes():
                    if not chunk:
                        continue
                    chunks.append(chunk)
                    downloaded += len(chunk)
                    emit_progress(
                        on_progress,
                        FetchHtmlProgress(url=url, downloaded_bytes=downloaded, total_bytes=total_bytes),
                    )
                encoding = response.charset_encoding or "utf-8"
    except TimeoutError as exc:
        raise FetchTimeout(url, timeout_seconds) from exc
    except httpx.TimeoutException as exc:
        raise FetchTimeout(url, timeout_seconds) from exc
    except httpx.HTTPError as exc:
        raise FetchFailed(url, reason=str(exc) or type(exc).__name__) from exc

    try:
        html = b"".join(chunks).decode(encoding, errors="replace")
    except LookupError:
        html = b"".join(chunks).decode("utf-8", errors="replace")

    emit_progress(
        on_progress, FetchHtmlDone(url=url, downloaded_bytes=downloaded, total_bytes=total_bytes)
    )
    logger.debug("Fetched %s -> %s (%d bytes)", url, final_url, downloaded)
    return FetchedDocument(
        url=final_url,
        html=html,
        status=response.status_code,
        content_type=content_type,
        downloaded_bytes=downloaded,
    )
