"""PDF download and text extraction using pypdf."""

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO

import httpx
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from link_preview.errors import FetchFailed, FetchTimeout, UnsupportedContentType

logger = logging.getLogger(__name__)

MAX_PDF_SIZE_BYTES = 20 * 1024 * 1024  # 20MB


@dataclass(frozen=True)
class PdfText:
    text: str | None
    title: str | None
    author: str | None
    page_count: int


def _too_large(url: str, size: int) -> FetchFailed:
    return FetchFailed(url, reason=f"PDF too large: {size} bytes (limit: {MAX_PDF_SIZE_BYTES})")


async def download_pdf(client: httpx.AsyncClient, url: str, timeout_seconds: float) -> bytes:
    """Download a PDF, enforcing the 20MB cap before and after the GET."""
    try:
        # Optimization: check Content-Length header first
        try:
            head_resp = await client.head(url, follow_redirects=True, timeout=timeout_seconds)
            content_length = int(head_resp.headers.get("content-length", "0"))
            if content_length > MAX_PDF_SIZE_BYTES:
                raise _too_large(url, content_length)
        except (httpx.HTTPError, ValueError):
            pass  # HEAD failed or no Content-Length -- proceed with GET

        response = await client.get(url, follow_redirects=True, timeout=timeout_seconds)
    except httpx.TimeoutException as exc:
        raise FetchTimeout(url, timeout_seconds) from exc
    except httpx.HTTPError as exc:
        raise FetchFailed(url, reason=str(exc)) from exc

    if response.status_code >= 400:
        raise FetchFailed(str(response.url), response.status_code)
    if len(response.content) > MAX_PDF_SIZE_BYTES:
        raise _too_large(url, len(response.content))
    return response.content


async def extract_pdf_text(data: bytes, source: str) -> PdfText:
    """Text and document metadata from PDF bytes.

    All sync pypdf calls wrapped in asyncio.to_thread(). Unreadable PDFs
    raise ``UnsupportedContentType``; scanned PDFs yield ``text=None``.
    """
    if len(data) > MAX_PDF_SIZE_BYTES:
        raise _too_large(source, len(data))
    try:
        # pypdf is synchronous -- run in thread
        reader = await asyncio.to_thread(PdfReader, BytesIO(data))
        pages_text = []
        for page in reader.pages:
            page_text = await asyncio.to_thread(page.extract_text)
            if page_text:
                pages_text.append(page_text)
    except PdfReadError as exc:
        logger.warning("PDF parsing failed for %s: %s", source, exc)
        raise UnsupportedContentType(source, "application/pdf") from exc

    meta = reader.metadata
    return PdfText(
        text="\n".join(pages_text).strip() or None,
        title=meta.title if meta else None,
        author=meta.author if meta else None,
        page_count=len(reader.pages),
    )
