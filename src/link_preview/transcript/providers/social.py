"""Social post readers: an external reader command, then Nitter mirrors."""

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from link_preview.errors import LinkPreviewError, ProviderFailed, ProviderUnavailable
from link_preview.extraction.article import extract_article_content
from link_preview.extraction.cleaner import normalize_for_prompt
from link_preview.extraction.fetcher import fetch_html_document
from link_preview.extraction.router import is_social_status_url
from link_preview.extraction.social import is_anubis_html, is_blocked_post_content, to_mirror_urls
from link_preview.models.progress import SocialReaderDone, SocialReaderStart
from link_preview.models.transcript import ProviderResult, TranscriptSource
from link_preview.progress import emit_progress
from link_preview.transcript.base import ProviderContext, TranscriptProvider

logger = logging.getLogger(__name__)

READER_TIMEOUT_SECONDS = 60.0
MIRROR_TIMEOUT_SECONDS = 15.0
MAX_READER_OUTPUT_BYTES = 1024 * 1024


def parse_reader_output(stdout: bytes) -> dict[str, Any]:
    """The post object from reader JSON output (an object or a one-item list)."""
    trimmed = stdout.decode("utf-8", errors="replace").strip()
    if not trimmed:
        raise ProviderFailed("Social reader returned empty output")
    try:
        parsed = json.loads(trimmed)
    except ValueError as exc:
        raise ProviderFailed(f"Social reader returned invalid JSON: {exc}") from exc
    post = parsed[0] if isinstance(parsed, list) and parsed else parsed
    if not isinstance(post, dict) or not isinstance(post.get("text"), str):
        raise ProviderFailed("Social reader returned an invalid payload")
    return post


def extract_mirror_post(html: str) -> dict[str, str | None]:
    """Post text and author from a Nitter status page."""
    soup = BeautifulSoup(html, "lxml")
    content = soup.select_one(".main-tweet .tweet-content") or soup.select_one(".tweet-content")
    text = content.get_text("\n", strip=True) if content else extract_article_content(html)
    author = soup.select_one(".main-tweet .username") or soup.select_one(".username")
    return {"text": text, "author": author.get_text(strip=True) if author else None}


class _SocialProvider(TranscriptProvider):
    source = TranscriptSource.SOCIAL_READER

    def can_handle(self, ctx: ProviderContext) -> bool:
        return is_social_status_url(ctx.url)


class SocialReaderCommandProvider(_SocialProvider):
    """Runs the configured reader executable: JSON request on stdin, post JSON on stdout."""

    name = "social-reader"

    def __init__(self, command_path: str, timeout_seconds: float = READER_TIMEOUT_SECONDS):
        self.command_path = command_path
        self.timeout_seconds = timeout_seconds

    def is_configured(self) -> bool:
        return bool(self.command_path)

    async def _run(self, url: str) -> dict[str, Any]:
        request = json.dumps({"url": url, "timeout_seconds": self.timeout_seconds}).encode()
        try:
            process = await asyncio.create_subprocess_exec(
                self.command_path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProviderFailed(f"Social reader could not start: {exc}") from exc

        try:
            async with asyncio.timeout(self.timeout_seconds):
                stdout, stderr = await process.communicate(request)
        except TimeoutError as exc:
            process.kill()
            await process.wait()
            raise ProviderFailed(f"Social reader timed out after {self.timeout_seconds:.0f}s") from exc

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[:500]
            raise ProviderFailed(f"Social reader failed ({process.returncode}){': ' + detail if detail else ''}")
        return parse_reader_output(stdout[:MAX_READER_OUTPUT_BYTES])

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        if not self.command_path:
            raise ProviderUnavailable("SOCIAL_READER_PATH is not set")
        emit_progress(ctx.on_progress, SocialReaderStart(url=ctx.url, reader=self.name))
        text = None
        try:
            post = await self._run(ctx.url)
            text = normalize_for_prompt(post["text"])
        finally:
            emit_progress(ctx.on_progress, SocialReaderDone(
                url=ctx.url,
                reader=self.name,
                ok=bool(text),
                text_characters=len(text) if text else None,
            ))

        if not text:
            return self.failure("Social reader returned empty text")
        if is_blocked_post_content(text):
            return self.failure("Social reader returned a blocked-post page")
        author = post.get("author") if isinstance(post.get("author"), dict) else {}
        return self.success(
            text,
            metadata={
                "post_id": post.get("id"),
                "author_username": author.get("username"),
                "author_name": author.get("name"),
                "created_at": post.get("createdAt"),
            },
        )


class MirrorReaderProvider(_SocialProvider):
    """Reads the post from Nitter mirrors in a rotation fixed per URL."""

    name = "mirror-reader"

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = MIRROR_TIMEOUT_SECONDS):
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        mirrors = to_mirror_urls(ctx.url)
        if not mirrors:
            return self.failure("No mirrors for this host")

        emit_progress(ctx.on_progress, SocialReaderStart(url=ctx.url, reader=self.name))
        attempted: list[str] = []
        notes: list[str] = []
        text = None
        try:
            for mirror_url in mirrors:
                host = urlparse(mirror_url).netloc
                attempted.append(host)
                try:
                    document = await fetch_html_document(self.client, mirror_url, self.timeout_seconds)
                except LinkPreviewError as exc:
                    notes.append(f"{host}: {exc}")
                    continue
                if is_anubis_html(document.html):
                    notes.append(f"{host}: proof-of-work challenge")
                    continue
                post = extract_mirror_post(document.html)
                candidate = normalize_for_prompt(post["text"] or "")
                if not candidate or is_blocked_post_content(candidate):
                    notes.append(f"{host}: no post content")
                    continue
                text = candidate
                logger.info("Read %s via mirror %s", ctx.url, host)
                return self.success(
                    text,
                    attempted=attempted,
                    notes="; ".join(notes) or None,
                    metadata={"mirror": host, "author_username": post["author"]},
                )
        finally:
            emit_progress(ctx.on_progress, SocialReaderDone(
                url=ctx.url,
                reader=self.name,
                ok=bool(text),
                text_characters=len(text) if text else None,
            ))
        return self.failure("; ".join(notes) or "All mirrors failed", attempted=attempted)
