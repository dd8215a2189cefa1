"""HTML to Markdown conversion via Gemini.

The converter is an injected collaborator of the extraction pipeline. The
client singleton uses a 60-second HTTP timeout and no HttpRetryOptions;
tenacity retries at the application level.
"""

import asyncio
import logging
from typing import Protocol

from google import genai
from google.genai import types
from google.genai.errors import ClientError, ServerError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from link_preview.config import get_settings

logger = logging.getLogger(__name__)

MAX_HTML_INPUT_CHARACTERS = 200_000

SYSTEM_PROMPT = """You convert HTML into clean GitHub-Flavored Markdown.

Rules:
- Output ONLY Markdown (no JSON, no explanations, no code fences).
- Keep headings, lists, code blocks, blockquotes.
- Preserve links as Markdown links when possible.
- Remove navigation, cookie banners, footers, and unrelated page chrome.
- Do not invent content."""

_client: genai.Client | None = None


class MarkdownConverter(Protocol):
    async def convert(
        self,
        *,
        url: str,
        html: str,
        title: str | None,
        site_name: str | None,
        timeout_seconds: float,
    ) -> str: ...


def get_gemini_client() -> genai.Client:
    """Return a cached Gemini client built from ``gemini_api_key``."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = genai.Client(
            api_key=settings.gemini_api_key,
            http_options=types.HttpOptions(timeout=60_000),
        )
    return _client


def reset_client() -> None:
    """Reset the cached client instance. Used for testing."""
    global _client
    _client = None


def _is_retryable(error: BaseException) -> bool:
    """Server errors (5xx) and rate limits (429) are transient."""
    if isinstance(error, ServerError):
        return True
    if isinstance(error, ClientError) and error.code == 429:
        return True
    return False


def build_user_content(url: str, html: str, title: str | None, site_name: str | None) -> str:
    trimmed = html[:MAX_HTML_INPUT_CHARACTERS]
    return (
        f"URL: {url}\n"
        f"Site: {site_name or 'unknown'}\n"
        f"Title: {title or 'unknown'}\n\n"
        f'HTML:\n"""\n{trimmed}\n"""\n'
    )


class GeminiMarkdownConverter:
    def __init__(self, client: genai.Client, model: str):
        self.client = client
        self.model = model

    @retry(
        retry=retry_if_exception(_is_retryable),
        wait=wait_exponential_jitter(initial=1, max=30, jitter=2),
        stop=stop_after_attempt(4),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate(self, user_content: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=user_content,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                temperature=0.0,
            ),
        )
        return response.text or ""

    async def convert(
        self,
        *,
        url: str,
        html: str,
        title: str | None,
        site_name: str | None,
        timeout_seconds: float,
    ) -> str:
        """Convert sanitized HTML to Markdown within ``timeout_seconds``.

        Raises:
            TimeoutError: The conversion (including retries) took too long.
            ClientError: On permanent API errors (400, 401, 403).
            ServerError: After exhausting retries on server errors.
        """
        user_content = build_user_content(url, html, title, site_name)
        async with asyncio.timeout(timeout_seconds):
            markdown = await self._generate(user_content)
        logger.info("Converted %s to markdown (%d chars)", url, len(markdown))
        return markdown
