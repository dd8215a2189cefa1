"""URL classification and URL-shape helpers."""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import NamedTuple
from urllib.parse import parse_qs, urlparse

import httpx
from cachetools import TTLCache

from link_preview.extraction.hosts import bare_hostname, is_podcast_host, social_hosts

logger = logging.getLogger(__name__)


class UrlKind(str, Enum):
    """Whether a URL is an HTML-bearing page or a directly downloadable asset."""

    WEBSITE = "website"
    ASSET = "asset"


# Comprehensive regex for YouTube video URL formats
VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/(?:watch\?.*v=|shorts/|embed/|live/|v/)|youtu\.be/)([a-zA-Z0-9_-]{11})(?![a-zA-Z0-9_-])"
)
SOCIAL_STATUS_PATTERN = re.compile(r"/status/\d+")
SPOTIFY_EPISODE_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
APPLE_SHOW_ID_PATTERN = re.compile(r"/id(\d+)(?:/|$)")

MEDIA_EXTENSIONS = frozenset({
    "mp4", "mov", "m4v", "mkv", "webm", "mpeg", "mpg", "avi", "wmv", "flv",
    "mp3", "m4a", "wav", "flac", "aac", "ogg", "opus", "aiff", "wma",
})
DOCUMENT_EXTENSIONS = frozenset({"pdf", "txt", "md", "csv", "json"})
IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "bmp", "tiff", "svg"})
ASSET_EXTENSIONS = MEDIA_EXTENSIONS | DOCUMENT_EXTENSIONS | IMAGE_EXTENSIONS

DIRECT_MEDIA_URL_PATTERN = re.compile(
    r"\.(" + "|".join(sorted(MEDIA_EXTENSIONS)) + r")(?:\?|#|$)", re.IGNORECASE
)

_WEBSITE_CONTENT_TYPES = ("text/html", "application/xhtml", "xml", "text/")
_PROBE_TIMEOUT_SECONDS = 5.0

# HEAD probe results, shared across requests
_probe_cache: TTLCache = TTLCache(maxsize=1024, ttl=600)


class ApplePodcastIds(NamedTuple):
    show_id: str
    episode_id: str | None


def is_local_path(target: str) -> bool:
    """True for ``file://`` URLs and plain filesystem paths."""
    parsed = urlparse(target)
    if parsed.scheme == "file":
        return True
    # Single-letter schemes are Windows drive letters
    if len(parsed.scheme) == 1:
        return True
    return parsed.scheme == "" and (target.startswith(("/", ".", "~")) or Path(target).exists())


def url_extension(url: str) -> str:
    path = urlparse(url).path
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def is_youtube_url(url: str) -> bool:
    host = bare_hostname(url)
    return "youtube.com" in host or "youtu.be" in host


def extract_youtube_video_id(url: str) -> str | None:
    """Extract the 11-character video ID from a YouTube URL.

    Handles: youtube.com/watch?v=, youtu.be/, /shorts/, /embed/, /live/, /v/
    Also handles URLs with additional query params (e.g., &t=123, &list=PLxxx).
    """
    if not is_youtube_url(url):
        return None
    match = VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def is_youtube_video_url(url: str) -> bool:
    return extract_youtube_video_id(url) is not None


def is_social_status_url(url: str) -> bool:
    """True for x.com / twitter.com status URLs."""
    if bare_hostname(url) not in social_hosts():
        return False
    return bool(SOCIAL_STATUS_PATTERN.search(urlparse(url).path))


def is_direct_media_url(url: str) -> bool:
    return bool(DIRECT_MEDIA_URL_PATTERN.search(url))


def extract_spotify_episode_id(url: str) -> str | None:
    if not bare_hostname(url).endswith("spotify.com"):
        return None
    parts = [part for part in urlparse(url).path.split("/") if part]
    if "episode" not in parts:
        return None
    idx = parts.index("episode")
    candidate = parts[idx + 1] if idx + 1 < len(parts) else None
    if candidate and SPOTIFY_EPISODE_ID_PATTERN.match(candidate):
        return candidate
    return None


def extract_apple_podcast_ids(url: str) -> ApplePodcastIds | None:
    """Parse ``podcasts.apple.com/.../id<show>?i=<episode>`` URLs."""
    if bare_hostname(url) != "podcasts.apple.com":
        return None
    parsed = urlparse(url)
    match = APPLE_SHOW_ID_PATTERN.search(parsed.path)
    if not match:
        return None
    episode_raw = parse_qs(parsed.query).get("i", [None])[0]
    episode_id = episode_raw if episode_raw and episode_raw.isdigit() else None
    return ApplePodcastIds(show_id=match.group(1), episode_id=episode_id)


def is_website_content_type(content_type: str | None) -> bool:
    if not content_type:
        return True
    lowered = content_type.lower()
    return any(marker in lowered for marker in _WEBSITE_CONTENT_TYPES)


async def classify_url(url: str, client: httpx.AsyncClient) -> UrlKind:
    """Decide whether ``url`` is a website or a direct asset.

    Local paths and known asset extensions skip the network. Otherwise a
    HEAD probe inspects ``content-type``; ambiguous or failed probes mean
    WEBSITE. Probe results are memoized per URL.
    """
    if is_local_path(url):
        return UrlKind.ASSET
    if is_youtube_url(url) or is_social_status_url(url) or is_podcast_host(url):
        return UrlKind.WEBSITE
    if url_extension(url) in ASSET_EXTENSIONS:
        return UrlKind.ASSET

    cached = _probe_cache.get(url)
    if cached is not None:
        return cached

    kind = UrlKind.WEBSITE
    try:
        response = await client.head(url, follow_redirects=True, timeout=_PROBE_TIMEOUT_SECONDS)
        if response.is_success and not is_website_content_type(response.headers.get("content-type")):
            kind = UrlKind.ASSET
    except httpx.HTTPError as exc:
        logger.debug("HEAD probe failed for %s, assuming website: %s", url, exc)

    _probe_cache[url] = kind
    return kind
