"""Page metadata: meta tags, JSON-LD and primary video detection."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from link_preview.extraction.cleaner import normalize_candidate, pick_first_text
from link_preview.extraction.hosts import bare_hostname
from link_preview.models.content import DetectedVideo

logger = logging.getLogger(__name__)

TITLE_SELECTORS = (("property", "og:title"), ("name", "og:title"), ("name", "twitter:title"))
DESCRIPTION_SELECTORS = (
    ("property", "og:description"),
    ("name", "description"),
    ("name", "twitter:description"),
)
SITE_NAME_SELECTORS = (("property", "og:site_name"), ("name", "application-name"))
OG_VIDEO_SELECTORS = (
    ("property", "og:video"),
    ("property", "og:video:url"),
    ("property", "og:video:secure_url"),
    ("name", "og:video"),
    ("name", "og:video:url"),
    ("name", "og:video:secure_url"),
)

DIRECT_VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".m4v")
_EMBED_ID_PATTERN = re.compile(r"/embed/([a-zA-Z0-9_-]{11})")
_VIDEO_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{11}$")
_SHORT_DESCRIPTION_PATTERN = re.compile(r'"shortDescription":"((?:\\.|[^"\\])*)"')

_PODCAST_JSON_LD_TYPES = frozenset({"audioobject", "episode", "radioepisode", "musicrecording"})


@dataclass(frozen=True)
class PageMetadata:
    title: str | None
    description: str | None
    site_name: str | None


@dataclass(frozen=True)
class JsonLdContent:
    title: str | None
    description: str | None
    type: str | None


def _meta_content(soup: BeautifulSoup, selectors) -> str | None:
    for attribute, value in selectors:
        meta = soup.find("meta", attrs={attribute: value})
        if meta is None:
            continue
        candidate = normalize_candidate(meta.get("content") or meta.get("value"))
        if candidate:
            return candidate
    return None


def extract_metadata_from_html(html: str, url: str) -> PageMetadata:
    """Title, description and site name, first non-empty source wins.

    Title: og:title / twitter:title, then ``<title>``. Description:
    og:description, description, twitter:description. Site name:
    og:site_name / application-name, then the hostname.
    """
    soup = BeautifulSoup(html, "lxml")
    title_tag = soup.find("title")
    title = pick_first_text([
        _meta_content(soup, TITLE_SELECTORS),
        title_tag.get_text() if title_tag else None,
    ])
    description = _meta_content(soup, DESCRIPTION_SELECTORS)
    site_name = pick_first_text([_meta_content(soup, SITE_NAME_SELECTORS), safe_hostname(url)])
    return PageMetadata(title=title, description=description, site_name=site_name)


def extract_metadata_from_scrape(metadata: dict[str, Any] | None) -> PageMetadata:
    """Metadata from a scrape payload (``title``/``ogTitle`` and friends)."""
    if not metadata:
        return PageMetadata(None, None, None)

    def text(key: str) -> str | None:
        value = metadata.get(key)
        return value if isinstance(value, str) else None

    return PageMetadata(
        title=pick_first_text([text("title"), text("ogTitle")]),
        description=pick_first_text([text("description"), text("ogDescription")]),
        site_name=pick_first_text([text("siteName"), text("ogSiteName")]),
    )


def safe_hostname(url: str) -> str | None:
    return bare_hostname(url) or None


def _json_ld_type(record: dict) -> str | None:
    raw = record.get("@type")
    if isinstance(raw, str):
        return raw.lower()
    if isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, str):
                return entry.lower()
    return None


def _first_string(record: dict, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _collect_json_ld(node: Any, out: list[JsonLdContent]) -> None:
    if isinstance(node, list):
        for item in node:
            _collect_json_ld(item, out)
        return
    if not isinstance(node, dict):
        return
    if isinstance(node.get("@graph"), list):
        _collect_json_ld(node["@graph"], out)

    node_type = _json_ld_type(node)
    if node_type:
        title = _first_string(node, ("name", "headline", "title"))
        description = _first_string(node, ("description", "summary"))
        if title or description:
            out.append(JsonLdContent(title=title, description=description, type=node_type))


def extract_json_ld(html: str) -> JsonLdContent | None:
    """Pick the JSON-LD node with the longest description. Malformed blocks are skipped."""
    soup = BeautifulSoup(html, "lxml")
    candidates: list[JsonLdContent] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
        _collect_json_ld(data, candidates)

    normalized = [
        JsonLdContent(
            title=normalize_candidate(c.title),
            description=normalize_candidate(c.description),
            type=normalize_candidate(c.type),
        )
        for c in candidates
    ]
    normalized = [c for c in normalized if c.title or c.description]
    if not normalized:
        return None
    return max(normalized, key=lambda c: len(c.description or ""))


def is_podcast_like_json_ld_type(value: str | None) -> bool:
    if not value:
        return False
    lowered = value.lower()
    return "podcast" in lowered or lowered in _PODCAST_JSON_LD_TYPES


def _youtube_id_from_embed(url: str) -> str | None:
    host = bare_hostname(url)
    path = urlparse(url).path
    if host == "youtube.com" or host.endswith(".youtube.com"):
        match = _EMBED_ID_PATTERN.search(path)
        return match.group(1) if match else None
    if host == "youtu.be":
        candidate = path.lstrip("/").strip()
        return candidate if _VIDEO_ID_PATTERN.match(candidate) else None
    return None


def _is_direct_video_url(url: str) -> bool:
    return urlparse(url).path.lower().endswith(DIRECT_VIDEO_EXTENSIONS)


def _absolute(candidate: str | None, base_url: str) -> str | None:
    if not candidate or not candidate.strip():
        return None
    return urljoin(base_url, candidate.strip())


def detect_primary_video(html: str, url: str) -> DetectedVideo | None:
    """Find the page's main video: YouTube iframe, then og:video, then ``<video>``."""
    soup = BeautifulSoup(html, "lxml")

    for iframe in soup.find_all("iframe", src=True):
        src = iframe["src"]
        if "youtube.com/embed/" not in src and "youtu.be/" not in src:
            continue
        resolved = _absolute(src, url)
        video_id = _youtube_id_from_embed(resolved) if resolved else None
        if video_id:
            return DetectedVideo(kind="youtube", url=f"https://www.youtube.com/watch?v={video_id}")
        break

    og_video = _absolute(_meta_content(soup, OG_VIDEO_SELECTORS), url)
    if og_video:
        if _is_direct_video_url(og_video):
            return DetectedVideo(kind="direct", url=og_video)
        video_id = _youtube_id_from_embed(og_video)
        if video_id:
            return DetectedVideo(kind="youtube", url=f"https://www.youtube.com/watch?v={video_id}")

    video = soup.find("video", src=True)
    src = video["src"] if video else None
    if not src:
        source = soup.select_one("video source[src]")
        src = source["src"] if source else None
    resolved = _absolute(src, url)
    if resolved and _is_direct_video_url(resolved):
        return DetectedVideo(kind="direct", url=resolved)
    return None


def extract_youtube_short_description(html: str) -> str | None:
    """The ``shortDescription`` field from a YouTube watch page's player JSON."""
    match = _SHORT_DESCRIPTION_PATTERN.search(html)
    if not match:
        return None
    try:
        decoded = json.loads(f'"{match.group(1)}"')
    except ValueError:
        return None
    return decoded.strip() or None
