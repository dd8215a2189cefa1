"""Podcast episode location: feed, enclosure audio and metadata for a URL.

The locator runs once per request; both podcast providers read its result
from ``ProviderContext.shared``. Sources, in order: the page itself when it
is an RSS/Atom feed, Spotify episodes (embed ``__NEXT_DATA__`` plus the
publisher feed found through iTunes Search), Apple Podcasts (iTunes Lookup),
``feedUrl``/``streamUrl`` JSON embedded in the page, and finally
``og:audio`` or ``<audio>`` sources.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from link_preview.errors import ProviderFailed
from link_preview.extraction.router import (
    ApplePodcastIds,
    extract_apple_podcast_ids,
    extract_spotify_episode_id,
)
from link_preview.extraction.scrape import ScrapeFailed, ScrapeService
from link_preview.models.transcript import CacheMode
from link_preview.transcript.base import ProviderContext
from link_preview.transcript.normalize import normalize_loose_title
from link_preview.transcript.rss import FeedEpisode, find_episode, looks_like_feed

logger = logging.getLogger(__name__)

FEED_HINT_URL_PATTERN = re.compile(r"rss|feed|podcast|\.xml($|[?#])", re.IGNORECASE)
BLOCKED_PAGE_PATTERN = re.compile(
    r"access denied|attention required|captcha|recaptcha|cloudflare|forbidden|verify you are human",
    re.IGNORECASE,
)
ITUNES_SEARCH_URL = "https://itunes.apple.com/search"
ITUNES_LOOKUP_URL = "https://itunes.apple.com/lookup"
SPOTIFY_EMBED_URL = "https://open.spotify.com/embed/episode/{episode_id}"
PODCAST_REQUEST_TIMEOUT_SECONDS = 30.0
SHARED_KEY = "podcast_episode"

_SPOTIFY_ENTITY_PATH = ("props", "pageProps", "state", "data", "entity")
_SPOTIFY_AUDIO_PATH = ("props", "pageProps", "state", "data", "defaultAudioFileObject")
_EMBED_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
    "user-agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120 Safari/537.36"
    ),
}


@dataclass(frozen=True)
class AudioCandidate:
    url: str
    kind: str
    duration_seconds: float | None = None
    may_be_preview: bool = False  # Spotify embed audio is sometimes a short clip


@dataclass
class EpisodeLocation:
    kind: str
    feed_url: str | None = None
    feed_xml: str | None = None
    show_title: str | None = None
    episode_title: str | None = None
    audio: list[AudioCandidate] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SpotifyEmbedData:
    show_title: str
    episode_title: str
    duration_seconds: float | None
    drm_format: str | None
    audio_url: str | None


def _json_path(value: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and bool(re.match(r"^https?://", value.strip(), re.IGNORECASE))


def looks_like_blocked_page(html: str) -> bool:
    head = html[:20000].lower()
    # Embed pages carry __NEXT_DATA__ even when otherwise minimal.
    if "__next_data__" in head:
        return False
    return bool(BLOCKED_PAGE_PATTERN.search(head))


def extract_spotify_embed_data(html: str) -> SpotifyEmbedData | None:
    script = BeautifulSoup(html, "lxml").find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return None
    try:
        data = json.loads(script.string)
    except ValueError:
        return None

    entity = _json_path(data, _SPOTIFY_ENTITY_PATH) or {}
    audio = _json_path(data, _SPOTIFY_AUDIO_PATH) or {}
    show_title = (entity.get("subtitle") or "").strip() if isinstance(entity, dict) else ""
    episode_title = (entity.get("title") or "").strip() if isinstance(entity, dict) else ""
    if not show_title or not episode_title:
        return None

    duration_ms = entity.get("duration")
    urls = [u.strip() for u in (audio.get("url") or []) if _is_http_url(u)] if isinstance(audio, dict) else []
    audio_url = next((u for u in urls if "scdn.co" in u.lower()), urls[0] if urls else None)
    return SpotifyEmbedData(
        show_title=show_title,
        episode_title=episode_title,
        duration_seconds=duration_ms / 1000 if isinstance(duration_ms, (int, float)) else None,
        drm_format=audio.get("format") if isinstance(audio, dict) else None,
        audio_url=audio_url,
    )


def extract_embedded_json_url(html: str, field_name: str) -> str | None:
    """A ``"field":"url"`` value from JSON embedded anywhere in the page."""
    match = re.search(rf'"{re.escape(field_name)}":"((?:\\.|[^"\\])*)"', html, re.IGNORECASE)
    if not match:
        return None
    try:
        value = json.loads(f'"{match.group(1)}"')
    except ValueError:
        return None
    return value if _is_http_url(value) else None


def extract_episode_title(html: str) -> str | None:
    """``apple:title`` (episode only) before ``og:title``."""
    soup = BeautifulSoup(html, "lxml")
    for attrs in ({"name": "apple:title"}, {"property": "og:title"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content", "").strip():
            return tag["content"].strip()
    return None


def extract_html_audio_urls(html: str, base_url: str) -> list[str]:
    soup = BeautifulSoup(html, "lxml")
    urls: list[str] = []
    for prop in ("og:audio", "og:audio:url", "og:audio:secure_url"):
        for tag in soup.find_all("meta", attrs={"property": prop}):
            urls.append(tag.get("content", ""))
    for audio in soup.find_all("audio"):
        urls.append(audio.get("src", ""))
        urls.extend(source.get("src", "") for source in audio.find_all("source"))

    resolved: list[str] = []
    for raw in urls:
        if not raw or not raw.strip():
            continue
        absolute = urljoin(base_url, raw.strip())
        if _is_http_url(absolute) and absolute not in resolved:
            resolved.append(absolute)
    return resolved


def _parse_release_date(raw: Any) -> datetime | None:
    if not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _rss_candidate(episode: FeedEpisode | None, kind: str) -> list[AudioCandidate]:
    if episode is None or not episode.enclosure_url:
        return []
    return [AudioCandidate(episode.enclosure_url, kind, episode.duration_seconds)]


class EpisodeLocator:
    def __init__(self, client: httpx.AsyncClient, scraper: ScrapeService | None = None):
        self.client = client
        self.scraper = scraper

    async def locate(self, ctx: ProviderContext) -> EpisodeLocation | None:
        """Locate once per request; a failure is remembered and re-raised."""
        if SHARED_KEY not in ctx.shared:
            try:
                ctx.shared[SHARED_KEY] = await self._locate(ctx)
            except ProviderFailed as exc:
                ctx.shared[SHARED_KEY] = exc
            except Exception as exc:
                ctx.shared[SHARED_KEY] = ProviderFailed(f"Episode lookup failed: {exc}")
                raise
        located = ctx.shared[SHARED_KEY]
        if isinstance(located, ProviderFailed):
            raise ProviderFailed(str(located))
        return located

    async def _locate(self, ctx: ProviderContext) -> EpisodeLocation | None:
        if ctx.html and looks_like_feed(ctx.html):
            return self.from_feed(ctx.url, ctx.html)

        spotify_id = extract_spotify_episode_id(ctx.url)
        if spotify_id:
            return await self._from_spotify(spotify_id)

        apple_ids = extract_apple_podcast_ids(ctx.url)
        if apple_ids:
            location = await self._from_itunes_lookup(apple_ids)
            if location is not None:
                return location

        if ctx.html:
            location = await self._from_embedded_json(ctx.html)
            if location is not None:
                return location
            audio_urls = extract_html_audio_urls(ctx.html, ctx.url)
            if audio_urls:
                return EpisodeLocation(
                    kind="html_audio",
                    episode_title=extract_episode_title(ctx.html),
                    audio=[AudioCandidate(url, "html_audio") for url in audio_urls],
                )

        if not ctx.html and FEED_HINT_URL_PATTERN.search(ctx.url):
            feed_xml = await self._fetch_text(ctx.url)
            if feed_xml and looks_like_feed(feed_xml):
                return self.from_feed(ctx.url, feed_xml)
        return None

    @staticmethod
    def from_feed(feed_url: str, feed_xml: str, episode_title: str | None = None) -> EpisodeLocation:
        episode = find_episode(feed_xml, episode_title)
        return EpisodeLocation(
            kind="rss",
            feed_url=feed_url,
            feed_xml=feed_xml,
            episode_title=episode.title if episode else episode_title,
            audio=_rss_candidate(episode, "rss_enclosure"),
        )

    async def _fetch_text(self, url: str, headers: dict[str, str] | None = None) -> str | None:
        try:
            response = await self.client.get(
                url, headers=headers, follow_redirects=True, timeout=PODCAST_REQUEST_TIMEOUT_SECONDS
            )
        except httpx.HTTPError as exc:
            logger.warning("Podcast request failed for %s: %s", url, exc)
            return None
        if response.status_code >= 400:
            logger.info("Podcast request for %s returned %d", url, response.status_code)
            return None
        return response.text

    async def _fetch_json(self, url: str, params: dict[str, str]) -> dict[str, Any] | None:
        try:
            response = await self.client.get(
                url,
                params=params,
                headers={"accept": "application/json"},
                follow_redirects=True,
                timeout=PODCAST_REQUEST_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            logger.warning("iTunes request failed: %s", exc)
            return None
        if response.status_code >= 400:
            return None
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    async def _itunes_results(self, url: str, params: dict[str, str]) -> list[dict[str, Any]]:
        payload = await self._fetch_json(url, params)
        results = payload.get("results") if payload else None
        return [r for r in results if isinstance(r, dict)] if isinstance(results, list) else []

    async def _from_itunes_lookup(self, ids: ApplePodcastIds) -> EpisodeLocation | None:
        results = await self._itunes_results(
            ITUNES_LOOKUP_URL, {"id": ids.show_id, "entity": "podcastEpisode", "limit": "200"}
        )
        show = next(
            (r for r in results if r.get("wrapperType") == "track" and r.get("kind") == "podcast"), None
        )
        feed_url = show["feedUrl"].strip() if show and _is_http_url(show.get("feedUrl")) else None
        episodes = [r for r in results if r.get("wrapperType") == "podcastEpisode"]
        if not episodes:
            return None

        chosen = None
        if ids.episode_id:
            chosen = next((r for r in episodes if str(r.get("trackId", "")) == ids.episode_id), None)
        if chosen is None:
            # No episode id: newest by release date
            dated = [(r, _parse_release_date(r.get("releaseDate"))) for r in episodes]
            dated.sort(key=lambda pair: pair[1].timestamp() if pair[1] else float("-inf"), reverse=True)
            chosen = dated[0][0]

        episode_url = chosen.get("episodeUrl") or chosen.get("previewUrl")
        if not _is_http_url(episode_url):
            return None
        millis = chosen.get("trackTimeMillis")
        duration = millis / 1000 if isinstance(millis, (int, float)) else None
        title = (chosen.get("trackName") or "").strip() or None

        location = EpisodeLocation(
            kind="apple_itunes_episode",
            feed_url=feed_url,
            show_title=(chosen.get("collectionName") or "").strip() or None,
            episode_title=title,
            audio=[AudioCandidate(episode_url.strip(), "apple_itunes_episode", duration)],
            metadata={"show_id": ids.show_id, "episode_id": ids.episode_id},
        )
        if feed_url:
            location.feed_xml = await self._fetch_text(feed_url)
        return location

    async def _fetch_spotify_embed(self, episode_id: str) -> tuple[str, str]:
        """Embed HTML and how it was obtained (``fetch`` or ``scrape``)."""
        embed_url = SPOTIFY_EMBED_URL.format(episode_id=episode_id)
        headers = {**_EMBED_HEADERS, "referer": f"https://open.spotify.com/episode/{episode_id}"}
        html = await self._fetch_text(embed_url, headers)
        if html and not looks_like_blocked_page(html):
            return html, "fetch"

        reason = "Spotify embed HTML looked blocked" if html else "Spotify embed fetch failed"
        if self.scraper is None:
            raise ProviderFailed(reason)
        try:
            payload = await self.scraper.scrape(
                embed_url, cache_mode=CacheMode.BYPASS, timeout_seconds=PODCAST_REQUEST_TIMEOUT_SECONDS
            )
        except (ScrapeFailed, httpx.HTTPError) as exc:
            raise ProviderFailed(f"{reason}; scrape fallback failed: {exc}") from exc
        text = ((payload.html or payload.markdown) if payload else "") or ""
        if not text.strip():
            raise ProviderFailed(f"{reason}; scrape returned empty content")
        if looks_like_blocked_page(text):
            raise ProviderFailed("Spotify embed blocked even via scrape")
        return text, "scrape"

    async def _itunes_feed_for_show(self, show_title: str) -> str | None:
        results = await self._itunes_results(
            ITUNES_SEARCH_URL, {"term": show_title, "media": "podcast", "entity": "podcast", "limit": "10"}
        )
        if not results:
            return None
        target = normalize_loose_title(show_title)
        best = next(
            (r for r in results if normalize_loose_title(str(r.get("collectionName", ""))) == target),
            results[0],
        )
        feed_url = best.get("feedUrl")
        return feed_url.strip() if _is_http_url(feed_url) else None

    async def _itunes_episode_search(self, show_title: str, episode_title: str) -> AudioCandidate | None:
        results = await self._itunes_results(
            ITUNES_SEARCH_URL,
            {
                "term": f"{show_title} {episode_title}",
                "media": "podcast",
                "entity": "podcastEpisode",
                "limit": "25",
            },
        )
        candidates = [r for r in results if _is_http_url(r.get("episodeUrl")) and r.get("trackName")]
        if not candidates:
            return None
        show_key = normalize_loose_title(show_title)
        episode_key = normalize_loose_title(episode_title)

        def matches(record: dict[str, Any], with_show: bool) -> bool:
            if normalize_loose_title(str(record["trackName"])) != episode_key:
                return False
            return not with_show or normalize_loose_title(str(record.get("collectionName", ""))) == show_key

        best = (
            next((r for r in candidates if matches(r, True)), None)
            or next((r for r in candidates if matches(r, False)), None)
            or candidates[0]
        )
        millis = best.get("trackTimeMillis")
        return AudioCandidate(
            best["episodeUrl"].strip(),
            "itunes_search_episode",
            millis / 1000 if isinstance(millis, (int, float)) else None,
        )

    async def _from_spotify(self, episode_id: str) -> EpisodeLocation:
        html, via = await self._fetch_spotify_embed(episode_id)
        embed = extract_spotify_embed_data(html)
        if embed is None:
            raise ProviderFailed("Spotify embed data not found (missing __NEXT_DATA__)")

        location = EpisodeLocation(
            kind="spotify",
            show_title=embed.show_title,
            episode_title=embed.episode_title,
            metadata={"episode_id": episode_id, "drm_format": embed.drm_format, "embed_via": via},
        )
        if embed.audio_url:
            location.audio.append(
                AudioCandidate(embed.audio_url, "spotify_embed_audio", embed.duration_seconds, may_be_preview=True)
            )

        feed_url = await self._itunes_feed_for_show(embed.show_title)
        if feed_url:
            feed_xml = await self._fetch_text(feed_url)
            if feed_xml:
                location.feed_url = feed_url
                location.feed_xml = feed_xml
                location.audio += _rss_candidate(find_episode(feed_xml, embed.episode_title), "spotify_itunes_rss")

        if len(location.audio) <= (1 if embed.audio_url else 0):
            searched = await self._itunes_episode_search(embed.show_title, embed.episode_title)
            if searched is not None:
                location.audio.append(searched)
        if not location.audio:
            location.notes.append(
                f'Spotify episode audio appears DRM-protected; no feed found via iTunes for "{embed.show_title}"'
            )
        return location

    async def _from_embedded_json(self, html: str) -> EpisodeLocation | None:
        feed_url = extract_embedded_json_url(html, "feedUrl")
        stream_url = extract_embedded_json_url(html, "streamUrl")
        if not feed_url and not stream_url:
            return None

        title = extract_episode_title(html)
        location = EpisodeLocation(kind="embedded", episode_title=title)
        if feed_url:
            feed_xml = await self._fetch_text(feed_url)
            if feed_xml:
                location.feed_url = feed_url
                location.feed_xml = feed_xml
                location.audio += _rss_candidate(find_episode(feed_xml, title), "embedded_feed")
            else:
                location.notes.append("Embedded podcast feed could not be fetched")
        if stream_url:
            # Fallback when the feed is flaky or has no matching episode
            location.audio.append(AudioCandidate(stream_url, "embedded_stream_url"))
        return location
