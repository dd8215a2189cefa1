"""Transcript resolution over ordered provider chains.

A chain is picked from the URL (video, podcast, social, generic). The
transcript cache is consulted first; on a miss every provider whose
``can_handle`` matches is tried in order until one returns text. Provider
errors become notes and the chain continues; an exhausted chain resolves to
``TranscriptSource.UNAVAILABLE`` without raising.
"""

import logging
import re
from collections.abc import Mapping

import httpx

from link_preview.cache import TranscriptCache
from link_preview.config import Settings
from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.extraction.cleaner import append_note
from link_preview.extraction.hosts import is_podcast_host
from link_preview.extraction.metadata import extract_json_ld, is_podcast_like_json_ld_type
from link_preview.extraction.router import (
    extract_apple_podcast_ids,
    extract_spotify_episode_id,
    extract_youtube_video_id,
    is_social_status_url,
    is_youtube_url,
)
from link_preview.extraction.scrape import ScrapeService
from link_preview.models.content import VideoTranscriptMode
from link_preview.models.progress import TranscriptDone, TranscriptStart
from link_preview.models.transcript import (
    CacheMode,
    CacheStatus,
    ProviderOutcome,
    TranscriptDiagnostics,
    TranscriptResolution,
    TranscriptSource,
)
from link_preview.progress import ProgressSink, emit_progress
from link_preview.transcript.base import ProviderContext, TranscriptProvider
from link_preview.transcript.episode import FEED_HINT_URL_PATTERN, EpisodeLocator
from link_preview.transcript.providers import (
    CaptionsProvider,
    EpisodeAudioProvider,
    FeedTranscriptProvider,
    GenericProvider,
    ManagedTranscriptProvider,
    MediaDownloadProvider,
    MirrorReaderProvider,
    SocialReaderCommandProvider,
)
from link_preview.transcript.rss import looks_like_feed
from link_preview.transcription.whisper import SpeechToText

logger = logging.getLogger(__name__)

VIDEO_CHAIN = ("captions", "managed", "media-download", "generic")
PODCAST_CHAIN = ("feed-transcript", "episode-audio", "generic")
SOCIAL_CHAIN = ("social-reader", "mirror-reader", "generic")
GENERIC_CHAIN = ("generic",)

CHAINS = {
    "youtube": VIDEO_CHAIN,
    "podcast": PODCAST_CHAIN,
    "social": SOCIAL_CHAIN,
    "generic": GENERIC_CHAIN,
}

# Video providers eligible under each explicit transcript mode
VIDEO_MODE_PROVIDERS = {
    VideoTranscriptMode.WEB: {"captions"},
    VideoTranscriptMode.MANAGED: {"managed"},
    VideoTranscriptMode.DOWNLOAD: {"media-download"},
}

_OG_AUDIO_PATTERN = re.compile(r"<meta[^>]+property=[\"']og:audio", re.IGNORECASE)


def select_service(url: str, html: str | None) -> str:
    """Which chain handles ``url``: youtube, social, podcast or generic."""
    if is_youtube_url(url):
        return "youtube"
    if is_social_status_url(url):
        return "social"
    if is_podcast_host(url) or extract_spotify_episode_id(url) or extract_apple_podcast_ids(url):
        return "podcast"
    if html:
        if looks_like_feed(html) or _OG_AUDIO_PATTERN.search(html):
            return "podcast"
        json_ld = extract_json_ld(html)
        if json_ld is not None and is_podcast_like_json_ld_type(json_ld.type):
            return "podcast"
    elif FEED_HINT_URL_PATTERN.search(url):
        return "podcast"
    return "generic"


def resource_key_for(url: str, service: str) -> str | None:
    if service == "youtube":
        return extract_youtube_video_id(url)
    if service == "podcast":
        spotify_id = extract_spotify_episode_id(url)
        if spotify_id:
            return f"spotify:{spotify_id}"
        apple = extract_apple_podcast_ids(url)
        if apple:
            return f"apple:{apple.show_id}:{apple.episode_id or 'latest'}"
    return None


def chain_for(service: str, mode: VideoTranscriptMode) -> tuple[str, ...]:
    chain = CHAINS[service]
    allowed = VIDEO_MODE_PROVIDERS.get(mode)
    if service != "youtube" or allowed is None:
        return chain
    return tuple(name for name in chain if name in allowed or name == "generic")


class TranscriptResolver:
    def __init__(
        self,
        providers: Mapping[str, TranscriptProvider],
        cache: TranscriptCache | None = None,
        speech_to_text: SpeechToText | None = None,
    ):
        self.providers = providers
        self.cache = cache
        self.speech_to_text = speech_to_text

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        cache: TranscriptCache | None = None,
        scraper: ScrapeService | None = None,
        speech_to_text: SpeechToText | None = None,
    ) -> "TranscriptResolver":
        speech_to_text = speech_to_text or SpeechToText.from_settings(settings, client)
        locator = EpisodeLocator(client, scraper)
        providers: list[TranscriptProvider] = [
            CaptionsProvider(settings.youtube_proxy_url),
            ManagedTranscriptProvider(settings.apify_api_token, client),
            MediaDownloadProvider(settings.yt_dlp_path, speech_to_text),
            FeedTranscriptProvider(client, locator),
            EpisodeAudioProvider(client, locator, speech_to_text),
            SocialReaderCommandProvider(settings.social_reader_path),
            MirrorReaderProvider(client),
            GenericProvider(),
        ]
        return cls({p.name: p for p in providers}, cache=cache, speech_to_text=speech_to_text)

    async def resolve(
        self,
        url: str,
        html: str | None,
        *,
        cache_mode: CacheMode = CacheMode.DEFAULT,
        mode: VideoTranscriptMode = VideoTranscriptMode.AUTO,
        on_progress: ProgressSink | None = None,
    ) -> TranscriptResolution:
        service = select_service(url, html)
        ctx = ProviderContext(
            url=url,
            html=html,
            service=service,
            resource_key=resource_key_for(url, service),
            cache_mode=cache_mode,
            on_progress=on_progress,
        )
        diagnostics = TranscriptDiagnostics(cache_mode=cache_mode)

        has_stt = self.speech_to_text is not None and self.speech_to_text.available
        emit_progress(on_progress, TranscriptStart(
            url=url,
            service=service,
            has_speech_to_text=has_stt,
            provider_hint=self.speech_to_text.provider_hint() if has_stt else None,
        ))

        resolution = await self._read_cache(ctx, diagnostics)
        if resolution is None:
            resolution = await self._run_chain(ctx, chain_for(service, mode), diagnostics)
            if resolution.text and cache_mode != CacheMode.BYPASS and self.cache is not None:
                await self.cache.set(
                    url, service, ctx.resource_key, resolution.text, resolution.source,
                    metadata=resolution.metadata,
                )

        diagnostics.text_provided = resolution.text is not None
        emit_progress(on_progress, TranscriptDone(
            url=url,
            service=service,
            ok=resolution.text is not None,
            source=resolution.source.value if resolution.source else None,
        ))
        return resolution

    async def _read_cache(
        self, ctx: ProviderContext, diagnostics: TranscriptDiagnostics
    ) -> TranscriptResolution | None:
        if ctx.cache_mode == CacheMode.BYPASS:
            diagnostics.cache_status = CacheStatus.BYPASSED
            return None
        if self.cache is None:
            return None

        cached = await self.cache.get(ctx.url, ctx.service, ctx.resource_key)
        diagnostics.cache_status = cached.status
        if cached.status != CacheStatus.HIT or not cached.content or cached.source is None:
            return None
        diagnostics.provider = (cached.metadata or {}).get("provider")
        diagnostics.notes = "Transcript served from cache"
        return TranscriptResolution(
            text=cached.content,
            source=cached.source,
            metadata=cached.metadata,
            diagnostics=diagnostics,
        )

    async def _run_chain(
        self,
        ctx: ProviderContext,
        chain: tuple[str, ...],
        diagnostics: TranscriptDiagnostics,
    ) -> TranscriptResolution:
        for name in chain:
            provider = self.providers.get(name)
            if provider is None or not provider.can_handle(ctx):
                continue
            diagnostics.attempted_providers.append(name)
            if not provider.is_configured():
                diagnostics.unavailable_providers.append(name)
                continue

            try:
                result = await provider.fetch_transcript(ctx)
            except ProviderUnavailable as exc:
                diagnostics.unavailable_providers.append(name)
                diagnostics.notes = append_note(diagnostics.notes, f"{name}: {exc}")
                continue
            except ProviderFailed as exc:
                logger.warning("Transcript provider %s failed for %s: %s", name, ctx.url, exc)
                diagnostics.notes = append_note(diagnostics.notes, f"{name}: {exc}")
                continue
            except Exception as exc:
                logger.warning(
                    "Transcript provider %s raised for %s: %s", name, ctx.url, exc, exc_info=True
                )
                diagnostics.notes = append_note(diagnostics.notes, f"{name}: {exc}")
                continue

            if result.attempted_providers:
                diagnostics.provider_attempts[name] = list(result.attempted_providers)
            if result.outcome == ProviderOutcome.UNAVAILABLE:
                diagnostics.unavailable_providers.append(name)
            if result.notes:
                diagnostics.notes = append_note(diagnostics.notes, f"{name}: {result.notes}")
            if result.text:
                diagnostics.provider = name
                return TranscriptResolution(
                    text=result.text,
                    source=result.source,
                    metadata=result.metadata,
                    diagnostics=diagnostics,
                )

        return TranscriptResolution(
            text=None,
            source=TranscriptSource.UNAVAILABLE,
            metadata=None,
            diagnostics=diagnostics,
        )
