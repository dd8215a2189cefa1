"""YouTube transcript providers: captions, managed service, download + speech-to-text."""

import asyncio

import httpx
from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    InvalidVideoId,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)
from youtube_transcript_api.proxies import GenericProxyConfig

from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.extraction.router import extract_youtube_video_id
from link_preview.models.transcript import ProviderResult, TranscriptSource
from link_preview.transcript.base import ProviderContext, TranscriptProvider
from link_preview.transcript.normalize import normalize_managed_transcript, normalize_transcript_lines
from link_preview.transcription.whisper import SpeechToText
from link_preview.transcription.ytdlp import transcribe_with_ytdlp

CAPTION_LANGUAGES = ["en", "en-US", "en-GB"]
APIFY_TRANSCRIPT_ACTOR = "faVsWy9VTSNVIhWpR"
APIFY_RUN_URL = f"https://api.apify.com/v2/acts/{APIFY_TRANSCRIPT_ACTOR}/run-sync-get-dataset-items"
APIFY_TIMEOUT_SECONDS = 45.0


class _YouTubeProvider(TranscriptProvider):
    def can_handle(self, ctx: ProviderContext) -> bool:
        return extract_youtube_video_id(ctx.url) is not None


class CaptionsProvider(_YouTubeProvider):
    """Published captions via youtube-transcript-api."""

    name = "captions"
    source = TranscriptSource.CAPTIONS

    def __init__(self, proxy_url: str = ""):
        self.proxy_url = proxy_url

    def _api(self) -> YouTubeTranscriptApi:
        proxy_config = GenericProxyConfig(https_url=self.proxy_url) if self.proxy_url else None
        return YouTubeTranscriptApi(proxy_config=proxy_config)

    @staticmethod
    def _fetch_any_language(api: YouTubeTranscriptApi, video_id: str):
        try:
            return api.fetch(video_id, languages=CAPTION_LANGUAGES)
        except NoTranscriptFound:
            # No English track; take whatever the video publishes first.
            for transcript in api.list(video_id):
                return transcript.fetch()
            raise

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        video_id = extract_youtube_video_id(ctx.url)
        api = self._api()
        try:
            # Sync library call wrapped in to_thread
            transcript = await asyncio.to_thread(self._fetch_any_language, api, video_id)
        except (TranscriptsDisabled, NoTranscriptFound) as exc:
            return self.failure(f"Captions unavailable: {type(exc).__name__}")
        except (VideoUnavailable, InvalidVideoId) as exc:
            return self.failure(f"Video unavailable: {type(exc).__name__}")
        except CouldNotRetrieveTranscript as exc:
            # IP blocks, request errors and similar
            raise ProviderFailed(f"Caption fetch failed: {type(exc).__name__}") from exc

        text = normalize_transcript_lines([snippet.text for snippet in transcript])
        if not text:
            return self.failure("Captions were empty")
        return self.success(
            text,
            metadata={
                "video_id": video_id,
                "language": getattr(transcript, "language_code", None),
                "is_generated": getattr(transcript, "is_generated", None),
            },
        )


class ManagedTranscriptProvider(_YouTubeProvider):
    """Apify YouTube transcript actor, run synchronously."""

    name = "managed"
    source = TranscriptSource.MANAGED_DOWNLOAD

    def __init__(self, api_token: str, client: httpx.AsyncClient):
        self.api_token = api_token
        self.client = client

    def is_configured(self) -> bool:
        return bool(self.api_token)

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        if not self.api_token:
            raise ProviderUnavailable("APIFY_API_TOKEN is not set")
        try:
            response = await self.client.post(
                APIFY_RUN_URL,
                params={"token": self.api_token},
                json={"videoUrl": ctx.url},
                timeout=APIFY_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            raise ProviderFailed(f"Apify request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ProviderFailed(f"Apify returned status {response.status_code}")

        payload = response.json()
        if not isinstance(payload, list):
            return self.failure("Apify returned an unexpected payload")
        for item in payload:
            if not isinstance(item, dict):
                continue
            text = normalize_managed_transcript(item.get("data"))
            if text:
                return self.success(text, metadata={"video_id": extract_youtube_video_id(ctx.url)})
        return self.failure("Apify returned no transcript")


class MediaDownloadProvider(_YouTubeProvider):
    """Audio download with yt-dlp, transcribed by the speech-to-text layer."""

    name = "media-download"
    source = TranscriptSource.SPEECH_TO_TEXT

    def __init__(self, ytdlp_path: str, speech_to_text: SpeechToText):
        self.ytdlp_path = ytdlp_path
        self.speech_to_text = speech_to_text

    def is_configured(self) -> bool:
        return bool(self.ytdlp_path) and self.speech_to_text.available

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        outcome = await transcribe_with_ytdlp(
            self.ytdlp_path,
            self.speech_to_text,
            ctx.url,
            service=ctx.service,
            on_progress=ctx.on_progress,
        )
        attempted = ["yt-dlp", *outcome.attempted]
        notes = "; ".join(outcome.notes) or None
        if not outcome.text:
            return self.failure(notes or "Speech-to-text returned no text", attempted=attempted)
        return self.success(
            outcome.text,
            attempted=attempted,
            notes=notes,
            metadata={
                "video_id": extract_youtube_video_id(ctx.url),
                "transcription_provider": outcome.provider,
                "duration_seconds": outcome.duration_seconds,
            },
        )
