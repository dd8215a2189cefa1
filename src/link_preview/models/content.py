"""Extraction request/result models and option enums."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from link_preview.models.transcript import (
    CacheMode,
    CacheStatus,
    TranscriptDiagnostics,
    TranscriptSource,
)


class ContentFormat(str, Enum):
    """Desired output format."""

    TEXT = "text"
    MARKDOWN = "markdown"


class ScrapeMode(str, Enum):
    """When to use the managed scrape fallback."""

    OFF = "off"
    AUTO = "auto"
    ALWAYS = "always"


class MarkdownMode(str, Enum):
    """How markdown output is produced when requested."""

    OFF = "off"
    AUTO = "auto"
    LLM = "llm"
    READABILITY = "readability"


class VideoTranscriptMode(str, Enum):
    """Which video-platform transcript providers are eligible."""

    AUTO = "auto"
    WEB = "web"  # platform caption tracks only
    MANAGED = "managed"  # managed transcript service only
    DOWNLOAD = "download"  # media download + speech-to-text only


class ExtractionStrategy(str, Enum):
    """Which extraction path produced the content."""

    HTML = "html"
    SCRAPE = "scrape"
    SOCIAL = "social"
    ASSET = "asset"


class ExtractionRequest(BaseModel):
    """Options for a single extraction call. Immutable per call."""

    model_config = ConfigDict(frozen=True)

    url: str
    format: ContentFormat = ContentFormat.TEXT
    scrape_mode: ScrapeMode = ScrapeMode.AUTO
    markdown_mode: MarkdownMode = MarkdownMode.AUTO
    video_transcript_mode: VideoTranscriptMode = VideoTranscriptMode.AUTO
    timeout_seconds: float = Field(default=120.0, gt=0)
    cache_mode: CacheMode = CacheMode.DEFAULT
    max_characters: int | None = Field(default=None, gt=0)

    @property
    def markdown_requested(self) -> bool:
        return self.format == ContentFormat.MARKDOWN


class DetectedVideo(BaseModel):
    """Primary video found on a page."""

    kind: Literal["youtube", "direct"]
    url: str


class ScrapeDiagnostics(BaseModel):
    attempted: bool = False
    used: bool = False
    cache_mode: CacheMode = CacheMode.DEFAULT
    cache_status: CacheStatus = CacheStatus.UNKNOWN
    notes: str | None = None


class MarkdownDiagnostics(BaseModel):
    requested: bool = False
    used: bool = False
    provider: Literal["scrape", "llm"] | None = None
    notes: str | None = None


class ContentFetchDiagnostics(BaseModel):
    """Which strategy, scrape, markdown and transcript paths a result used."""

    strategy: ExtractionStrategy
    scrape: ScrapeDiagnostics = Field(default_factory=ScrapeDiagnostics)
    markdown: MarkdownDiagnostics = Field(default_factory=MarkdownDiagnostics)
    transcript: TranscriptDiagnostics = Field(default_factory=TranscriptDiagnostics)


class ExtractedLinkContent(BaseModel):
    """Normalized, budgeted content for one URL. Owned by the caller."""

    model_config = ConfigDict(frozen=True)

    url: str  # Final URL after redirects
    title: str | None = None
    description: str | None = None
    site_name: str | None = None
    content: str
    truncated: bool = False
    total_characters: int = 0
    word_count: int = 0
    transcript_characters: int | None = None
    transcript_lines: int | None = None
    transcript_word_count: int | None = None
    transcript_source: TranscriptSource | None = None
    transcription_provider: str | None = None
    transcript_metadata: dict[str, Any] | None = None
    media_duration_seconds: float | None = None
    video: DetectedVideo | None = None
    is_video_only: bool = False
    diagnostics: ContentFetchDiagnostics
