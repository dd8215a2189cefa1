"""Data models and enums for the link preview pipeline."""

from link_preview.models.content import (
    ContentFetchDiagnostics,
    ContentFormat,
    DetectedVideo,
    ExtractedLinkContent,
    ExtractionRequest,
    ExtractionStrategy,
    MarkdownDiagnostics,
    MarkdownMode,
    ScrapeDiagnostics,
    ScrapeMode,
    VideoTranscriptMode,
)
from link_preview.models.progress import ProgressEvent
from link_preview.models.transcript import (
    CacheMode,
    CacheStatus,
    ProviderOutcome,
    ProviderResult,
    TranscriptDiagnostics,
    TranscriptResolution,
    TranscriptSource,
)

__all__ = [
    "CacheMode",
    "CacheStatus",
    "ContentFetchDiagnostics",
    "ContentFormat",
    "DetectedVideo",
    "ExtractedLinkContent",
    "ExtractionRequest",
    "ExtractionStrategy",
    "MarkdownDiagnostics",
    "MarkdownMode",
    "ProgressEvent",
    "ProviderOutcome",
    "ProviderResult",
    "ScrapeDiagnostics",
    "ScrapeMode",
    "TranscriptDiagnostics",
    "TranscriptResolution",
    "TranscriptSource",
    "VideoTranscriptMode",
]
