"""Transcript resolution: provider chains for video, podcast and social links.

Public API:
    TranscriptResolver.from_settings(settings, client, ...) -> TranscriptResolver
        ``resolve(url, html, cache_mode=..., mode=...)`` walks the chain for
        the URL and returns a ``TranscriptResolution`` with diagnostics.
"""

from link_preview.transcript.resolver import (
    GENERIC_CHAIN,
    PODCAST_CHAIN,
    SOCIAL_CHAIN,
    VIDEO_CHAIN,
    TranscriptResolver,
    select_service,
)

__all__ = [
    "TranscriptResolver",
    "select_service",
    "VIDEO_CHAIN",
    "PODCAST_CHAIN",
    "SOCIAL_CHAIN",
    "GENERIC_CHAIN",
]
