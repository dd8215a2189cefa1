"""Transcript providers, grouped by source kind."""

from link_preview.transcript.providers.generic import GenericProvider
from link_preview.transcript.providers.podcast import EpisodeAudioProvider, FeedTranscriptProvider
from link_preview.transcript.providers.social import MirrorReaderProvider, SocialReaderCommandProvider
from link_preview.transcript.providers.youtube import (
    CaptionsProvider,
    ManagedTranscriptProvider,
    MediaDownloadProvider,
)

__all__ = [
    "CaptionsProvider",
    "ManagedTranscriptProvider",
    "MediaDownloadProvider",
    "FeedTranscriptProvider",
    "EpisodeAudioProvider",
    "SocialReaderCommandProvider",
    "MirrorReaderProvider",
    "GenericProvider",
]
