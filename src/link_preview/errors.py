"""Exception taxonomy for the extraction pipeline.

Page-level failures (fetch errors, unsupported assets, exhausted
short-circuit chains) propagate to the caller. Provider-level failures are
raised inside providers and converted into soft results by the transcript
resolver; they never reach the caller.
"""


class LinkPreviewError(Exception):
    """Base class for all pipeline errors."""


class FetchTimeout(LinkPreviewError):
    """The page fetch did not complete within its timeout."""

    def __init__(self, url: str, timeout_seconds: float):
        self.url = url
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Fetching {url} timed out after {timeout_seconds:.1f}s")


class FetchFailed(LinkPreviewError):
    """The page fetch completed but produced no usable document."""

    def __init__(self, url: str, status: int | None = None, reason: str | None = None):
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"status {status}" if status is not None else (reason or "request error")
        if status is not None and reason:
            detail = f"{detail}: {reason}"
        super().__init__(f"Failed to fetch {url} ({detail})")


class UnsupportedContentType(FetchFailed):
    """The response (or asset) has a content type the pipeline cannot read."""

    def __init__(self, url: str, content_type: str | None, status: int | None = None):
        self.content_type = content_type
        super().__init__(url, status, f"unsupported content-type {content_type or 'unknown'}")


class ProviderUnavailable(LinkPreviewError):
    """A provider matched but is not configured (missing key or binary)."""


class ProviderFailed(LinkPreviewError):
    """A provider was attempted and errored."""


class AllProvidersExhausted(LinkPreviewError):
    """Every reader for a source ran without producing content."""


class CacheUnavailable(LinkPreviewError):
    """The cache store could not be opened or used."""
