"""FastAPI application with lifespan, health and extract endpoints."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request

from link_preview.cache import ContentCache
from link_preview.client import LinkPreviewClient
from link_preview.config import get_settings
from link_preview.errors import (
    AllProvidersExhausted,
    CacheUnavailable,
    FetchFailed,
    FetchTimeout,
    ProviderUnavailable,
    UnsupportedContentType,
)
from link_preview.logging_config import configure_logging
from link_preview.models.content import ExtractedLinkContent, ExtractionRequest

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: configure logging, open the shared cache, build the client."""
    settings = get_settings()
    configure_logging(settings.log_level)
    app.state.settings = settings

    cache = None
    try:
        cache = ContentCache(settings.cache_path, settings.cache_max_bytes)
    except CacheUnavailable as exc:
        logger.warning("Running without cache: %s", exc)

    client = LinkPreviewClient.from_settings(settings, cache=cache)
    app.state.cache = cache
    app.state.client = client
    try:
        yield
    finally:
        await client.aclose()
        if cache is not None:
            cache.close()


app = FastAPI(
    title="Link Preview",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "link-preview",
        "version": "0.1.0",
    }


@app.post("/extract", response_model=ExtractedLinkContent)
async def extract_endpoint(body: ExtractionRequest, request: Request):
    """Extract normalized content for one URL.

    Page-level failures map to HTTP errors; transcript chain exhaustion is
    reported inside the result diagnostics.
    """
    client: LinkPreviewClient = request.app.state.client
    try:
        return await client.fetch_link_content(body)
    except FetchTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    except UnsupportedContentType as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except FetchFailed as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except AllProvidersExhausted as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ProviderUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def main() -> None:
    """Run the daemon with uvicorn on ``Settings.port``."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
