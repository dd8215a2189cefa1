"""Shared test fixtures."""

import httpx
import pytest
from fastapi.testclient import TestClient

from link_preview.app import app
from link_preview.config import Settings


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a TestClient for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def settings() -> Settings:
    """Settings with every optional service disabled, ignoring any local .env."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        fal_api_key="",
        apify_api_token="",
        firecrawl_api_key="",
        gemini_api_key="",
        yt_dlp_path="",
        social_reader_path="",
        whisper_cpp_model_path="",
        disable_local_whisper=True,
    )


@pytest.fixture
def mock_http():
    """Factory for an AsyncClient whose requests are answered by ``handler(request)``."""

    def build(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
