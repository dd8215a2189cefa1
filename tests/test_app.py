"""Tests for the /extract endpoint and its error mapping."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from link_preview.app import app
from link_preview.errors import (
    AllProvidersExhausted,
    FetchFailed,
    FetchTimeout,
    ProviderUnavailable,
    UnsupportedContentType,
)
from link_preview.models.content import (
    ContentFetchDiagnostics,
    ExtractedLinkContent,
    ExtractionStrategy,
)


@pytest.fixture
def client():
    """Create a TestClient scoped to this module (not session-scoped conftest)."""
    return TestClient(app)


@pytest.fixture
def preview_client(monkeypatch):
    """Replace the lifespan-built client with a mock."""
    fake = MagicMock()
    fake.fetch_link_content = AsyncMock()
    monkeypatch.setattr(app.state, "client", fake, raising=False)
    return fake


def test_extract_returns_content(client: TestClient, preview_client):
    """POST /extract returns the extracted content as JSON."""
    preview_client.fetch_link_content.return_value = ExtractedLinkContent(
        url="https://example.com/final",
        title="Example",
        content="Hello world",
        total_characters=11,
        word_count=2,
        diagnostics=ContentFetchDiagnostics(strategy=ExtractionStrategy.HTML),
    )

    response = client.post("/extract", json={"url": "https://example.com", "max_characters": 500})

    assert response.status_code == 200
    body = response.json()
    assert body["url"] == "https://example.com/final"
    assert body["content"] == "Hello world"
    assert body["diagnostics"]["strategy"] == "html"
    request = preview_client.fetch_link_content.call_args.args[0]
    assert request.url == "https://example.com"
    assert request.max_characters == 500


def test_extract_rejects_invalid_budget(client: TestClient, preview_client):
    """A non-positive max_characters is a validation error."""
    response = client.post("/extract", json={"url": "https://example.com", "max_characters": 0})
    assert response.status_code == 422
    preview_client.fetch_link_content.assert_not_called()


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (FetchTimeout("https://example.com", 5.0), 504),
        (UnsupportedContentType("https://example.com", "image/png"), 415),
        (FetchFailed("https://example.com", status=404), 502),
        (AllProvidersExhausted("nothing"), 422),
        (ProviderUnavailable("no backend"), 503),
    ],
)
def test_extract_maps_errors(client: TestClient, preview_client, error, status):
    """Pipeline errors map to HTTP status codes."""
    preview_client.fetch_link_content.side_effect = error

    response = client.post("/extract", json={"url": "https://example.com"})

    assert response.status_code == status
    assert str(error) in response.json()["detail"]
