"""Application configuration via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Speech-to-text
    openai_api_key: str = ""
    fal_api_key: str = ""
    whisper_cpp_binary: str = "whisper-cli"
    whisper_cpp_model_path: str = ""
    disable_local_whisper: bool = False

    # Managed services
    apify_api_token: str = ""
    firecrawl_api_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"

    # External commands
    yt_dlp_path: str = ""
    social_reader_path: str = ""

    # YouTube
    youtube_proxy_url: str = ""

    # Cache
    cache_path: str = "~/.cache/link-preview/cache.sqlite"
    cache_max_bytes: int = 256 * 1024 * 1024
    transcript_cache_ttl_seconds: int = 30 * 24 * 3600
    content_cache_ttl_seconds: int = 24 * 3600

    # Extraction
    default_timeout_seconds: float = 120.0
    min_html_content_characters: int = 200
    min_readability_content_characters: int = 200
    min_metadata_description_characters: int = 120
    readability_relative_threshold: float = 0.6
    min_html_document_characters_for_fallback: int = 5000

    # App
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8080


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings. Lazy initialization to avoid import-time errors."""
    return Settings()
