"""
Email suite configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Email suite settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted backend (mail provider functions, storage, signature records)
    gateway_base_url: str = "http://localhost:54321"
    gateway_api_key: Optional[str] = None
    gateway_timeout: float = 30.0
    gateway_max_retries: int = 3
    storage_bucket: str = "email-assets"

    # Message list / search
    message_page_size: int = 25
    search_limit: int = 50
    search_debounce_ms: int = 300

    # Uploads
    attachment_max_bytes: int = 25 * MEGABYTE
    attachment_max_files: int = 10
    signature_logo_max_bytes: int = 5 * MEGABYTE
    upload_error_clear_seconds: float = 5.0

    # Cache
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    folder_cache_ttl: int = 300
    message_cache_ttl: int = 60

    # Background sync (0 disables polling)
    sync_interval_seconds: int = 120

    # App Settings
    debug: bool = False
    log_level: str = "INFO"

    @property
    def search_debounce_seconds(self) -> float:
        """Debounce window for search keystrokes, in seconds."""
        return self.search_debounce_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
