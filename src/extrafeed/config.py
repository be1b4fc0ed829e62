"""Library configuration using pydantic-settings.

Settings are read from EXTRAFEED_* environment variables (or a .env file)
unless a FeedSettings instance is passed explicitly.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FEED_URL = "https://spreadsheets.google.com/feeds/"
FEED_SCOPE = "https://spreadsheets.google.com/feeds"


class FeedSettings(BaseSettings):
    """Settings for talking to the spreadsheet feeds.

    Environment variables:
    - EXTRAFEED_FEED_URL: Root of the feed endpoints
    - EXTRAFEED_GDATA_VERSION: Protocol version sent with every request
    - EXTRAFEED_TIMEOUT: Request timeout in seconds for the default transport
    - EXTRAFEED_VISIBILITY / EXTRAFEED_PROJECTION: Override the values
      derived from the authentication state
    - EXTRAFEED_TOKEN_REFRESH_BUFFER: Seconds before expiry at which a
      token is treated as expired
    """

    model_config = SettingsConfigDict(
        env_prefix="EXTRAFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    feed_url: str = DEFAULT_FEED_URL
    gdata_version: str = "3.0"
    timeout: float = 60

    # None means "derive from whether auth is present"
    visibility: Literal["public", "private"] | None = None
    projection: Literal["values", "full"] | None = None

    token_refresh_buffer: int = 60

    @field_validator("feed_url")
    @classmethod
    def validate_feed_url(cls, v: str) -> str:
        """Require an http(s) URL and normalize the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("feed_url must be an http(s) URL")
        return v if v.endswith("/") else v + "/"

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("token_refresh_buffer")
    @classmethod
    def validate_token_refresh_buffer(cls, v: int) -> int:
        if v < 0:
            raise ValueError("token_refresh_buffer must not be negative")
        return v


@lru_cache
def get_settings() -> FeedSettings:
    """Get cached settings instance loaded from the environment."""
    return FeedSettings()
