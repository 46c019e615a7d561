"""Runtime settings for the scraper, read from VARIANT_SCRAPER_* env vars or .env."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from parser import DEFAULT_ORIGIN


class ScraperSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VARIANT_SCRAPER_",
        env_file=".env",
        extra="ignore",
    )

    # Origin for variant URLs when the page has no canonical link and no URL was given
    default_origin: str = DEFAULT_ORIGIN

    # Timeouts (seconds)
    page_timeout: float = Field(default=15.0, gt=0)
    variant_timeout: float = Field(default=8.0, gt=0)

    # Backfill limits. Some hosts cap outbound requests per inbound request
    # at roughly 50, so max_backfill stays under that.
    max_backfill: int = Field(default=48, ge=0)
    concurrency_limit: int | None = Field(default=None, ge=1)  # None = all at once
    interactive_delay: float = Field(default=1.0, ge=0)
    auto_backfill: bool = True

    # HTML responses shorter than this are treated as error/redirect pages
    min_document_length: int = Field(default=500, ge=0)

    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> ScraperSettings:
    return ScraperSettings()
