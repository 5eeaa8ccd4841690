"""Configuration settings using pydantic-settings for environment variable loading."""

from datetime import timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Variables use the ``GIGWAVE_`` prefix (e.g. ``GIGWAVE_STORE_PATH``).
    Environment variables take precedence over the .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="GIGWAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    store_path: Path = Field(default_factory=lambda: Path.home() / ".gigwave" / "gigwave.db")

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Gig scheduling
    venue_utc_offset_minutes: int = 330
    check_with_venue_after_minutes: int = 30
    auto_close_after_minutes: int = 300
    sweep_interval_minutes: int = 10

    # Song limit policy
    min_song_limit: int = 5
    max_song_limit: int = 60
    default_song_limit: int = 20

    # Distances (km)
    interaction_radius_km: float = 5.0
    join_radius_km: float = 1.0
    nearby_radius_km: float = 50.0

    @property
    def venue_timezone(self) -> timezone:
        """Fixed offset used to interpret gig dates and times."""
        return timezone(timedelta(minutes=self.venue_utc_offset_minutes))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
