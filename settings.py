"""Configuration for the chart calculation core, loaded from the environment or .env."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings. Every field can be overridden with a CHART_* variable."""

    model_config = SettingsConfigDict(
        env_prefix="CHART_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    ephemeris_path: Optional[str] = None
    ephemeris_mode: Literal["swiss", "approximate"] = "swiss"
    default_house_system: str = "W"

    # 1 week for natal/composite, 1 hour for transits
    natal_cache_ttl: int = Field(default=604800, ge=0)
    transit_cache_ttl: int = Field(default=3600, ge=0)
    cache_maxsize: int = Field(default=1024, ge=1)

    ephemeris_timeout_seconds: float = Field(default=5.0, gt=0)
    max_workers: int = Field(default=4, ge=1)

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
