"""Application configuration."""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from .env and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="EA_STUDIO_")

    catalog_dir: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EA_STUDIO_CATALOG_DIR", "EA_STUDIO_REGISTRY_DIR"),
    )
    output_dir: str = "outputs"
    history_limit: int = Field(default=100, ge=1)
    paste_offset: float = 24.0
    nudge_step: float = 16.0  # one snap-grid cell
    default_impact_depth: int = Field(default=1, ge=1, le=3)
    log_level: str = "INFO"


settings = Settings()
