"""
Configuration loader for BackdropShop.

Environment variables (and an optional `.env` file) are read here so the rest
of the code deals only with typed settings.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REMOVAL_PROMPT = (
    "Remove the background of this image. The main subject should be preserved perfectly. "
    "The output must be a PNG with a transparent background."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # Remote segmentation model
    gemini_api_key: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = Field(
        "gemini-2.5-flash-image-preview", validation_alias="GEMINI_MODEL"
    )
    removal_prompt: str = Field(DEFAULT_REMOVAL_PROMPT, validation_alias="REMOVAL_PROMPT")
    request_timeout_seconds: float = Field(60.0, validation_alias="REQUEST_TIMEOUT_SECONDS")

    # Export
    jpeg_quality: int = Field(95, validation_alias="JPEG_QUALITY")

    # Uploads ("PNG, JPG, GIF up to 10MB")
    max_upload_bytes: int = Field(10 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @field_validator("jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("JPEG_QUALITY must be between 1 and 100")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be > 0")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
