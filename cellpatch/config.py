"""Global configuration for the cellpatch project."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Global configuration settings.

    Attributes:
        debug: Enable debug mode. When True, processing is limited to a small number of images (default 5).
        debug_max_images: Number of images to process in debug mode.
        output_dir: Root directory for generated artifacts.
    """

    model_config = SettingsConfigDict(env_prefix="CELLPATCH_", extra="ignore")

    debug: bool = Field(default=False)
    debug_max_images: int = Field(default=5, ge=1)

    output_dir: Path = Field(default=Path("output"))


config = Config()
