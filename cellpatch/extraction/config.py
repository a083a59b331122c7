"""Configuration models for cell-centred patch extraction."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cellpatch.config import config as global_config


class ExtractionConfig(BaseSettings):
    """Configuration for the patch extraction run.

    Attributes:
        base_patch_pixels: Patch side length at the desired magnification.
        desired_magnification: Target magnification the patches should represent.
        default_native_magnification: Fallback native magnification when slide metadata is absent.
        output_root: Root directory for patch folders and the counter file.
        image_file_extension: Extension (without dot) of written patch files.
        counter_filename: Name of the counter file inside ``output_root``.
        strict_counters: Fail the run on any corrupt counter entry instead of skipping it.
        use_lock: Hold an advisory lock file in ``output_root`` for the duration of a run.
        lock_filename: Name of the lock file inside ``output_root``.
        slide_dir: Directory scanned for slide images.
        annotation_dir: Directory holding one GeoJSON export per slide.
        slide_extensions: Slide file extensions picked up during discovery.
        annotation_suffix: Suffix appended to the slide stem to find its annotation file.
        max_images: Optional cap on the number of slides to process.
        report_path: Optional CSV path for a per-annotation yield summary.
    """

    model_config = SettingsConfigDict(
        env_prefix="CELLPATCH_EXTRACT_",
        env_nested_delimiter="__",
        frozen=True,
    )

    base_patch_pixels: int = Field(default=224, ge=1)
    desired_magnification: float = Field(default=40.0, gt=0.0)
    default_native_magnification: float = Field(default=40.0, gt=0.0)

    output_root: Path = Field(default=global_config.output_dir / "patches")
    image_file_extension: str = Field(default="jpg", min_length=1)
    counter_filename: str = Field(default="annotation_counts.txt")
    strict_counters: bool = Field(default=False)
    use_lock: bool = Field(default=True)
    lock_filename: str = Field(default=".extraction.lock")

    slide_dir: Path = Field(default=Path("dataset/slides"))
    annotation_dir: Path = Field(default=Path("dataset/annotations"))
    slide_extensions: tuple[str, ...] = Field(
        default=(".svs", ".tif", ".tiff", ".ndpi", ".mrxs", ".scn", ".png", ".jpg", ".jpeg")
    )
    annotation_suffix: str = Field(default=".geojson")
    max_images: int | None = Field(default=None, ge=1)
    report_path: Path | None = Field(default=None)

    @property
    def counter_path(self) -> Path:
        """Path of the global counter file."""

        return self.output_root / self.counter_filename

    @property
    def lock_path(self) -> Path:
        """Path of the advisory lock file."""

        return self.output_root / self.lock_filename

    def as_extension_set(self) -> set[str]:
        """Return lowercase slide extension set for filtering files."""

        return {ext.lower() for ext in self.slide_extensions}

    @field_validator("image_file_extension", mode="before")
    @classmethod
    def _normalize_extension(cls, value: object) -> str:
        """Strip a leading dot and lower-case the patch extension.

        Args:
            value: Raw extension input.

        Returns:
            Normalized extension such as ``"jpg"``.
        """

        text = str(value).strip().lstrip(".").lower()
        if not text:
            raise ValueError("image_file_extension must not be empty")
        return text

    @field_validator("slide_extensions", mode="before")
    @classmethod
    def _coerce_extensions(cls, value: object) -> tuple[str, ...]:
        """Ensure slide extensions are stored as a tuple.

        Args:
            value: Raw extensions input.

        Returns:
            Tuple of extensions.
        """

        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return (str(value),)


def load_extraction_config() -> ExtractionConfig:
    """Load extraction configuration from defaults and environment variables.

    Returns:
        ExtractionConfig instance.
    """

    return ExtractionConfig()
