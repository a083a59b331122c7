"""Image sources that can serve arbitrary level-0 windows."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import numpy as np
import openslide
from PIL import Image

from cellpatch.extraction.models import ImageCalibration, PatchWindow, round_half_up

logger = logging.getLogger(__name__)


class ImageSource(Protocol):
    """Read-only access to one image."""

    name: str

    def calibration(self) -> ImageCalibration:
        ...

    def read_window(self, window: PatchWindow) -> Image.Image:
        ...


def _parse_magnification(raw: object) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable objective power %r", raw)
        return None


class OpenSlideSource:
    """Pyramidal whole-slide image opened with openslide.

    Args:
        path: Slide file path.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.name = self.path.stem
        self._slide = openslide.OpenSlide(str(self.path))

    def calibration(self) -> ImageCalibration:
        width, height = self._slide.dimensions
        native = _parse_magnification(self._slide.properties.get(openslide.PROPERTY_NAME_OBJECTIVE_POWER))
        return ImageCalibration(native_magnification=native, width=int(width), height=int(height))

    def read_window(self, window: PatchWindow) -> Image.Image:
        """Read a level-0 window and resize it to the window's output size.

        The read uses the pyramid level closest to the requested downsample.
        """

        read_level = self._slide.get_best_level_for_downsample(window.downsample)
        level_downsample = self._slide.level_downsamples[read_level]
        read_size = max(1, round_half_up(window.size / level_downsample))
        target_size = window.output_size

        patch = self._slide.read_region((window.x, window.y), read_level, (read_size, read_size)).convert("RGB")
        if read_size != target_size:
            patch = patch.resize((target_size, target_size), Image.Resampling.LANCZOS)
        return patch

    def close(self) -> None:
        self._slide.close()

    def __enter__(self) -> "OpenSlideSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ArrayImageSource:
    """In-memory RGB image, for flat images that openslide cannot open.

    Args:
        name: Image name used in patch filenames.
        image: RGB array with shape (H, W, 3).
        native_magnification: Optional objective power of the image.
    """

    def __init__(self, name: str, image: np.ndarray, native_magnification: float | None = None) -> None:
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Expected RGB image with shape (H, W, 3), got {image.shape}")
        self.name = name
        self.image = image
        self.native_magnification = native_magnification

    @classmethod
    def from_file(cls, path: Path, native_magnification: float | None = None) -> "ArrayImageSource":
        """Load a flat image file as an RGB array."""

        path = Path(path)
        with Image.open(path) as image:
            rgb_image = image.convert("RGB")
        return cls(path.stem, np.array(rgb_image, dtype=np.uint8), native_magnification)

    def calibration(self) -> ImageCalibration:
        height, width, _ = self.image.shape
        return ImageCalibration(native_magnification=self.native_magnification, width=width, height=height)

    def read_window(self, window: PatchWindow) -> Image.Image:
        crop = self.image[window.y : window.y + window.size, window.x : window.x + window.size, :]
        if crop.shape[0] != window.size or crop.shape[1] != window.size:
            raise ValueError(f"Window {window} exceeds image bounds {self.image.shape[:2]}")
        patch = Image.fromarray(np.ascontiguousarray(crop, dtype=np.uint8))
        target_size = window.output_size
        if target_size != window.size:
            patch = patch.resize((target_size, target_size), Image.Resampling.LANCZOS)
        return patch

    def close(self) -> None:
        pass

    def __enter__(self) -> "ArrayImageSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_image_source(path: Path, flat_extensions: frozenset[str] = frozenset({".png", ".jpg", ".jpeg"})):
    """Open a slide with openslide, or as a flat array for plain image formats."""

    path = Path(path)
    if path.suffix.lower() in flat_extensions:
        return ArrayImageSource.from_file(path)
    return OpenSlideSource(path)
