from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from cellpatch.extraction.config import ExtractionConfig
from cellpatch.extraction.models import ImageCalibration, PatchWindow


class FakeSource:
    """Image source that serves flat grey patches and records every read."""

    def __init__(
        self,
        name: str = "slide",
        width: int = 4000,
        height: int = 3000,
        native_magnification: float | None = 40.0,
        fail_at: set[tuple[int, int]] | None = None,
    ) -> None:
        self.name = name
        self.width = width
        self.height = height
        self.native_magnification = native_magnification
        self.fail_at = fail_at or set()
        self.reads: list[PatchWindow] = []
        self.closed = False

    def calibration(self) -> ImageCalibration:
        return ImageCalibration(self.native_magnification, self.width, self.height)

    def read_window(self, window: PatchWindow) -> Image.Image:
        self.reads.append(window)
        if (window.x, window.y) in self.fail_at:
            raise OSError(f"simulated read failure at {window.x},{window.y}")
        return Image.new("RGB", (window.output_size, window.output_size), (128, 128, 128))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def extraction_config(tmp_path: Path) -> ExtractionConfig:
    return ExtractionConfig(output_root=tmp_path / "patches")
