"""Naming and writing of patch files."""

from __future__ import annotations

import logging
from pathlib import Path

from cellpatch.extraction.models import PatchWindow

logger = logging.getLogger(__name__)

_JPEG_EXTENSIONS = {"jpg", "jpeg"}


def folder_name(label: str, sequence: int) -> str:
    """Name of the folder for one region instance, e.g. ``LG_006``."""

    return f"{label}_{sequence:03d}"


def patch_filename(image_name: str, label: str, cx: int, cy: int, local_index: int, extension: str) -> str:
    """Deterministic patch filename, e.g. ``slide_LG_2000_1500_000000.jpg``."""

    return f"{image_name}_{label}_{cx}_{cy}_{local_index:06d}.{extension}"


def ensure_output_folder(output_root: Path, label: str, sequence: int) -> Path:
    """Create and return the folder for a region instance."""

    folder = Path(output_root) / folder_name(label, sequence)
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def write_patch(source, window: PatchWindow, output_path: Path) -> Path:
    """Read a window from ``source`` and save it to ``output_path``.

    A file left behind by a failed save is removed before the error propagates.

    Args:
        source: ImageSource serving the window.
        window: In-bounds level-0 window.
        output_path: Destination file; its extension selects the format.

    Returns:
        The written path.
    """

    output_path = Path(output_path)
    patch = source.read_window(window)
    if output_path.suffix.lower().lstrip(".") in _JPEG_EXTENSIONS and patch.mode != "RGB":
        patch = patch.convert("RGB")
    try:
        patch.save(output_path)
    except Exception:
        output_path.unlink(missing_ok=True)
        raise
    return output_path
