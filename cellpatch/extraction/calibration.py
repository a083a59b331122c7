"""Magnification-driven patch sizing.

Slides scanned at a magnification other than the desired one need a larger or
smaller level-0 window so that the written patch covers the same physical
area. Missing objective power is common in slide metadata, so every invalid
input falls back to a default instead of raising.
"""

from __future__ import annotations

import logging
import math

from cellpatch.extraction.config import ExtractionConfig
from cellpatch.extraction.models import PatchGeometry, round_half_up

logger = logging.getLogger(__name__)


def _is_valid_magnification(value: float | None) -> bool:
    if value is None:
        return False
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0.0


def resolve_patch_geometry(native_magnification: float | None, config: ExtractionConfig) -> PatchGeometry:
    """Compute the level-0 patch size for an image.

    Args:
        native_magnification: Objective power from slide metadata. May be None, NaN or non-positive.
        config: Extraction configuration providing the base patch size and magnifications.

    Returns:
        PatchGeometry with positive ``patch_size`` and ``half_patch_size``.
    """

    if _is_valid_magnification(native_magnification):
        native = float(native_magnification)
    else:
        native = float(config.default_native_magnification)
        logger.warning(
            "Native magnification %r is missing or invalid; using default %.2f",
            native_magnification,
            native,
        )

    downsample = native / float(config.desired_magnification)
    if not math.isfinite(downsample) or downsample <= 0.0:
        logger.warning("Downsample %r is invalid; using 1.0", downsample)
        downsample = 1.0

    base = int(config.base_patch_pixels)
    patch_size = max(1, round_half_up(base * downsample))
    half_patch_size = max(1, round_half_up((base / 2.0) * downsample))

    logger.debug(
        "Patch geometry native=%.2f desired=%.2f downsample=%.4f patch_size=%d half=%d",
        native,
        config.desired_magnification,
        downsample,
        patch_size,
        half_patch_size,
    )
    return PatchGeometry(downsample=downsample, patch_size=patch_size, half_patch_size=half_patch_size)
