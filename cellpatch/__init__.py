"""Core package for cell-centred patch extraction from whole-slide images.

Keep imports lightweight so that counter and planning utilities can be used
without pulling in openslide.
"""

from __future__ import annotations

__all__ = ["PatchExtractionRunner"]


def __getattr__(name: str):
	if name == "PatchExtractionRunner":
		from cellpatch.extraction.pipeline import PatchExtractionRunner  # local import (lazy)

		return PatchExtractionRunner
	raise AttributeError(name)
