"""Cell-centred patch extraction with global per-label folder numbering.

Exports the config, counter store and runner for convenient imports. The
openslide-backed sources live in ``cellpatch.extraction.slide``.
"""

from .config import ExtractionConfig, load_extraction_config
from .counters import GlobalCounters
from .models import AnnotationRegion, DetectionPoint, ImageCalibration, PatchStatus, RunSummary
from .pipeline import PatchExtractionRunner, SlideJob, StaticImageJob

__all__ = [
    "AnnotationRegion",
    "DetectionPoint",
    "ExtractionConfig",
    "GlobalCounters",
    "ImageCalibration",
    "PatchExtractionRunner",
    "PatchStatus",
    "RunSummary",
    "SlideJob",
    "StaticImageJob",
    "load_extraction_config",
]
