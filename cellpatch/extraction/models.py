"""Data records shared by the extraction stages."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

UNKNOWN_LABEL = "Unknown"

# Path separators, NUL, control characters and anything str.splitlines() breaks on.
_UNSAFE_LABEL_CHARS = re.compile(r"[/\\\x00-\x1f\x7f\x85\u2028\u2029]")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero for positive values."""

    return int(math.floor(value + 0.5))


def normalize_label(label: str | None) -> str:
    """Return a label that is safe as a path component and a counter key.

    Path separators and control characters become ``_``. A missing or blank
    label becomes ``"Unknown"``.
    """

    if label is None:
        return UNKNOWN_LABEL
    text = _UNSAFE_LABEL_CHARS.sub("_", str(label)).strip()
    return text if text else UNKNOWN_LABEL


@dataclass(frozen=True)
class DetectionPoint:
    """A detected object centroid in level-0 pixel coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class AnnotationRegion:
    """A named region and the detections it contains.

    Attributes:
        label: Human-assigned region name, made path-safe by ``normalize_label``.
        points: Detections in the order supplied by the annotation source.
    """

    label: str
    points: tuple[DetectionPoint, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "label", normalize_label(self.label))
        object.__setattr__(self, "points", tuple(self.points))


@dataclass(frozen=True)
class ImageCalibration:
    """Per-image metadata needed to size and bound patches.

    Attributes:
        native_magnification: Objective power reported by the slide, if any.
        width: Level-0 width in pixels.
        height: Level-0 height in pixels.
    """

    native_magnification: float | None
    width: int
    height: int


@dataclass(frozen=True)
class PatchGeometry:
    """Resolved patch size in level-0 pixels for one image.

    Attributes:
        downsample: Native over desired magnification.
        patch_size: Window side length in level-0 pixels.
        half_patch_size: Offset from centroid to window origin.
    """

    downsample: float
    patch_size: int
    half_patch_size: int


@dataclass(frozen=True)
class PatchWindow:
    """Square level-0 window centred on a detection."""

    x: int
    y: int
    size: int
    downsample: float

    @property
    def output_size(self) -> int:
        """Side length of the written patch in pixels."""

        return max(1, round_half_up(self.size / self.downsample))


@dataclass(frozen=True)
class PlannedPatch:
    """Planner decision for a single detection.

    Attributes:
        point_index: Position of the detection in its region.
        cx: Truncated centroid x.
        cy: Truncated centroid y.
        window: Level-0 window around the centroid.
        in_bounds: Whether the window lies fully inside the image.
        local_index: Zero-based index among in-bounds patches, None when skipped.
    """

    point_index: int
    cx: int
    cy: int
    window: PatchWindow
    in_bounds: bool
    local_index: int | None = None


class PatchStatus(str, enum.Enum):
    """Outcome of a single detection."""

    WRITTEN = "written"
    OUT_OF_BOUNDS = "out_of_bounds"
    FAILED = "failed"


@dataclass(frozen=True)
class PatchOutcome:
    """What happened to one detection."""

    point_index: int
    cx: int
    cy: int
    status: PatchStatus
    path: Path | None = None
    reason: str | None = None


@dataclass
class AnnotationYield:
    """Per-region result of an extraction run.

    Attributes:
        image_name: Name of the source image.
        label: Region label.
        sequence: Global sequence number assigned to the region.
        folder: Output folder for the region's patches.
        outcomes: One outcome per detection, in host order.
        error: Set when the region was abandoned partway.
    """

    image_name: str
    label: str
    sequence: int
    folder: Path
    outcomes: list[PatchOutcome] = field(default_factory=list)
    error: str | None = None

    def _count(self, status: PatchStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def written(self) -> int:
        return self._count(PatchStatus.WRITTEN)

    @property
    def skipped(self) -> int:
        return self._count(PatchStatus.OUT_OF_BOUNDS)

    @property
    def failed(self) -> int:
        return self._count(PatchStatus.FAILED)


@dataclass
class ImageSummary:
    """Per-image result. ``error`` is set when the image was abandoned."""

    image_name: str
    geometry: PatchGeometry | None = None
    annotations: list[AnnotationYield] = field(default_factory=list)
    error: str | None = None

    @property
    def written(self) -> int:
        return sum(item.written for item in self.annotations)

    @property
    def skipped(self) -> int:
        return sum(item.skipped for item in self.annotations)

    @property
    def failed(self) -> int:
        return sum(item.failed for item in self.annotations)


@dataclass
class RunSummary:
    """Aggregated result of a full run."""

    images: list[ImageSummary] = field(default_factory=list)

    @property
    def written(self) -> int:
        return sum(image.written for image in self.images)

    @property
    def skipped(self) -> int:
        return sum(image.skipped for image in self.images)

    @property
    def failed(self) -> int:
        return sum(image.failed for image in self.images)

    @property
    def failed_images(self) -> list[ImageSummary]:
        return [image for image in self.images if image.error is not None]

    @property
    def failed_annotations(self) -> list[AnnotationYield]:
        return [item for item in self.iter_annotations() if item.error is not None]

    def iter_annotations(self):
        """Yield every annotation result across all images."""

        for image in self.images:
            yield from image.annotations
