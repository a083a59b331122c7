"""Centroid-to-window planning with boundary filtering."""

from __future__ import annotations

from collections.abc import Iterable

from cellpatch.extraction.models import DetectionPoint, ImageCalibration, PatchGeometry, PatchWindow, PlannedPatch


def window_for_point(point: DetectionPoint, geometry: PatchGeometry) -> tuple[int, int, PatchWindow]:
    """Return the truncated centroid and the window centred on it."""

    cx = int(point.x)
    cy = int(point.y)
    window = PatchWindow(
        x=cx - geometry.half_patch_size,
        y=cy - geometry.half_patch_size,
        size=geometry.patch_size,
        downsample=geometry.downsample,
    )
    return cx, cy, window


def is_in_bounds(window: PatchWindow, width: int, height: int) -> bool:
    """Check that a window lies fully inside the image. Edges are inclusive."""

    return (
        window.x >= 0
        and window.y >= 0
        and window.x + window.size <= width
        and window.y + window.size <= height
    )


def plan_patches(
    points: Iterable[DetectionPoint],
    calibration: ImageCalibration,
    geometry: PatchGeometry,
) -> list[PlannedPatch]:
    """Plan one window per detection.

    Windows that cross the image edge are marked out-of-bounds; they are never
    clipped or shifted. In-bounds windows get consecutive local indices in the
    order the detections were supplied.

    Args:
        points: Detections of one region.
        calibration: Image extent.
        geometry: Patch size for the image.

    Returns:
        One PlannedPatch per input point, in input order.
    """

    planned: list[PlannedPatch] = []
    local_index = 0
    for point_index, point in enumerate(points):
        cx, cy, window = window_for_point(point, geometry)
        if is_in_bounds(window, calibration.width, calibration.height):
            planned.append(PlannedPatch(point_index, cx, cy, window, in_bounds=True, local_index=local_index))
            local_index += 1
        else:
            planned.append(PlannedPatch(point_index, cx, cy, window, in_bounds=False))
    return planned
