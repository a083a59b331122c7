"""Read annotation regions and their detections from QuPath GeoJSON exports.

QuPath writes annotations and detections as flat features. Each detection is
attached to the first annotation (in file order) whose geometry covers its
centroid; detections outside every annotation are dropped and counted.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from shapely.errors import ShapelyError
from shapely.geometry import Point, shape
from shapely.prepared import prep

from cellpatch.extraction.errors import AnnotationFormatError
from cellpatch.extraction.models import AnnotationRegion, DetectionPoint

logger = logging.getLogger(__name__)

ANNOTATION_TYPES = {"annotation"}
DETECTION_TYPES = {"detection", "cell"}


def _iter_features(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if data.get("type") == "FeatureCollection":
            return list(data.get("features", []))
        if data.get("type") == "Feature":
            return [data]
    raise AnnotationFormatError("Expected a GeoJSON FeatureCollection, Feature or list of features")


def _object_type(feature: dict[str, Any]) -> str:
    properties = feature.get("properties") or {}
    # Older QuPath versions put objectType directly on the feature.
    return str(properties.get("objectType") or feature.get("objectType") or "").lower()


def _detection_centroid(feature: dict[str, Any]) -> DetectionPoint:
    properties = feature.get("properties") or {}
    geometry = feature.get("nucleusGeometry") or properties.get("nucleusGeometry") or feature.get("geometry")
    if not geometry:
        raise AnnotationFormatError(f"Detection feature {feature.get('id')!r} has no geometry")
    centroid = shape(geometry).centroid
    return DetectionPoint(x=float(centroid.x), y=float(centroid.y))


def parse_annotation_features(data: Any) -> list[AnnotationRegion]:
    """Build regions from decoded GeoJSON.

    Args:
        data: Decoded GeoJSON document.

    Returns:
        Regions in file order, each with the detections it covers.
    """

    features = _iter_features(data)
    region_labels: list[str | None] = []
    region_shapes = []
    centroids: list[DetectionPoint] = []

    try:
        for feature in features:
            object_type = _object_type(feature)
            if object_type in ANNOTATION_TYPES:
                properties = feature.get("properties") or {}
                region_labels.append(properties.get("name"))
                region_shapes.append(prep(shape(feature["geometry"])))
            elif object_type in DETECTION_TYPES:
                centroids.append(_detection_centroid(feature))
    except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as exc:
        raise AnnotationFormatError(f"Invalid feature geometry: {exc}") from exc

    assigned: list[list[DetectionPoint]] = [[] for _ in region_shapes]
    unassigned = 0
    for centroid in centroids:
        location = Point(centroid.x, centroid.y)
        for index, region_shape in enumerate(region_shapes):
            if region_shape.covers(location):
                assigned[index].append(centroid)
                break
        else:
            unassigned += 1

    if unassigned:
        logger.info("%d detections lie outside every annotation and were ignored", unassigned)

    return [AnnotationRegion(label=label, points=tuple(points)) for label, points in zip(region_labels, assigned)]


def load_geojson_annotations(path: Path) -> list[AnnotationRegion]:
    """Load regions and detections from a QuPath GeoJSON export.

    Raises:
        AnnotationFormatError: If the file is not valid GeoJSON.
    """

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as file_handle:
            data = json.load(file_handle)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise AnnotationFormatError(f"Cannot read annotations from {path}: {exc}") from exc

    regions = parse_annotation_features(data)
    logger.info(
        "Loaded %d annotations with %d detections from %s",
        len(regions),
        sum(len(region.points) for region in regions),
        path,
    )
    return regions


def find_annotation_file(slide_path: Path, annotation_dir: Path, suffix: str = ".geojson") -> Path | None:
    """Return the annotation export matching a slide, if present.

    Both ``<stem><suffix>`` and ``<name><suffix>`` are tried.
    """

    slide_path = Path(slide_path)
    annotation_dir = Path(annotation_dir)
    for candidate in (annotation_dir / f"{slide_path.stem}{suffix}", annotation_dir / f"{slide_path.name}{suffix}"):
        if candidate.is_file():
            return candidate
    return None
