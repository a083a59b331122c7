"""Patch extraction run: calibration, planning, writing and global numbering."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from tqdm import tqdm

from cellpatch.extraction import counters as counter_store
from cellpatch.extraction.annotations import load_geojson_annotations
from cellpatch.extraction.calibration import resolve_patch_geometry
from cellpatch.extraction.config import ExtractionConfig
from cellpatch.extraction.counters import GlobalCounters
from cellpatch.extraction.errors import ExtractionSetupError
from cellpatch.extraction.models import (
    AnnotationRegion,
    AnnotationYield,
    ImageCalibration,
    ImageSummary,
    PatchGeometry,
    PatchOutcome,
    PatchStatus,
    RunSummary,
)
from cellpatch.extraction.planner import plan_patches
from cellpatch.extraction.writer import ensure_output_folder, folder_name, patch_filename, write_patch

logger = logging.getLogger(__name__)


class ImageJob(Protocol):
    """One image to process: how to open it and where its regions come from."""

    name: str

    def open(self):
        ...

    def load_regions(self) -> Sequence[AnnotationRegion]:
        ...


@dataclass
class StaticImageJob:
    """Job over an already opened source and an in-memory region list."""

    source: object
    regions: Sequence[AnnotationRegion]

    @property
    def name(self) -> str:
        return self.source.name

    def open(self):
        return self.source

    def load_regions(self) -> Sequence[AnnotationRegion]:
        return self.regions


@dataclass(frozen=True)
class SlideJob:
    """Job over a slide file and its QuPath GeoJSON export."""

    slide_path: Path
    annotation_path: Path

    @property
    def name(self) -> str:
        return self.slide_path.stem

    def open(self):
        from cellpatch.extraction.slide import open_image_source  # local import (openslide)

        return open_image_source(self.slide_path)

    def load_regions(self) -> Sequence[AnnotationRegion]:
        return load_geojson_annotations(self.annotation_path)


class PatchExtractionRunner:
    """Extract cell-centred patches and number region folders globally.

    Counters are loaded once before the first image and persisted once after
    the last, including when an image fails midway.

    Args:
        config: Extraction configuration.
    """

    def __init__(self, config: ExtractionConfig) -> None:
        self.config = config

    def run(self, jobs: Iterable[ImageJob]) -> RunSummary:
        """Process every image job.

        Args:
            jobs: Images to process, in order.

        Returns:
            RunSummary with one ImageSummary per job.

        Raises:
            ExtractionSetupError: If the output root cannot be created, the lock is held,
                or the counter file is corrupt in strict mode.
        """

        output_root = self._prepare_output_root()
        summary = RunSummary()

        with ExitStack() as stack:
            if self.config.use_lock:
                stack.enter_context(counter_store.counter_lock(self.config.lock_path))
            counters = counter_store.load(self.config.counter_path, strict=self.config.strict_counters)

            try:
                for job in tqdm(list(jobs), desc="Extracting patches"):
                    summary.images.append(self._process_job(job, counters, output_root))
            finally:
                counter_store.persist(counters, self.config.counter_path)

        logger.info(
            "run done images=%d failed_images=%d written=%d skipped=%d failed=%d",
            len(summary.images),
            len(summary.failed_images),
            summary.written,
            summary.skipped,
            summary.failed,
        )
        return summary

    def _prepare_output_root(self) -> Path:
        output_root = Path(self.config.output_root)
        try:
            output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExtractionSetupError(f"Cannot create output root {output_root}: {exc}") from exc
        return output_root

    def _process_job(self, job: ImageJob, counters: GlobalCounters, output_root: Path) -> ImageSummary:
        try:
            regions = job.load_regions()
            source = job.open()
        except Exception as exc:
            logger.error("image failed image=%s error=%s", job.name, exc, exc_info=True)
            return ImageSummary(image_name=job.name, error=str(exc))

        try:
            return self.process_image(source, regions, counters, output_root)
        except Exception as exc:
            logger.error("image failed image=%s error=%s", job.name, exc, exc_info=True)
            return ImageSummary(image_name=job.name, error=str(exc))
        finally:
            close = getattr(source, "close", None)
            if close is not None:
                close()

    def process_image(
        self,
        source,
        regions: Sequence[AnnotationRegion],
        counters: GlobalCounters,
        output_root: Path | None = None,
    ) -> ImageSummary:
        """Extract patches for every region of one image.

        A region that fails is recorded with its error and the next region is
        processed.

        Args:
            source: ImageSource for the image.
            regions: Regions in host order.
            counters: In-memory global counters, advanced once per region.
            output_root: Override for ``config.output_root``.

        Returns:
            ImageSummary for the image.
        """

        output_root = Path(output_root or self.config.output_root)
        image_name = source.name
        try:
            calibration = source.calibration()
        except Exception as exc:
            logger.error("image failed image=%s error=%s", image_name, exc, exc_info=True)
            return ImageSummary(image_name=image_name, error=str(exc))

        geometry = resolve_patch_geometry(calibration.native_magnification, self.config)
        logger.info(
            "image start image=%s width=%d height=%d downsample=%.4f patch_size=%d annotations=%d",
            image_name,
            calibration.width,
            calibration.height,
            geometry.downsample,
            geometry.patch_size,
            len(regions),
        )

        image_summary = ImageSummary(image_name=image_name, geometry=geometry)
        for region in regions:
            image_summary.annotations.append(
                self._process_region(source, region, calibration, geometry, counters, output_root)
            )

        logger.info(
            "image done image=%s annotations=%d written=%d skipped=%d failed=%d",
            image_name,
            len(image_summary.annotations),
            image_summary.written,
            image_summary.skipped,
            image_summary.failed,
        )
        return image_summary

    def _process_region(
        self,
        source,
        region: AnnotationRegion,
        calibration: ImageCalibration,
        geometry: PatchGeometry,
        counters: GlobalCounters,
        output_root: Path,
    ) -> AnnotationYield:
        sequence = counter_store.increment(counters, region.label)
        result = AnnotationYield(
            image_name=source.name,
            label=region.label,
            sequence=sequence,
            folder=output_root / folder_name(region.label, sequence),
        )

        try:
            self._emit_patches(source, region, calibration, geometry, result)
        except Exception as exc:
            result.error = str(exc)
            logger.error(
                "annotation failed image=%s label=%s folder=%s error=%s",
                source.name,
                region.label,
                result.folder.name,
                exc,
                exc_info=True,
            )

        logger.info(
            "annotation done image=%s label=%s folder=%s written=%d skipped=%d failed=%d",
            source.name,
            region.label,
            result.folder.name,
            result.written,
            result.skipped,
            result.failed,
        )
        return result

    def _emit_patches(
        self,
        source,
        region: AnnotationRegion,
        calibration: ImageCalibration,
        geometry: PatchGeometry,
        result: AnnotationYield,
    ) -> None:
        planned = plan_patches(region.points, calibration, geometry)
        folder_error: str | None = None
        try:
            ensure_output_folder(result.folder.parent, region.label, result.sequence)
        except (OSError, ValueError) as exc:
            folder_error = f"cannot create {result.folder}: {exc}"
            logger.error("annotation folder failed image=%s label=%s error=%s", source.name, region.label, exc)

        for patch in planned:
            if not patch.in_bounds:
                result.outcomes.append(PatchOutcome(patch.point_index, patch.cx, patch.cy, PatchStatus.OUT_OF_BOUNDS))
                continue
            if folder_error is not None:
                result.outcomes.append(
                    PatchOutcome(patch.point_index, patch.cx, patch.cy, PatchStatus.FAILED, reason=folder_error)
                )
                continue

            filename = patch_filename(
                source.name,
                region.label,
                patch.cx,
                patch.cy,
                patch.local_index,
                self.config.image_file_extension,
            )
            output_path = result.folder / filename
            try:
                write_patch(source, patch.window, output_path)
            except Exception as exc:
                logger.warning("patch failed image=%s path=%s error=%s", source.name, output_path, exc)
                result.outcomes.append(
                    PatchOutcome(patch.point_index, patch.cx, patch.cy, PatchStatus.FAILED, reason=str(exc))
                )
                continue
            result.outcomes.append(
                PatchOutcome(patch.point_index, patch.cx, patch.cy, PatchStatus.WRITTEN, path=output_path)
            )
