#!/usr/bin/env python3
"""CLI entry point for patch extraction.

Run via:

    python -m cellpatch.extraction --help
"""

import argparse
import logging
import sys
from pathlib import Path

from cellpatch.config import config as global_config
from cellpatch.extraction.annotations import find_annotation_file
from cellpatch.extraction.config import ExtractionConfig, load_extraction_config
from cellpatch.extraction.errors import ExtractionSetupError
from cellpatch.extraction.pipeline import PatchExtractionRunner, SlideJob
from cellpatch.extraction.report import write_yield_report
from cellpatch.logging import DATE_FORMAT, LOG_FORMAT

logger = logging.getLogger("cellpatch.extraction")


def discover_slide_jobs(config: ExtractionConfig) -> list[SlideJob]:
    """Pair every slide in ``slide_dir`` with its annotation export.

    Slides without an export are skipped with a warning. The list is capped by
    ``max_images`` and, in debug mode, by the global debug cap.
    """

    slide_dir = Path(config.slide_dir)
    if not slide_dir.is_dir():
        raise ExtractionSetupError(f"Slide directory not found: {slide_dir}")

    extensions = config.as_extension_set()
    slide_paths = sorted(path for path in slide_dir.iterdir() if path.is_file() and path.suffix.lower() in extensions)

    jobs: list[SlideJob] = []
    for slide_path in slide_paths:
        annotation_path = find_annotation_file(slide_path, config.annotation_dir, config.annotation_suffix)
        if annotation_path is None:
            logger.warning("No annotation export for %s in %s; skipping.", slide_path.name, config.annotation_dir)
            continue
        jobs.append(SlideJob(slide_path=slide_path, annotation_path=annotation_path))

    limit = config.max_images
    if global_config.debug:
        limit = min(limit or global_config.debug_max_images, global_config.debug_max_images)
    if limit is not None:
        jobs = jobs[:limit]

    logger.info("Found %d slides with annotations in %s", len(jobs), slide_dir)
    return jobs


def _apply_overrides(config: ExtractionConfig, args: argparse.Namespace) -> ExtractionConfig:
    update: dict[str, object] = {}
    if args.slide_dir is not None:
        update["slide_dir"] = Path(args.slide_dir)
    if args.annotation_dir is not None:
        update["annotation_dir"] = Path(args.annotation_dir)
    if args.output_root is not None:
        update["output_root"] = Path(args.output_root)
    if args.base_patch_pixels is not None:
        update["base_patch_pixels"] = int(args.base_patch_pixels)
    if args.desired_magnification is not None:
        update["desired_magnification"] = float(args.desired_magnification)
    if args.default_native_magnification is not None:
        update["default_native_magnification"] = float(args.default_native_magnification)
    if args.extension is not None:
        update["image_file_extension"] = args.extension
    if args.strict_counters:
        update["strict_counters"] = True
    if args.no_lock:
        update["use_lock"] = False
    if args.max_images is not None:
        update["max_images"] = int(args.max_images)
    if args.report is not None:
        update["report_path"] = Path(args.report)
    if not update:
        return config
    # Re-validate so CLI values get the same checks as environment values.
    return ExtractionConfig.model_validate({**config.model_dump(), **update})


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Extract cell-centred patches from annotated slides with globally numbered folders.",
        allow_abbrev=False,
    )
    parser.add_argument("--slide-dir", type=str, default=None, help="Directory containing slide images.")
    parser.add_argument(
        "--annotation-dir",
        type=str,
        default=None,
        help="Directory containing QuPath GeoJSON exports named <slide stem>.geojson.",
    )
    parser.add_argument(
        "--output-root",
        type=str,
        default=None,
        help="Root directory for patch folders and annotation_counts.txt.",
    )
    parser.add_argument("--base-patch-pixels", type=int, default=None, help="Patch side length at the desired magnification (default: 224).")
    parser.add_argument("--desired-magnification", type=float, default=None, help="Target magnification (default: 40).")
    parser.add_argument(
        "--default-native-magnification",
        type=float,
        default=None,
        help="Native magnification assumed when slide metadata has none (default: 40).",
    )
    parser.add_argument("--extension", type=str, default=None, help="Patch file extension (default: jpg).")
    parser.add_argument(
        "--strict-counters",
        action="store_true",
        help="Abort on any malformed line in the counter file instead of skipping it.",
    )
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Do not hold the output directory lock file. Concurrent runs may then reuse folder numbers.",
    )
    parser.add_argument("--max-images", type=int, default=None, help="Process at most this many slides.")
    parser.add_argument("--report", type=str, default=None, help="Write a per-annotation yield CSV to this path.")

    args = parser.parse_args(args=argv)

    logging.basicConfig(
        level=logging.DEBUG if global_config.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    try:
        config = _apply_overrides(load_extraction_config(), args)
        logger.info("Configuration loaded successfully.")
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    try:
        jobs = discover_slide_jobs(config)
        summary = PatchExtractionRunner(config).run(jobs)
    except ExtractionSetupError as exc:
        logger.error("Extraction aborted: %s", exc)
        sys.exit(1)

    if config.report_path is not None:
        write_yield_report(summary, config.report_path)

    logger.info(
        "Extraction completed: %d patches written, %d out of bounds, %d failed, %d images failed.",
        summary.written,
        summary.skipped,
        summary.failed,
        len(summary.failed_images),
    )


if __name__ == "__main__":
    main()
