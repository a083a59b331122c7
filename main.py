"""Project entry point for cellpatch extraction runs."""

from __future__ import annotations

import sys

from cellpatch.extraction.cli import discover_slide_jobs
from cellpatch.extraction.config import load_extraction_config
from cellpatch.extraction.errors import ExtractionSetupError
from cellpatch.extraction.pipeline import PatchExtractionRunner
from cellpatch.extraction.report import write_yield_report
from cellpatch.logging import setup_logger


def main() -> None:
    """Extract patches for every annotated slide using config from the environment."""
    logger = setup_logger()
    logger.info("Starting cellpatch extraction.")

    config = load_extraction_config()
    logger.info("Slides: %s, annotations: %s, output: %s", config.slide_dir, config.annotation_dir, config.output_root)

    try:
        jobs = discover_slide_jobs(config)
        summary = PatchExtractionRunner(config).run(jobs)
    except ExtractionSetupError as exc:
        logger.error("Extraction aborted: %s", exc)
        sys.exit(1)

    if config.report_path is not None:
        write_yield_report(summary, config.report_path)

    logger.info(
        "Extraction finished: %d patches written across %d images (%d out of bounds, %d failed).",
        summary.written,
        len(summary.images),
        summary.skipped,
        summary.failed,
    )


if __name__ == "__main__":
    main()
