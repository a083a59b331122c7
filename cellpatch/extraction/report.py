"""CSV export of per-annotation yield."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from cellpatch.extraction.models import RunSummary

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["image_name", "label", "sequence", "folder", "written", "skipped", "failed"]


def summary_to_frame(summary: RunSummary) -> pd.DataFrame:
    """Flatten a run summary into one row per annotation."""

    rows = [
        {
            "image_name": item.image_name,
            "label": item.label,
            "sequence": item.sequence,
            "folder": item.folder.name,
            "written": item.written,
            "skipped": item.skipped,
            "failed": item.failed,
        }
        for item in summary.iter_annotations()
    ]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def write_yield_report(summary: RunSummary, report_path: Path) -> Path:
    """Write the per-annotation yield table to CSV.

    Args:
        summary: Result of an extraction run.
        report_path: Destination CSV path.

    Returns:
        The written path.
    """

    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    frame = summary_to_frame(summary)
    frame.to_csv(report_path, index=False)
    logger.info("Wrote yield report for %d annotations to %s", len(frame), report_path)
    return report_path
