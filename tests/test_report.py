import pandas as pd

from cellpatch.extraction.config import ExtractionConfig
from cellpatch.extraction.models import AnnotationRegion, DetectionPoint
from cellpatch.extraction.pipeline import PatchExtractionRunner, StaticImageJob
from cellpatch.extraction.report import REPORT_COLUMNS, summary_to_frame, write_yield_report


def test_report_has_one_row_per_annotation(tmp_path, make_source):
    config = ExtractionConfig(output_root=tmp_path / "out")
    regions = [
        AnnotationRegion("LG", (DetectionPoint(2000, 1500), DetectionPoint(1, 1))),
        AnnotationRegion("HG", ()),
    ]
    summary = PatchExtractionRunner(config).run([StaticImageJob(make_source(name="s"), regions)])

    path = write_yield_report(summary, tmp_path / "reports" / "yield.csv")
    frame = pd.read_csv(path)
    assert list(frame.columns) == REPORT_COLUMNS
    assert frame.to_dict("records") == [
        {"image_name": "s", "label": "LG", "sequence": 1, "folder": "LG_001", "written": 1, "skipped": 1, "failed": 0},
        {"image_name": "s", "label": "HG", "sequence": 1, "folder": "HG_001", "written": 0, "skipped": 0, "failed": 0},
    ]


def test_empty_summary_gives_header_only(tmp_path):
    from cellpatch.extraction.models import RunSummary

    frame = summary_to_frame(RunSummary())
    assert frame.empty
    assert list(frame.columns) == REPORT_COLUMNS
