import json

import numpy as np
import pytest
from PIL import Image

from cellpatch.extraction import cli
from cellpatch.extraction.config import ExtractionConfig


def _write_slide(path, width=600, height=400):
    Image.fromarray(np.full((height, width, 3), 200, dtype=np.uint8)).save(path)


def _write_annotations(path, label, cells):
    features = [
        {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [600, 0], [600, 400], [0, 400], [0, 0]]]},
            "properties": {"objectType": "annotation", "name": label},
        }
    ]
    for x, y in cells:
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [x, y]},
                "properties": {"objectType": "detection"},
            }
        )
    path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")


@pytest.fixture
def dataset(tmp_path):
    slides = tmp_path / "slides"
    annotations = tmp_path / "annotations"
    slides.mkdir()
    annotations.mkdir()
    _write_slide(slides / "a.png")
    _write_slide(slides / "b.png")
    _write_slide(slides / "c.png")
    _write_annotations(annotations / "a.geojson", "LG", [(300, 200), (10, 10)])
    _write_annotations(annotations / "b.geojson", "LG", [(250, 150)])
    return tmp_path


def test_discover_skips_slides_without_annotations(dataset):
    config = ExtractionConfig(slide_dir=dataset / "slides", annotation_dir=dataset / "annotations")
    jobs = cli.discover_slide_jobs(config)
    assert [job.name for job in jobs] == ["a", "b"]


def test_discover_honours_max_images(dataset):
    config = ExtractionConfig(slide_dir=dataset / "slides", annotation_dir=dataset / "annotations", max_images=1)
    assert [job.name for job in cli.discover_slide_jobs(config)] == ["a"]


def test_main_runs_end_to_end(dataset):
    out = dataset / "out"
    report = dataset / "yield.csv"
    cli.main(
        [
            "--slide-dir", str(dataset / "slides"),
            "--annotation-dir", str(dataset / "annotations"),
            "--output-root", str(out),
            "--extension", ".PNG",
            "--report", str(report),
        ]
    )
    assert (out / "LG_001" / "a_LG_300_200_000000.png").is_file()
    assert (out / "LG_002" / "b_LG_250_150_000000.png").is_file()
    assert (out / "annotation_counts.txt").read_text(encoding="utf-8") == "LG=2\n"
    assert report.is_file()
    with Image.open(out / "LG_001" / "a_LG_300_200_000000.png") as patch:
        assert patch.size == (224, 224)


def test_main_exits_when_slide_dir_missing(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--slide-dir", str(tmp_path / "missing"), "--output-root", str(tmp_path / "out")])
    assert excinfo.value.code == 1
