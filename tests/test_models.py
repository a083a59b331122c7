import pytest

from cellpatch.extraction.models import AnnotationRegion, normalize_label, round_half_up


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, "Unknown"),
        ("", "Unknown"),
        ("   ", "Unknown"),
        ("LG", "LG"),
        ("  LG  ", "LG"),
        ("../x", ".._x"),
        ("a\\b", "a_b"),
        ("L\x00G", "L_G"),
        ("Tumor\nLG", "Tumor_LG"),
        ("Tumor\r\nLG", "Tumor__LG"),
        ("a\u2028b", "a_b"),
        ("\n", "Unknown"),
        ("a=b", "a=b"),
    ],
)
def test_normalize_label(raw, expected):
    assert normalize_label(raw) == expected


def test_region_label_is_normalized():
    assert AnnotationRegion("x/y").label == "x_y"


def test_round_half_up():
    assert [round_half_up(v) for v in (0.5, 1.5, 2.5, 2.49, 112.0)] == [1, 2, 3, 2, 112]
