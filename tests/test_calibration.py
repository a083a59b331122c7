import logging
import math

import pytest

from cellpatch.extraction.calibration import resolve_patch_geometry
from cellpatch.extraction.config import ExtractionConfig


@pytest.fixture
def config() -> ExtractionConfig:
    return ExtractionConfig(base_patch_pixels=224, desired_magnification=40.0, default_native_magnification=40.0)


def test_same_magnification_keeps_base_size(config):
    geometry = resolve_patch_geometry(40.0, config)
    assert geometry.downsample == 1.0
    assert geometry.patch_size == 224
    assert geometry.half_patch_size == 112


def test_lower_native_magnification_shrinks_window(config):
    geometry = resolve_patch_geometry(20.0, config)
    assert geometry.downsample == 0.5
    assert geometry.patch_size == 112
    assert geometry.half_patch_size == 56


def test_higher_native_magnification_grows_window():
    config = ExtractionConfig(desired_magnification=20.0)
    geometry = resolve_patch_geometry(40.0, config)
    assert geometry.downsample == 2.0
    assert geometry.patch_size == 448
    assert geometry.half_patch_size == 224


@pytest.mark.parametrize("native", [None, 0, 0.0, -5.0, math.nan, math.inf, "not-a-number"])
def test_invalid_native_falls_back_to_default(config, native, caplog):
    expected = resolve_patch_geometry(40.0, config)
    with caplog.at_level(logging.WARNING, logger="cellpatch.extraction.calibration"):
        geometry = resolve_patch_geometry(native, config)
    assert geometry == expected
    assert "missing or invalid" in caplog.text


def test_fallback_uses_configured_default():
    config = ExtractionConfig(default_native_magnification=20.0)
    geometry = resolve_patch_geometry(None, config)
    assert geometry.patch_size == 112


def test_tiny_downsample_still_gives_positive_sizes():
    config = ExtractionConfig(base_patch_pixels=1, desired_magnification=1000.0)
    geometry = resolve_patch_geometry(1.0, config)
    assert geometry.patch_size >= 1
    assert geometry.half_patch_size >= 1


def test_rounding_is_half_up():
    # 10 * 0.25 = 2.5 -> 3, 5 * 0.25 = 1.25 -> 1
    config = ExtractionConfig(base_patch_pixels=10, desired_magnification=40.0)
    geometry = resolve_patch_geometry(10.0, config)
    assert geometry.patch_size == 3
    assert geometry.half_patch_size == 1
