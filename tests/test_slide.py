import pytest
from PIL import Image

from cellpatch.extraction import slide as slide_module
from cellpatch.extraction.models import PatchWindow
from cellpatch.extraction.slide import OpenSlideSource


class StubSlide:
    """Stands in for openslide.OpenSlide with a three-level pyramid."""

    level_downsamples = (1.0, 2.0, 8.0)

    def __init__(self, path, properties=None):
        self.path = path
        self.dimensions = (4000, 3000)
        self.properties = properties if properties is not None else {}
        self.read_calls = []
        self.closed = False

    def get_best_level_for_downsample(self, downsample):
        best = 0
        for level, level_downsample in enumerate(self.level_downsamples):
            if level_downsample <= downsample:
                best = level
        return best

    def read_region(self, location, level, size):
        self.read_calls.append((location, level, size))
        return Image.new("RGBA", size, (200, 100, 50, 255))

    def close(self):
        self.closed = True


@pytest.fixture
def open_stub(monkeypatch):
    opened = []

    def factory(properties=None):
        def make(path):
            stub = StubSlide(path, properties)
            opened.append(stub)
            return stub

        monkeypatch.setattr(slide_module.openslide, "OpenSlide", make)
        return opened

    return factory


def test_calibration_reads_objective_power_and_dimensions(open_stub, tmp_path):
    open_stub({slide_module.openslide.PROPERTY_NAME_OBJECTIVE_POWER: "20"})
    source = OpenSlideSource(tmp_path / "slide01.svs")
    calibration = source.calibration()
    assert source.name == "slide01"
    assert calibration.native_magnification == 20.0
    assert (calibration.width, calibration.height) == (4000, 3000)


@pytest.mark.parametrize("properties", [{}, {"openslide.objective-power": "forty"}])
def test_missing_or_unparseable_objective_power_gives_none(open_stub, tmp_path, properties):
    open_stub(properties)
    assert OpenSlideSource(tmp_path / "slide.svs").calibration().native_magnification is None


def test_read_at_full_resolution(open_stub, tmp_path):
    opened = open_stub()
    source = OpenSlideSource(tmp_path / "slide.svs")
    patch = source.read_window(PatchWindow(x=1888, y=1388, size=224, downsample=1.0))
    assert opened[0].read_calls == [((1888, 1388), 0, (224, 224))]
    assert patch.size == (224, 224)
    assert patch.mode == "RGB"


def test_read_uses_matching_pyramid_level(open_stub, tmp_path):
    opened = open_stub()
    source = OpenSlideSource(tmp_path / "slide.svs")
    patch = source.read_window(PatchWindow(x=100, y=200, size=448, downsample=2.0))
    # Location stays in level-0 coordinates; size is in level-1 pixels.
    assert opened[0].read_calls == [((100, 200), 1, (224, 224))]
    assert patch.size == (224, 224)


def test_read_between_levels_is_resized_to_output_size(open_stub, tmp_path):
    opened = open_stub()
    source = OpenSlideSource(tmp_path / "slide.svs")
    patch = source.read_window(PatchWindow(x=0, y=0, size=672, downsample=3.0))
    assert opened[0].read_calls == [((0, 0), 1, (336, 336))]
    assert patch.size == (224, 224)


def test_context_manager_closes_slide(open_stub, tmp_path):
    opened = open_stub()
    with OpenSlideSource(tmp_path / "slide.svs"):
        pass
    assert opened[0].closed
