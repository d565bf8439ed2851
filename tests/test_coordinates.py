import pytest

from impress.domain.coordinates import CoordinateSystem, check_page_dimensions, fit_canvas_size
from impress.domain.units import Unit
from impress.domain.zones import PageGeometry, PhysicalDimension, Rect

A4 = PhysicalDimension(width=210, height=297, unit=Unit.MILLIMETER)


def _page(width, height, unit=Unit.POINT, number=1):
    return PageGeometry(id=f"p{number}", template_id="t", page_number=number,
                        physical_width=width, physical_height=height, physical_unit=unit)


def test_canvas_physical_round_trip():
    cs = CoordinateSystem.for_page(_page(595.28, 841.89), 500, 707, A4)
    for unit in (Unit.MILLIMETER, Unit.INCH, Unit.POINT):
        for x, y in [(0, 0), (12.5, 480.25), (499.9, 706.1)]:
            px, py = cs.canvas_to_physical(x, y, unit)
            cx, cy = cs.physical_to_canvas(px, py, unit)
            assert cx == pytest.approx(x, rel=1e-6, abs=1e-9)
            assert cy == pytest.approx(y, rel=1e-6, abs=1e-9)


def test_rect_projection_follows_canvas_size():
    page = _page(600, 800)
    rect = Rect(x=60, y=80, width=120, height=40)
    half = CoordinateSystem.for_page(page, 300, 400)
    assert half.rect_to_canvas(rect, Unit.POINT) == Rect(x=30, y=40, width=60, height=20)
    full = CoordinateSystem.for_page(page, 600, 800)
    assert full.rect_to_canvas(rect, Unit.POINT) == rect
    assert half.rect_from_canvas(Rect(x=30, y=40, width=60, height=20), Unit.POINT) == rect


def test_rejects_non_positive_sizes():
    with pytest.raises(ValueError):
        CoordinateSystem(0, 100, 595, 842, A4)
    with pytest.raises(ValueError):
        CoordinateSystem(100, 100, 595, -1, A4)


@pytest.mark.parametrize("tolerance", [0, 0.1, 5])
def test_exact_sizes_always_match(tolerance):
    cs = CoordinateSystem.for_page(_page(210, 297, Unit.MILLIMETER), 800, 600, A4)
    assert cs.scale_factor() == (1.0, 1.0)
    assert cs.dimensions_match(tolerance)


def test_perturbed_size_beyond_tolerance_does_not_match():
    cs = CoordinateSystem.for_page(_page(210 * 1.01, 297, Unit.MILLIMETER), 800, 600, A4)
    assert not cs.dimensions_match(0.1)
    assert cs.dimensions_match(2)


def test_a4_pdf_pages_against_declared_print_size():
    close = check_page_dimensions(_page(595.28, 841.89), A4, 0.1)
    assert close.matches
    assert close.warning is None

    off = check_page_dimensions(_page(600, 850, number=2), A4, 0.1)
    assert not off.matches
    assert "Page 2" in off.warning
    assert off.scale_x == pytest.approx(595.2756 / 600, rel=1e-5)


def test_fit_canvas_size_fits_viewport_without_upscaling():
    assert fit_canvas_size(595.28, 841.89) == (495, 700)
    assert fit_canvas_size(300, 200) == (300, 200)
    assert fit_canvas_size(2000, 500, 1000, 700) == (1000, 250)
