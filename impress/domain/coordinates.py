# impress/domain/coordinates.py
"""
Coordinate system for print production.

Canvas pixels are a display artifact that change with viewport and zoom.
The PDF page's point space is authoritative for print; zone geometry is
stored in the page's physical unit and projected onto whatever canvas size
is live at render time.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from impress.domain.units import Unit, convert, format_dimensions
from impress.domain.zones import PageGeometry, PhysicalDimension, Rect

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

Point = Tuple[float, float]


class CoordinateSystem:
    def __init__(
        self,
        canvas_width: float,
        canvas_height: float,
        pdf_width: float,
        pdf_height: float,
        target: PhysicalDimension,
    ):
        if min(canvas_width, canvas_height, pdf_width, pdf_height) <= 0:
            raise ValueError(
                f"Canvas and PDF sizes must be positive, got canvas={canvas_width}x{canvas_height} "
                f"pdf={pdf_width}x{pdf_height}"
            )
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)
        self.pdf_width = float(pdf_width)
        self.pdf_height = float(pdf_height)
        self.target = target

    @classmethod
    def for_page(cls, page: PageGeometry, canvas_width: float, canvas_height: float,
                 target: Optional[PhysicalDimension] = None) -> "CoordinateSystem":
        pdf_w = convert(page.physical_width, page.physical_unit, Unit.POINT)
        pdf_h = convert(page.physical_height, page.physical_unit, Unit.POINT)
        return cls(canvas_width, canvas_height, pdf_w, pdf_h, target or page.dimension)

    def canvas_to_pdf(self, x: float, y: float) -> Point:
        return (x * (self.pdf_width / self.canvas_width), y * (self.pdf_height / self.canvas_height))

    def pdf_to_canvas(self, x: float, y: float) -> Point:
        return (x * (self.canvas_width / self.pdf_width), y * (self.canvas_height / self.pdf_height))

    def canvas_to_physical(self, x: float, y: float, unit: Union[str, Unit] = Unit.MILLIMETER) -> Point:
        px, py = self.canvas_to_pdf(x, y)
        return (convert(px, Unit.POINT, unit), convert(py, Unit.POINT, unit))

    def physical_to_canvas(self, x: float, y: float, unit: Union[str, Unit] = Unit.MILLIMETER) -> Point:
        px = convert(x, unit, Unit.POINT)
        py = convert(y, unit, Unit.POINT)
        return self.pdf_to_canvas(px, py)

    def rect_to_canvas(self, rect: Rect, unit: Union[str, Unit]) -> Rect:
        x, y = self.physical_to_canvas(rect.x, rect.y, unit)
        w, h = self.physical_to_canvas(rect.width, rect.height, unit)
        return Rect(x=x, y=y, width=w, height=h)

    def rect_from_canvas(self, rect: Rect, unit: Union[str, Unit]) -> Rect:
        x, y = self.canvas_to_physical(rect.x, rect.y, unit)
        w, h = self.canvas_to_physical(rect.width, rect.height, unit)
        return Rect(x=x, y=y, width=w, height=h)

    def scale_factor(self) -> Point:
        """Ratio of the intended print size to the actual PDF page size."""
        target_w = convert(self.target.width, self.target.unit, Unit.POINT)
        target_h = convert(self.target.height, self.target.unit, Unit.POINT)
        return (target_w / self.pdf_width, target_h / self.pdf_height)

    def dimensions_match(self, tolerance_pct: float = 0.1) -> bool:
        sx, sy = self.scale_factor()
        limit = tolerance_pct / 100.0
        return abs(sx - 1) <= limit and abs(sy - 1) <= limit


@dataclass
class DimensionCheck:
    matches: bool
    scale_x: float
    scale_y: float
    warning: Optional[str] = None


def check_page_dimensions(page: PageGeometry, target: PhysicalDimension, tolerance_pct: float = 0.1) -> DimensionCheck:
    """Compare an ingested page with the template's declared print size.

    A mismatch is reported, never raised: small registration differences
    are common and the admin may proceed on purpose.
    """
    cs = CoordinateSystem.for_page(page, page.physical_width, page.physical_height, target)
    sx, sy = cs.scale_factor()
    if cs.dimensions_match(tolerance_pct):
        return DimensionCheck(True, sx, sy)

    warning = (
        f"Page {page.page_number} is {format_dimensions(page.physical_width, page.physical_height, page.physical_unit, target.unit)}"
        f" but the template declares {format_dimensions(target.width, target.height, target.unit, target.unit)}"
        f" (scale {sx:.4f} x {sy:.4f}, tolerance {tolerance_pct}%)"
    )
    logger.warning(warning)
    return DimensionCheck(False, sx, sy, warning)


def fit_canvas_size(pdf_width: float, pdf_height: float, max_width: int = 1000, max_height: int = 700) -> Tuple[int, int]:
    """Display size for a page: fit the viewport, never upscale."""
    scale = min(max_width / pdf_width, max_height / pdf_height, 1.0)
    return (max(1, round(pdf_width * scale)), max(1, round(pdf_height * scale)))
