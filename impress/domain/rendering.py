# impress/domain/rendering.py
"""
Drawing surface and per-zone-type rendering.

The surface is a disposable view: every render builds a fresh frame from
store state and hands it over with a single replace() call. Everything that
depends on the zone type lives in one ZoneRenderer subclass per type.
"""
import io
import logging
from functools import lru_cache
from typing import Dict, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from impress.domain.zones import ImageZone, Rect, TextZone
from impress.infrastructure.images import fit_within

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]

SELECTED_STROKE: Color = (37, 99, 235, 255)
LABEL_COLOR: Color = (17, 24, 39, 255)
MUTED_COLOR: Color = (107, 114, 128, 255)
ERROR_COLOR: Color = (220, 38, 38, 255)
TRIM_COLOR: Color = (255, 0, 0, 255)
SAFE_COLOR: Color = (0, 170, 0, 255)

MIN_FONT_SIZE = 10
MAX_FONT_SIZE = 24


class DrawingSurface:
    """Holds the last rendered frame for one canvas.

    `alive` goes false once the view is torn down; `page_id` is the page the
    surface currently shows. Async renderers check both before applying
    late results.
    """

    def __init__(self, width: int, height: int, page_id: Optional[str] = None,
                 background: Color = (255, 255, 255, 255)):
        self.width = int(width)
        self.height = int(height)
        self.page_id = page_id
        self.background = background
        self.alive = True
        self.frame = Image.new("RGBA", (self.width, self.height), background)
        self.redraws = 0

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def new_frame(self) -> Image.Image:
        return Image.new("RGBA", self.size, self.background)

    def replace(self, frame: Image.Image) -> bool:
        if not self.alive:
            logger.debug("Drawing surface disposed, frame dropped.")
            return False
        if frame.size != self.size:
            frame = frame.resize(self.size)
        self.frame = frame
        self.redraws += 1
        return True

    def show_page(self, page_id: Optional[str]) -> None:
        self.page_id = page_id

    def resize(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.frame = self.new_frame()

    def dispose(self) -> None:
        self.alive = False

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.frame.save(buf, format="PNG")
        return buf.getvalue()


@lru_cache(maxsize=32)
def get_font(size: float) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def fit_font_size(width: float, height: float) -> float:
    """Keeps text legible in small zones but bounded in big ones."""
    return float(max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, min(width / 8, height / 2))))


def _box(rect: Rect) -> Tuple[float, float, float, float]:
    return (rect.x, rect.y, rect.right, rect.bottom)


def draw_dashed_rect(draw: ImageDraw.ImageDraw, rect: Rect, color: Color, width: int = 2,
                     dash: int = 6, gap: int = 4) -> None:
    x0, y0, x1, y1 = _box(rect)
    for (ax, ay, bx, by) in ((x0, y0, x1, y0), (x1, y0, x1, y1), (x1, y1, x0, y1), (x0, y1, x0, y0)):
        length = abs(bx - ax) + abs(by - ay)
        if length == 0:
            continue
        dx = (bx - ax) / length
        dy = (by - ay) / length
        pos = 0.0
        while pos < length:
            end = min(pos + dash, length)
            draw.line([(ax + dx * pos, ay + dy * pos), (ax + dx * end, ay + dy * end)], fill=color, width=width)
            pos = end + gap


def draw_centered_text(draw: ImageDraw.ImageDraw, rect: Rect, text: str, size: float, color: Color) -> None:
    font = get_font(size)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    tx = rect.x + (rect.width - (right - left)) / 2 - left
    ty = rect.y + (rect.height - (bottom - top)) / 2 - top
    draw.text((tx, ty), text, font=font, fill=color)


class ZoneRenderer:
    type: str = ""
    stroke: Color = (0, 0, 0, 255)
    fill: Color = (0, 0, 0, 40)
    placeholder_hint: str = ""

    # --- authoring ---

    def draw_outline(self, draw: ImageDraw.ImageDraw, rect: Rect, name: str, selected: bool) -> None:
        draw.rectangle(_box(rect), fill=self.fill, outline=SELECTED_STROKE if selected else self.stroke,
                       width=3 if selected else 2)
        draw_centered_text(draw, rect, name, 14, LABEL_COLOR)
        self.draw_glyph(draw, rect)

    def draw_glyph(self, draw: ImageDraw.ImageDraw, rect: Rect) -> None:
        raise NotImplementedError

    # --- fulfillment ---

    def draw_placeholder(self, draw: ImageDraw.ImageDraw, rect: Rect) -> None:
        draw.rectangle(_box(rect), fill=self.fill)
        draw_dashed_rect(draw, rect, self.stroke)
        size = fit_font_size(rect.width, rect.height)
        draw_centered_text(draw, rect, self.placeholder_hint, min(size, 14), self.stroke)

    def draw_content(self, frame: Image.Image, rect: Rect, content, loaded: Optional[Image.Image]) -> None:
        raise NotImplementedError


class ImageZoneRenderer(ZoneRenderer):
    type = "image"
    stroke = (0, 150, 255, 255)
    fill = (0, 150, 255, 60)
    placeholder_hint = "Click to add image"

    def draw_glyph(self, draw: ImageDraw.ImageDraw, rect: Rect) -> None:
        # small framed "picture" with a mountain
        x, y = rect.x + 4, rect.y + 4
        draw.rectangle((x, y, x + 14, y + 11), outline=self.stroke, width=1)
        draw.polygon([(x + 2, y + 9), (x + 6, y + 4), (x + 9, y + 7), (x + 12, y + 9)], fill=self.stroke)

    def draw_content(self, frame: Image.Image, rect: Rect, content, loaded: Optional[Image.Image]) -> None:
        if loaded is None:
            draw_load_failure(ImageDraw.Draw(frame, "RGBA"), rect)
            return
        if rect.width < 1 or rect.height < 1:
            return
        fitted, (ox, oy) = fit_within(loaded, rect.width, rect.height)
        frame.paste(fitted, (int(round(rect.x)) + ox, int(round(rect.y)) + oy), fitted)


class TextZoneRenderer(ZoneRenderer):
    type = "text"
    stroke = (255, 150, 0, 255)
    fill = (255, 150, 0, 60)
    placeholder_hint = "Click to add text"

    def draw_glyph(self, draw: ImageDraw.ImageDraw, rect: Rect) -> None:
        x, y = rect.x + 4, rect.y + 4
        draw.line([(x, y), (x + 12, y)], fill=self.stroke, width=2)
        draw.line([(x + 6, y), (x + 6, y + 12)], fill=self.stroke, width=2)

    def draw_content(self, frame: Image.Image, rect: Rect, content, loaded: Optional[Image.Image]) -> None:
        draw = ImageDraw.Draw(frame, "RGBA")
        draw_centered_text(draw, rect, content.content, fit_font_size(rect.width, rect.height), LABEL_COLOR)


def draw_load_failure(draw: ImageDraw.ImageDraw, rect: Rect, step: int = 12) -> None:
    """Grid with a 'could not load' label."""
    x0, y0, x1, y1 = _box(rect)
    draw.rectangle((x0, y0, x1, y1), fill=(243, 244, 246, 255), outline=ERROR_COLOR, width=1)
    x = x0 + step
    while x < x1:
        draw.line([(x, y0), (x, y1)], fill=(209, 213, 219, 255))
        x += step
    y = y0 + step
    while y < y1:
        draw.line([(x0, y), (x1, y)], fill=(209, 213, 219, 255))
        y += step
    draw_centered_text(draw, rect, "could not load", MIN_FONT_SIZE, ERROR_COLOR)


RENDERERS: Dict[str, ZoneRenderer] = {r.type: r for r in (ImageZoneRenderer(), TextZoneRenderer())}


def renderer_for(zone: Union[ImageZone, TextZone]) -> ZoneRenderer:
    return RENDERERS[zone.type]


def draw_page_placeholder(draw: ImageDraw.ImageDraw, size: Tuple[int, int], page_number: int, dimensions: str) -> None:
    w, h = size
    draw.rectangle((0, 0, w - 1, h - 1), fill=(255, 255, 255, 255), outline=(229, 231, 235, 255), width=2)
    draw_centered_text(draw, Rect(x=0, y=30, width=w, height=40), f"Page {page_number}", 24, (55, 65, 81, 255))
    draw_centered_text(draw, Rect(x=0, y=70, width=w, height=40), dimensions, 14, MUTED_COLOR)
    draw_centered_text(draw, Rect(x=0, y=h - 70, width=w, height=40),
                       "Preview image not available", 12, (156, 163, 175, 255))


def draw_print_guides(draw: ImageDraw.ImageDraw, size: Tuple[int, int], safe_inset: Tuple[float, float]) -> None:
    """Trim line at the page edge, safe-area line inset inside it."""
    w, h = size
    draw_dashed_rect(draw, Rect(x=0, y=0, width=w - 1, height=h - 1), TRIM_COLOR, width=1, dash=5, gap=5)
    ix, iy = safe_inset
    if 0 < ix < w / 2 and 0 < iy < h / 2:
        draw_dashed_rect(draw, Rect(x=ix, y=iy, width=w - 2 * ix, height=h - 2 * iy), SAFE_COLOR, width=1, dash=5, gap=5)
