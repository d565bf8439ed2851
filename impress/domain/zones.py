# impress/domain/zones.py
from typing import Annotated, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, PositiveFloat

from impress.domain.errors import InvalidZoneType
from impress.domain.units import Unit

ZoneType = Literal["image", "text"]


class Rect(BaseModel):
    """Axis-aligned rectangle, origin top-left."""
    x: float
    y: float
    width: float
    height: float

    model_config = {"frozen": True}

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains_point(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def is_inside(self, width: float, height: float, eps: float = 1e-6) -> bool:
        return (
            self.x >= -eps
            and self.y >= -eps
            and self.right <= width + eps
            and self.bottom <= height + eps
        )

    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def moved_to(self, x: float, y: float) -> "Rect":
        return Rect(x=x, y=y, width=self.width, height=self.height)

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> "Rect":
        return cls(x=min(x0, x1), y=min(y0, y1), width=abs(x1 - x0), height=abs(y1 - y0))


def clamp_rect(rect: Rect, width: float, height: float) -> Rect:
    """Intersect a rectangle with the [0, width] x [0, height] area."""
    x0 = min(max(rect.x, 0.0), width)
    y0 = min(max(rect.y, 0.0), height)
    x1 = min(max(rect.right, 0.0), width)
    y1 = min(max(rect.bottom, 0.0), height)
    return Rect(x=x0, y=y0, width=max(x1 - x0, 0.0), height=max(y1 - y0, 0.0))


def clamp_position(rect: Rect, width: float, height: float) -> Rect:
    """Move a rectangle (keeping its size) so it stays within the area."""
    w = min(rect.width, width)
    h = min(rect.height, height)
    x = min(max(rect.x, 0.0), width - w)
    y = min(max(rect.y, 0.0), height - h)
    return Rect(x=x, y=y, width=w, height=h)


class PhysicalDimension(BaseModel):
    width: PositiveFloat
    height: PositiveFloat
    unit: Unit = Unit.POINT


class PageGeometry(BaseModel):
    id: str
    template_id: str
    page_number: int = Field(ge=1)
    physical_width: PositiveFloat
    physical_height: PositiveFloat
    physical_unit: Unit = Unit.POINT
    preview_image_url: Optional[str] = None

    @property
    def dimension(self) -> PhysicalDimension:
        return PhysicalDimension(width=self.physical_width, height=self.physical_height, unit=self.physical_unit)


class _ZoneBase(BaseModel):
    id: str
    template_id: str
    name: str
    z_index: int = 0


class ImageZone(_ZoneBase):
    type: Literal["image"] = "image"


class TextZone(_ZoneBase):
    type: Literal["text"] = "text"


Zone = Annotated[Union[ImageZone, TextZone], Field(discriminator="type")]

ZONE_CLASSES = {"image": ImageZone, "text": TextZone}


def make_zone(type: str, **fields) -> Union[ImageZone, TextZone]:
    try:
        cls = ZONE_CLASSES[type]
    except KeyError:
        raise InvalidZoneType(type) from None
    return cls(**fields)


class ZoneAssignment(BaseModel):
    id: str
    zone_id: str
    page_id: str
    x: float
    y: float
    width: float
    height: float
    z_index: int = 0
    is_repeating: bool = False

    @property
    def rect(self) -> Rect:
        return Rect(x=self.x, y=self.y, width=self.width, height=self.height)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    content: str
    # Customer placement relative to the page, in page physical units
    placement: Optional[Rect] = None


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    image_ref: str  # URL, local path or data URL
    placement: Optional[Rect] = None


CustomerZoneContent = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]

# (page_id, zone_id) -> content
ContentKey = Tuple[str, str]
ContentMap = Dict[ContentKey, Union[TextContent, ImageContent]]
