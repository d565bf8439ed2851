from pydantic import BaseModel, Field, PositiveFloat, field_validator
from typing import Dict, List, Optional, Tuple

from impress.domain.units import Unit, parse_unit
from impress.domain.zones import CustomerZoneContent, ZoneType


class TemplateCreate(BaseModel):
    name: str
    print_width: PositiveFloat
    print_height: PositiveFloat
    print_unit: Unit = Unit.MILLIMETER

    @field_validator("print_unit", mode="before")
    @classmethod
    def parse_print_unit(cls, v):
        return parse_unit(v)


class TemplateOut(BaseModel):
    id: str
    name: str
    print_width: float
    print_height: float
    print_unit: Unit
    original_pdf_url: Optional[str] = None
    pdf_metadata: Optional[Dict] = None


class IngestionOut(BaseModel):
    success: bool
    pages_created: int
    pages_failed: int
    pdf_url: Optional[str] = None
    metadata: Dict = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ZoneCreate(BaseModel):
    type: ZoneType = "image"
    name: str


class ZoneUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[ZoneType] = None
    z_index: Optional[int] = None


class AssignmentCreate(BaseModel):
    zone_id: str
    x: float
    y: float
    width: PositiveFloat
    height: PositiveFloat
    unit: Optional[Unit] = None  # defaults to the page unit
    is_repeating: bool = False

    @field_validator("unit", mode="before")
    @classmethod
    def parse_unit_alias(cls, v):
        return None if v is None else parse_unit(v)


class AssignmentUpdate(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[PositiveFloat] = None
    height: Optional[PositiveFloat] = None
    unit: Optional[Unit] = None
    is_repeating: Optional[bool] = None

    @field_validator("unit", mode="before")
    @classmethod
    def parse_unit_alias(cls, v):
        return None if v is None else parse_unit(v)


class CanvasSize(BaseModel):
    canvas_width: PositiveFloat = 800
    canvas_height: PositiveFloat = 600


class DrawRequest(CanvasSize):
    start: Tuple[float, float]
    end: Tuple[float, float]
    type: ZoneType = "image"
    name: Optional[str] = None


class DrawResponse(BaseModel):
    created: bool
    zone: Optional[Dict] = None
    assignment: Optional[Dict] = None
    error: Optional[str] = None


class ContentEntry(BaseModel):
    page_id: str
    zone_id: str
    content: CustomerZoneContent


class PreviewRequest(CanvasSize):
    contents: List[ContentEntry] = Field(default_factory=list)


class PayloadRequest(BaseModel):
    contents: List[ContentEntry] = Field(default_factory=list)


class ProductTemplateIn(BaseModel):
    template_id: str
    is_default: bool = False


class ProductTemplateOut(BaseModel):
    product_id: str
    template_id: str
    is_default: bool
