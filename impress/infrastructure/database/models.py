import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Template(Base):
    __tablename__ = "templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    # Declared print size of the finished piece
    print_width = Column(Float, nullable=False)
    print_height = Column(Float, nullable=False)
    print_unit = Column(String(16), nullable=False, default="millimeter")
    original_pdf_url = Column(String)
    pdf_metadata = Column(JSON)  # pageCount, fileSize, originalFileName
    create_time = Column(DateTime(timezone=True), default=_now)


class TemplatePage(Base):
    __tablename__ = "template_pages"
    __table_args__ = (UniqueConstraint("template_id", "page_number", name="uq_template_page_number"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    template_id = Column(String(36), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True)
    page_number = Column(Integer, nullable=False)
    physical_width = Column(Float, nullable=False)
    physical_height = Column(Float, nullable=False)
    physical_unit = Column(String(16), nullable=False, default="point")
    preview_image_url = Column(String)


class CustomizationZone(Base):
    __tablename__ = "customization_zones"

    id = Column(String(36), primary_key=True, default=_uuid)
    template_id = Column(String(36), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String(16), nullable=False)  # image | text
    z_index = Column(Integer, nullable=False, default=0)


class ZonePageAssignment(Base):
    __tablename__ = "zone_page_assignments"
    __table_args__ = (UniqueConstraint("zone_id", "page_id", name="uq_zone_page"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    zone_id = Column(String(36), ForeignKey("customization_zones.id", ondelete="CASCADE"), nullable=False, index=True)
    page_id = Column(String(36), ForeignKey("template_pages.id", ondelete="CASCADE"), nullable=False, index=True)
    # Page physical unit, origin top-left
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    z_index = Column(Integer, nullable=False, default=0)
    is_repeating = Column(Boolean, nullable=False, default=False)


class ProductTemplate(Base):
    __tablename__ = "product_templates"
    __table_args__ = (UniqueConstraint("product_id", "template_id", name="uq_product_template"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), nullable=False, index=True)
    template_id = Column(String(36), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    create_time = Column(DateTime(timezone=True), default=_now)
