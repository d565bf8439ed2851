# impress/domain/zone_store.py
import logging
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from impress.domain.errors import DuplicateAssignment, GeometryError, NotFound
from impress.domain.units import Unit, parse_unit
from impress.domain.zones import (
    ImageZone, PageGeometry, PhysicalDimension, Rect, TextZone, ZoneAssignment, make_zone,
)
from impress.infrastructure.database import models

logger = logging.getLogger(__name__)

AnyZone = Union[ImageZone, TextZone]

_RECT_FIELDS = ("x", "y", "width", "height")


def _zone_from_row(row: models.CustomizationZone) -> AnyZone:
    return make_zone(row.type, id=row.id, template_id=row.template_id, name=row.name, z_index=row.z_index)


def _page_from_row(row: models.TemplatePage) -> PageGeometry:
    return PageGeometry(
        id=row.id,
        template_id=row.template_id,
        page_number=row.page_number,
        physical_width=row.physical_width,
        physical_height=row.physical_height,
        physical_unit=parse_unit(row.physical_unit),
        preview_image_url=row.preview_image_url,
    )


def _assignment_from_row(row: models.ZonePageAssignment) -> ZoneAssignment:
    return ZoneAssignment(
        id=row.id,
        zone_id=row.zone_id,
        page_id=row.page_id,
        x=row.x,
        y=row.y,
        width=row.width,
        height=row.height,
        z_index=row.z_index,
        is_repeating=row.is_repeating,
    )


def _check_inside(rect: Rect, page: models.TemplatePage) -> None:
    if rect.is_degenerate():
        raise GeometryError(f"Zone rectangle must have a positive size, got {rect.width}x{rect.height}")
    if not rect.is_inside(page.physical_width, page.physical_height):
        raise GeometryError(
            f"Zone rectangle ({rect.x}, {rect.y}, {rect.width}x{rect.height}) falls outside "
            f"page {page.page_number} ({page.physical_width}x{page.physical_height} {page.physical_unit})"
        )


class ZoneStore:
    """Persistence for templates, pages, zones and their page placements.

    Every mutating call commits its own unit of work. Rectangles are kept in
    the page's physical unit and must lie inside the page.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # --- templates ---

    async def create_template(self, name: str, print_size: PhysicalDimension) -> models.Template:
        row = models.Template(
            name=name,
            print_width=print_size.width,
            print_height=print_size.height,
            print_unit=print_size.unit.value,
        )
        self.session.add(row)
        await self.session.commit()
        logger.info(f"Template '{name}' created ({row.id}).")
        return row

    async def get_template(self, template_id: str) -> models.Template:
        row = await self.session.get(models.Template, template_id)
        if row is None:
            raise NotFound("template", template_id)
        return row

    async def template_print_size(self, template_id: str) -> PhysicalDimension:
        row = await self.get_template(template_id)
        return PhysicalDimension(width=row.print_width, height=row.print_height, unit=parse_unit(row.print_unit))

    async def record_ingestion(self, template_id: str, pdf_url: Optional[str], metadata: Dict) -> models.Template:
        row = await self.get_template(template_id)
        row.original_pdf_url = pdf_url
        row.pdf_metadata = metadata
        await self.session.commit()
        return row

    # --- pages ---

    async def delete_pages(self, template_id: str) -> int:
        page_ids = select(models.TemplatePage.id).where(models.TemplatePage.template_id == template_id)
        await self.session.execute(
            delete(models.ZonePageAssignment).where(models.ZonePageAssignment.page_id.in_(page_ids))
        )
        result = await self.session.execute(
            delete(models.TemplatePage).where(models.TemplatePage.template_id == template_id)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def add_page(self, template_id: str, page_number: int, width: float, height: float,
                       unit: Unit = Unit.POINT, preview_image_url: Optional[str] = None) -> PageGeometry:
        row = models.TemplatePage(
            template_id=template_id,
            page_number=page_number,
            physical_width=width,
            physical_height=height,
            physical_unit=parse_unit(unit).value,
            preview_image_url=preview_image_url,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return _page_from_row(row)

    async def replace_pages(self, template_id: str, pages: Iterable[Dict]) -> List[PageGeometry]:
        """Delete-then-insert the page set of a template."""
        await self.delete_pages(template_id)
        created = []
        for p in pages:
            created.append(await self.add_page(
                template_id,
                p["page_number"],
                p["physical_width"],
                p["physical_height"],
                p.get("physical_unit", Unit.POINT),
                p.get("preview_image_url"),
            ))
        return created

    async def list_pages(self, template_id: str) -> List[PageGeometry]:
        rows = await self.session.scalars(
            select(models.TemplatePage)
            .where(models.TemplatePage.template_id == template_id)
            .order_by(models.TemplatePage.page_number)
        )
        return [_page_from_row(r) for r in rows]

    async def _page_row(self, page_id: str) -> models.TemplatePage:
        row = await self.session.get(models.TemplatePage, page_id)
        if row is None:
            raise NotFound("page", page_id)
        return row

    async def get_page(self, page_id: str) -> PageGeometry:
        return _page_from_row(await self._page_row(page_id))

    async def set_preview_url(self, page_id: str, url: Optional[str]) -> PageGeometry:
        row = await self._page_row(page_id)
        row.preview_image_url = url
        await self.session.commit()
        return _page_from_row(row)

    # --- zones ---

    async def _zone_row(self, zone_id: str) -> models.CustomizationZone:
        row = await self.session.get(models.CustomizationZone, zone_id)
        if row is None:
            raise NotFound("zone", zone_id)
        return row

    async def get_zone(self, zone_id: str) -> AnyZone:
        return _zone_from_row(await self._zone_row(zone_id))

    async def list_zones(self, template_id: str) -> List[AnyZone]:
        rows = await self.session.scalars(
            select(models.CustomizationZone)
            .where(models.CustomizationZone.template_id == template_id)
            .order_by(models.CustomizationZone.z_index, models.CustomizationZone.id)
        )
        return [_zone_from_row(r) for r in rows]

    async def create_zone(self, template_id: str, type: str, name: str) -> AnyZone:
        top = await self.session.scalar(
            select(func.max(models.CustomizationZone.z_index))
            .where(models.CustomizationZone.template_id == template_id)
        )
        z_index = 0 if top is None else top + 1
        make_zone(type, id="", template_id=template_id, name=name)  # reject unknown types before writing
        row = models.CustomizationZone(template_id=template_id, name=name, type=type, z_index=z_index)
        self.session.add(row)
        await self.session.commit()
        logger.info(f"Zone '{name}' ({type}) created with z_index {z_index}.")
        return _zone_from_row(row)

    async def rename_zone(self, zone_id: str, name: str) -> AnyZone:
        row = await self._zone_row(zone_id)
        row.name = name
        await self.session.commit()
        return _zone_from_row(row)

    async def change_zone_type(self, zone_id: str, type: str) -> AnyZone:
        row = await self._zone_row(zone_id)
        zone = make_zone(type, id=row.id, template_id=row.template_id, name=row.name, z_index=row.z_index)
        row.type = zone.type
        await self.session.commit()
        return zone

    async def set_zone_z_index(self, zone_id: str, z_index: int) -> AnyZone:
        row = await self._zone_row(zone_id)
        row.z_index = z_index
        await self.session.execute(
            update(models.ZonePageAssignment)
            .where(models.ZonePageAssignment.zone_id == zone_id)
            .values(z_index=z_index)
        )
        await self.session.commit()
        return _zone_from_row(row)

    async def delete_zone(self, zone_id: str) -> None:
        await self._zone_row(zone_id)
        await self.session.execute(
            delete(models.ZonePageAssignment).where(models.ZonePageAssignment.zone_id == zone_id)
        )
        await self.session.execute(delete(models.CustomizationZone).where(models.CustomizationZone.id == zone_id))
        await self.session.commit()
        logger.info(f"Zone {zone_id} deleted with its page assignments.")

    # --- assignments ---

    async def assign_zone_to_page(self, zone_id: str, page_id: str, rect: Rect,
                                  is_repeating: bool = False) -> ZoneAssignment:
        zone = await self._zone_row(zone_id)
        page = await self._page_row(page_id)
        if zone.template_id != page.template_id:
            raise GeometryError(
                f"Zone {zone_id} belongs to template {zone.template_id}, "
                f"page {page_id} belongs to template {page.template_id}"
            )
        _check_inside(rect, page)
        existing = await self.session.scalar(
            select(models.ZonePageAssignment.id).where(
                models.ZonePageAssignment.zone_id == zone_id,
                models.ZonePageAssignment.page_id == page_id,
            )
        )
        if existing is not None:
            raise DuplicateAssignment(zone_id, page_id)

        row = models.ZonePageAssignment(
            zone_id=zone_id,
            page_id=page_id,
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            z_index=zone.z_index,
            is_repeating=is_repeating,
        )
        self.session.add(row)
        await self.session.commit()
        return _assignment_from_row(row)

    async def get_assignment(self, assignment_id: str) -> ZoneAssignment:
        row = await self.session.get(models.ZonePageAssignment, assignment_id)
        if row is None:
            raise NotFound("assignment", assignment_id)
        return _assignment_from_row(row)

    async def update_assignment(self, assignment_id: str, is_repeating: Optional[bool] = None,
                                **partial_rect: float) -> ZoneAssignment:
        unknown = set(partial_rect) - set(_RECT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown assignment fields: {sorted(unknown)}")

        row = await self.session.get(models.ZonePageAssignment, assignment_id)
        if row is None:
            raise NotFound("assignment", assignment_id)
        page = await self._page_row(row.page_id)

        merged = {f: getattr(row, f) for f in _RECT_FIELDS}
        merged.update({k: v for k, v in partial_rect.items() if v is not None})
        _check_inside(Rect(**merged), page)

        for field, value in merged.items():
            setattr(row, field, value)
        if is_repeating is not None:
            row.is_repeating = is_repeating
        await self.session.commit()
        return _assignment_from_row(row)

    async def delete_assignment(self, assignment_id: str) -> None:
        await self.session.execute(
            delete(models.ZonePageAssignment).where(models.ZonePageAssignment.id == assignment_id)
        )
        await self.session.commit()

    async def list_assignments_for_page(self, page_id: str) -> List[ZoneAssignment]:
        rows = await self.session.scalars(
            select(models.ZonePageAssignment)
            .where(models.ZonePageAssignment.page_id == page_id)
            .order_by(models.ZonePageAssignment.z_index, models.ZonePageAssignment.id)
        )
        return [_assignment_from_row(r) for r in rows]
