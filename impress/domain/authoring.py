# impress/domain/authoring.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from PIL import Image, ImageDraw
from sqlalchemy.exc import SQLAlchemyError

from impress.config.settings import settings
from impress.domain.coordinates import CoordinateSystem
from impress.domain.errors import ImpressError, InvalidZoneType
from impress.domain.rendering import (
    DrawingSurface, draw_dashed_rect, draw_page_placeholder, draw_print_guides, renderer_for, SELECTED_STROKE,
)
from impress.domain.units import Unit, convert, format_dimensions
from impress.domain.zone_store import AnyZone, ZoneStore
from impress.domain.zones import (
    ZONE_CLASSES, PageGeometry, PhysicalDimension, Rect, ZoneAssignment, clamp_position, clamp_rect,
)
from impress.infrastructure.images import ImageLoader, scale_to_canvas

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]

SAFE_MARGIN_MM = 5.0


class Mode(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    DRAGGING = "dragging"


@dataclass
class StoreResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _log_notify(level: str, message: str) -> None:
    getattr(logger, level, logger.info)(message)


class AuthoringSession:
    """One admin editing session on one page.

    Pointer coordinates are canvas pixels. Zone geometry is converted to the
    page's physical unit before it reaches the store; the session keeps only
    the transient gesture state on top of what the store holds.
    """

    def __init__(
        self,
        store: ZoneStore,
        page: PageGeometry,
        coordinate_system: CoordinateSystem,
        zones: List[AnyZone],
        assignments: List[ZoneAssignment],
        notify: Optional[Notify] = None,
        min_size_px: float = None,
        new_zone_type: str = "image",
    ):
        self.store = store
        self.page = page
        self.cs = coordinate_system
        self.zones: Dict[str, AnyZone] = {z.id: z for z in zones}
        self.assignments: List[ZoneAssignment] = sorted(assignments, key=lambda a: (a.z_index, a.id))
        self.notify = notify or _log_notify
        self.min_size_px = settings.MIN_ZONE_SIZE_PX if min_size_px is None else min_size_px
        self.new_zone_type = new_zone_type

        self.mode = Mode.IDLE
        self.selected_zone_id: Optional[str] = None
        self.stale = False
        self._draw_start: Optional[Tuple[float, float]] = None
        self._draw_current: Optional[Tuple[float, float]] = None
        self._drag_origin: Optional[Tuple[float, float]] = None
        self._drag_rect: Optional[Rect] = None
        self.background: Optional[Image.Image] = None

    @classmethod
    async def open(cls, store: ZoneStore, page_id: str, canvas_width: float, canvas_height: float,
                   target: Optional[PhysicalDimension] = None, **kwargs) -> "AuthoringSession":
        page = await store.get_page(page_id)
        if target is None:
            target = await store.template_print_size(page.template_id)
        cs = CoordinateSystem.for_page(page, canvas_width, canvas_height, target)
        zones = await store.list_zones(page.template_id)
        assignments = await store.list_assignments_for_page(page_id)
        return cls(store, page, cs, zones, assignments, **kwargs)

    async def reload(self) -> None:
        self.zones = {z.id: z for z in await self.store.list_zones(self.page.template_id)}
        self.assignments = await self.store.list_assignments_for_page(self.page.id)
        if self.selected_zone_id not in self.zones:
            self.selected_zone_id = None
        self.stale = False

    # --- geometry helpers ---

    @property
    def unit(self) -> Unit:
        return self.page.physical_unit

    def canvas_rect(self, assignment: ZoneAssignment) -> Rect:
        return self.cs.rect_to_canvas(assignment.rect, self.unit)

    def _to_page_rect(self, canvas_rect: Rect) -> Rect:
        physical = self.cs.rect_from_canvas(canvas_rect, self.unit)
        return clamp_position(physical, self.page.physical_width, self.page.physical_height)

    def _clamp_canvas(self, x: float, y: float) -> Tuple[float, float]:
        return (min(max(x, 0.0), self.cs.canvas_width), min(max(y, 0.0), self.cs.canvas_height))

    def assignment_for(self, zone_id: str) -> Optional[ZoneAssignment]:
        return next((a for a in self.assignments if a.zone_id == zone_id), None)

    def hit_test(self, x: float, y: float) -> Optional[ZoneAssignment]:
        """Topmost assignment containing the point."""
        for assignment in reversed(self.assignments):
            if self.canvas_rect(assignment).contains_point(x, y):
                return assignment
        return None

    def select(self, zone_id: Optional[str]) -> None:
        self.selected_zone_id = zone_id if zone_id in self.zones else None

    # --- pointer gestures ---

    def pointer_down(self, x: float, y: float) -> Mode:
        if self.mode is not Mode.IDLE:
            return self.mode
        hit = self.hit_test(x, y)
        if hit is not None:
            self.select(hit.zone_id)
            self.mode = Mode.DRAGGING
            self._drag_origin = (x, y)
            self._drag_rect = self.canvas_rect(hit)
        else:
            self.select(None)
            self.mode = Mode.DRAWING
            self._draw_start = self._clamp_canvas(x, y)
            self._draw_current = self._draw_start
        return self.mode

    def pointer_move(self, x: float, y: float) -> None:
        if self.mode is Mode.DRAWING:
            self._draw_current = self._clamp_canvas(x, y)
        elif self.mode is Mode.DRAGGING:
            hit = self.assignment_for(self.selected_zone_id)
            if hit is None:
                return
            base = self.canvas_rect(hit)
            ox, oy = self._drag_origin
            moved = base.moved_to(base.x + (x - ox), base.y + (y - oy))
            self._drag_rect = clamp_position(moved, self.cs.canvas_width, self.cs.canvas_height)

    def drawing_rect(self) -> Optional[Rect]:
        if self.mode is not Mode.DRAWING or self._draw_start is None:
            return None
        return Rect.from_corners(*self._draw_start, *self._draw_current)

    async def pointer_up(self, x: float, y: float) -> Optional[StoreResult]:
        mode = self.mode
        try:
            if mode is Mode.DRAWING:
                self._draw_current = self._clamp_canvas(x, y)
                return await self._finish_drawing()
            if mode is Mode.DRAGGING:
                self.pointer_move(x, y)
                return await self._finish_dragging()
            return None
        finally:
            self.mode = Mode.IDLE
            self._draw_start = self._draw_current = None
            self._drag_origin = self._drag_rect = None

    async def _finish_drawing(self) -> Optional[StoreResult]:
        rect = clamp_rect(self.drawing_rect(), self.cs.canvas_width, self.cs.canvas_height)
        if rect.width <= self.min_size_px or rect.height <= self.min_size_px:
            logger.debug(f"Drawn rectangle {rect.width:.1f}x{rect.height:.1f}px below minimum, discarded.")
            return None
        return await self.create_zone(rect)

    async def _finish_dragging(self) -> Optional[StoreResult]:
        assignment = self.assignment_for(self.selected_zone_id)
        if assignment is None or self._drag_rect is None:
            return None
        current = self.canvas_rect(assignment)
        if (self._drag_rect.x, self._drag_rect.y) == (current.x, current.y):
            return None
        target = self._to_page_rect(self._drag_rect)
        return await self._update_assignment(assignment, x=target.x, y=target.y)

    # --- write-through operations ---

    async def _write(self, action: str, fn, *args, **kwargs) -> StoreResult:
        try:
            value = await fn(*args, **kwargs)
        except ImpressError as e:
            self.notify("warning", f"Failed to {action}: {e}")
            return StoreResult(False, error=str(e))
        except SQLAlchemyError as e:
            await self.store.session.rollback()
            self.stale = True
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            self.notify("error", f"Failed to {action}. Please retry or reload the page.")
            return StoreResult(False, error=type(e).__name__)
        return StoreResult(True, value)

    async def create_zone(self, canvas_rect: Rect, name: Optional[str] = None,
                          type: Optional[str] = None) -> StoreResult:
        name = name or f"Zone {len(self.zones) + 1}"
        type = type or self.new_zone_type
        page_rect = self._to_page_rect(canvas_rect)

        created = await self._write("create zone", self.store.create_zone, self.page.template_id, type, name)
        if not created.ok:
            return created
        zone = created.value
        placed = await self._write("place zone", self.store.assign_zone_to_page, zone.id, self.page.id, page_rect)
        if not placed.ok:
            await self._write("clean up zone", self.store.delete_zone, zone.id)
            return placed

        self.zones[zone.id] = zone
        self.assignments.append(placed.value)
        self.assignments.sort(key=lambda a: (a.z_index, a.id))
        self.select(zone.id)
        self.notify("info", f'Zone "{name}" saved')
        return StoreResult(True, placed.value)

    async def _update_assignment(self, assignment: ZoneAssignment, **fields) -> StoreResult:
        # optimistic: the in-memory copy keeps the edit even if the write fails
        updated = assignment.model_copy(update=fields)
        self.assignments[self.assignments.index(assignment)] = updated
        return await self._write("update zone", self.store.update_assignment, assignment.id, **fields)

    async def update_properties(self, zone_id: str, display_unit: Union[str, Unit] = Unit.MILLIMETER,
                                name: Optional[str] = None, type: Optional[str] = None,
                                **geometry: Optional[float]) -> StoreResult:
        """Apply edits from the numeric properties panel.

        Geometry values arrive in the admin's display unit and are stored in
        the page unit.
        """
        zone = self.zones.get(zone_id)
        if zone is None:
            return StoreResult(False, error=f"zone not found: {zone_id}")

        # nothing is written unless every edit in the batch is valid
        if type is not None and type not in ZONE_CLASSES:
            error = InvalidZoneType(type)
            self.notify("warning", f"Failed to change zone type: {error}")
            return StoreResult(False, error=str(error))
        changes = {k: convert(v, display_unit, self.unit) for k, v in geometry.items() if v is not None}
        assignment = self.assignment_for(zone_id)
        if changes and assignment is not None:
            proposed = assignment.rect.model_copy(update=changes)
            if proposed.is_degenerate() or not proposed.is_inside(self.page.physical_width, self.page.physical_height):
                self.notify("warning", "Zone must stay within the page")
                return StoreResult(False, error="zone outside page")

        result = StoreResult(True, zone)
        if name is not None and name != zone.name:
            result = await self._write("rename zone", self.store.rename_zone, zone_id, name)
            if result.ok:
                self.zones[zone_id] = result.value
        if result.ok and type is not None and type != zone.type:
            result = await self._write("change zone type", self.store.change_zone_type, zone_id, type)
            if result.ok:
                self.zones[zone_id] = result.value
        if result.ok and changes and assignment is not None:
            result = await self._update_assignment(assignment, **changes)
        return result

    async def set_z_index(self, zone_id: str, z_index: int) -> StoreResult:
        result = await self._write("reorder zone", self.store.set_zone_z_index, zone_id, z_index)
        if result.ok:
            self.zones[zone_id] = result.value
            self.assignments = [
                a.model_copy(update={"z_index": z_index}) if a.zone_id == zone_id else a for a in self.assignments
            ]
            self.assignments.sort(key=lambda a: (a.z_index, a.id))
        return result

    async def bring_to_front(self, zone_id: str) -> StoreResult:
        top = max((z.z_index for z in self.zones.values()), default=0)
        return await self.set_z_index(zone_id, top + 1)

    async def set_repeating(self, zone_id: str, is_repeating: bool) -> StoreResult:
        assignment = self.assignment_for(zone_id)
        if assignment is None:
            return StoreResult(False, error=f"zone not on page: {zone_id}")
        updated = assignment.model_copy(update={"is_repeating": is_repeating})
        self.assignments[self.assignments.index(assignment)] = updated
        return await self._write("update zone", self.store.update_assignment, assignment.id, is_repeating=is_repeating)

    async def delete_selected(self) -> Optional[StoreResult]:
        zone_id = self.selected_zone_id
        if zone_id is None:
            return None
        result = await self._write("delete zone", self.store.delete_zone, zone_id)
        if result.ok:
            self.zones.pop(zone_id, None)
            self.assignments = [a for a in self.assignments if a.zone_id != zone_id]
            self.selected_zone_id = None
            self.notify("info", "Zone deleted")
        return result

    # --- properties panel ---

    def properties(self, zone_id: str, display_unit: Union[str, Unit] = Unit.MILLIMETER) -> Optional[Dict]:
        zone = self.zones.get(zone_id)
        assignment = self.assignment_for(zone_id)
        if zone is None or assignment is None:
            return None

        def shown(v: float) -> float:
            return round(convert(v, self.unit, display_unit), 2)

        canvas = self.canvas_rect(assignment)
        warnings = []
        if canvas.width < self.min_size_px:
            warnings.append("Zone width is very small")
        if canvas.height < self.min_size_px:
            warnings.append("Zone height is very small")
        if not assignment.rect.is_inside(self.page.physical_width, self.page.physical_height):
            warnings.append("Zone extends outside the page")

        return {
            "zone_id": zone.id,
            "name": zone.name,
            "type": zone.type,
            "x": shown(assignment.x),
            "y": shown(assignment.y),
            "width": shown(assignment.width),
            "height": shown(assignment.height),
            "unit": str(display_unit.value if isinstance(display_unit, Unit) else display_unit),
            "z_index": assignment.z_index,
            "is_repeating": assignment.is_repeating,
            "warnings": warnings,
        }

    # --- rendering ---

    async def load_preview(self, loader: ImageLoader, surface: DrawingSurface) -> bool:
        """Fetch the page preview and redraw, unless the surface moved on."""
        url = self.page.preview_image_url
        if not url:
            return False
        page_id = self.page.id
        image = await loader.load(url)
        if not surface.alive or surface.page_id != page_id:
            logger.info(f"Preview for page {page_id} arrived after the view changed, discarded.")
            return False
        if image is None:
            self.notify("warning", "Failed to load page preview")
            return False
        self.background = image
        self.render(surface)
        return True

    def render(self, surface: DrawingSurface) -> bool:
        size = (int(round(self.cs.canvas_width)), int(round(self.cs.canvas_height)))
        frame = Image.new("RGBA", size, surface.background)
        draw = ImageDraw.Draw(frame, "RGBA")

        if self.background is not None:
            frame.paste(scale_to_canvas(self.background, *size).convert("RGBA"), (0, 0))
        else:
            draw_page_placeholder(
                draw, size, self.page.page_number,
                format_dimensions(self.page.physical_width, self.page.physical_height, self.unit, Unit.MILLIMETER),
            )

        inset = self.cs.physical_to_canvas(SAFE_MARGIN_MM, SAFE_MARGIN_MM, Unit.MILLIMETER)
        draw_print_guides(draw, size, inset)

        for assignment in self.assignments:
            zone = self.zones.get(assignment.zone_id)
            if zone is None:
                continue
            rect = self.canvas_rect(assignment)
            if self.mode is Mode.DRAGGING and zone.id == self.selected_zone_id and self._drag_rect is not None:
                rect = self._drag_rect
            renderer_for(zone).draw_outline(draw, rect, zone.name, zone.id == self.selected_zone_id)

        in_progress = self.drawing_rect()
        if in_progress is not None and not in_progress.is_degenerate():
            draw_dashed_rect(draw, in_progress, SELECTED_STROKE)

        if surface.size != size:
            surface.resize(*size)
        surface.show_page(self.page.id)
        return surface.replace(frame)
