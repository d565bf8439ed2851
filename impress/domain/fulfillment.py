# impress/domain/fulfillment.py
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

import psutil
from PIL import Image, ImageDraw

from impress.domain.coordinates import CoordinateSystem
from impress.domain.rendering import DrawingSurface, renderer_for
from impress.domain.zone_store import AnyZone
from impress.domain.zones import (
    ContentMap, ImageContent, PageGeometry, PhysicalDimension, Rect, TextContent, ZoneAssignment,
)
from impress.infrastructure.images import ImageLoader, scale_to_canvas

# --- LOGGER SETUP ---
# Dedicated logger for this module so render timings can be tuned
# independently of the HTTP layer.
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

AnyContent = Union[TextContent, ImageContent]


@dataclass
class RenderOutcome:
    applied: bool
    filled: int = 0
    placeholders: int = 0
    failed_loads: int = 0


@dataclass
class ProofResult:
    ok: bool
    url: Optional[str] = None
    error: Optional[str] = None


def apply_customer_edit(contents: ContentMap, page_id: str, zone_id: str,
                        x: float = None, y: float = None, width: float = None, height: float = None,
                        base: Optional[Rect] = None) -> ContentMap:
    """Return a new content map with the customer's placement override for
    one zone updated. Zone assignments are never touched.

    Overrides are not clamped to the zone rectangle: once filled, content may
    be placed freely on the page.
    """
    key = (page_id, zone_id)
    entry = contents.get(key)
    if entry is None:
        return dict(contents)
    current = entry.placement or base
    if current is None:
        raise ValueError(f"No placement to update for zone {zone_id}; pass the zone rectangle as base")
    changes = {k: v for k, v in (("x", x), ("y", y), ("width", width), ("height", height)) if v is not None}
    updated = dict(contents)
    updated[key] = entry.model_copy(update={"placement": current.model_copy(update=changes)})
    return updated


class FulfillmentService:
    """Renders a customer's content into a page's zones."""

    def __init__(self, image_loader: ImageLoader):
        self.image_loader = image_loader

    def _placement(self, assignment: ZoneAssignment, content: Optional[AnyContent]) -> Rect:
        if content is not None and content.placement is not None:
            return content.placement
        return assignment.rect

    async def render_page(
        self,
        page: PageGeometry,
        zones: Iterable[AnyZone],
        assignments: Iterable[ZoneAssignment],
        contents: ContentMap,
        surface: DrawingSurface,
        target: Optional[PhysicalDimension] = None,
        background: Optional[Image.Image] = None,
    ) -> RenderOutcome:
        """Draw every zone of `page` onto `surface` as content or placeholder.

        The coordinate system is derived from the surface's size at call
        time. Results are applied only if the surface is still alive and
        still showing this page once image loads complete.
        """
        page_id = page.id
        if surface.page_id is None:
            surface.show_page(page_id)
        start_time = time.perf_counter()
        zones_by_id: Dict[str, AnyZone] = {z.id: z for z in zones}
        ordered = sorted(assignments, key=lambda a: (a.z_index, a.id))

        image_refs = {}
        for a in ordered:
            content = contents.get((page_id, a.zone_id))
            if isinstance(content, ImageContent):
                image_refs[a.zone_id] = content.image_ref

        loaded: Dict[str, Optional[Image.Image]] = {}
        if image_refs:
            logger.info(f"Page {page.page_number}: loading {len(image_refs)} customer images.")
            images = await self.image_loader.load_many(list(image_refs.values()))
            loaded = dict(zip(image_refs.keys(), images))

        if not surface.alive or surface.page_id != page_id:
            logger.info(f"Page {page.page_number}: view changed while loading, render discarded.")
            return RenderOutcome(applied=False)

        cs = CoordinateSystem.for_page(page, surface.width, surface.height, target)
        frame = surface.new_frame()
        if background is not None:
            frame.paste(scale_to_canvas(background, surface.width, surface.height).convert("RGBA"), (0, 0))
        draw = ImageDraw.Draw(frame, "RGBA")

        outcome = RenderOutcome(applied=False)
        for a in ordered:
            zone = zones_by_id.get(a.zone_id)
            if zone is None:
                logger.warning(f"Assignment {a.id} refers to unknown zone {a.zone_id}, skipped.")
                continue
            renderer = renderer_for(zone)
            content = contents.get((page_id, a.zone_id))
            if content is None or content.type != zone.type:
                renderer.draw_placeholder(draw, cs.rect_to_canvas(a.rect, page.physical_unit))
                outcome.placeholders += 1
                continue

            rect = cs.rect_to_canvas(self._placement(a, content), page.physical_unit)
            image = loaded.get(a.zone_id)
            if isinstance(content, ImageContent) and image is None:
                logger.warning(f"Page {page.page_number}: image for zone '{zone.name}' could not be loaded.")
                outcome.failed_loads += 1
            renderer.draw_content(frame, rect, content, image)
            outcome.filled += 1

        outcome.applied = surface.replace(frame)
        logger.info(
            f"Page {page.page_number}: {outcome.filled} filled, {outcome.placeholders} placeholders "
            f"in {time.perf_counter() - start_time:.2f}s."
        )
        return outcome

    async def render_proof(self, page: PageGeometry, zones: Iterable[AnyZone], assignments: Iterable[ZoneAssignment],
                           contents: ContentMap, canvas_size, uploader, public_id: str,
                           target: Optional[PhysicalDimension] = None, **upload_kwargs) -> ProofResult:
        """Render a page off-screen and hand it to `uploader` (see
        infrastructure.cloudinary.upload_file.upload_pil_image)."""
        try:
            process = psutil.Process(os.getpid())
            logger.info(f"Memory usage before proof: {process.memory_info().rss / 1024 / 1024:.1f}MB")
        except psutil.Error as mem_error:
            logger.warning(f"Could not get memory info: {mem_error}")

        surface = DrawingSurface(*canvas_size, page_id=page.id)
        background = None
        if page.preview_image_url:
            background = await self.image_loader.load(page.preview_image_url)
        await self.render_page(page, zones, assignments, contents, surface, target, background)
        try:
            url = uploader(surface.frame.convert("RGB"), public_id=public_id, **upload_kwargs)
        except Exception as e:
            logger.error(f"Proof upload failed for page {page.page_number}: {e}", exc_info=True)
            return ProofResult(False, error=f"{type(e).__name__}: {e}")
        return ProofResult(True, url=url)


def build_customization_payload(template_id: str, pages: Iterable[PageGeometry], zones: Iterable[AnyZone],
                                assignments_by_page: Dict[str, List[ZoneAssignment]],
                                contents: ContentMap) -> Dict:
    """Flatten assignments + customer content for PDF generation.

    Geometry is reported in each page's physical unit; zones without
    customer content are left out.
    """
    zones_by_id = {z.id: z for z in zones}
    customizations = []
    for page in sorted(pages, key=lambda p: p.page_number):
        entries = []
        for a in sorted(assignments_by_page.get(page.id, []), key=lambda a: (a.z_index, a.id)):
            zone = zones_by_id.get(a.zone_id)
            content = contents.get((page.id, a.zone_id))
            if zone is None or content is None or content.type != zone.type:
                continue
            rect = content.placement or a.rect
            entries.append({
                "zoneId": a.zone_id,
                "type": zone.type,
                "content": content.content if isinstance(content, TextContent) else content.image_ref,
                "x": rect.x,
                "y": rect.y,
                "width": rect.width,
                "height": rect.height,
                "unit": page.physical_unit.value,
            })
        customizations.append({"pageId": page.id, "pageNumber": page.page_number, "zones": entries})
    return {"templateId": template_id, "customizations": customizations}
