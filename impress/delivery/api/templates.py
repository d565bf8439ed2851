# impress/delivery/api/templates.py
import asyncio
import logging
import traceback

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile, status

from impress.config.settings import settings
from impress.delivery.api.deps import get_service, get_store, require_admin
from impress.delivery.schemas.body import (
    AssignmentCreate, AssignmentUpdate, CanvasSize, DrawRequest, DrawResponse, IngestionOut,
    TemplateCreate, TemplateOut, ZoneCreate, ZoneUpdate,
)
from impress.domain.authoring import AuthoringSession
from impress.domain.coordinates import fit_canvas_size
from impress.domain.rendering import DrawingSurface
from impress.domain.units import Unit, convert, parse_unit
from impress.domain.zone_store import ZoneStore
from impress.domain.zones import PhysicalDimension, Rect
from impress.infrastructure.ingestion import ingest_template_pdf

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger("uvicorn.error")

INGEST_TIMEOUT_SECONDS = 120


def _template_out(row) -> TemplateOut:
    return TemplateOut(
        id=row.id,
        name=row.name,
        print_width=row.print_width,
        print_height=row.print_height,
        print_unit=parse_unit(row.print_unit),
        original_pdf_url=row.original_pdf_url,
        pdf_metadata=row.pdf_metadata,
    )


@router.post("/templates", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
async def create_template(body: TemplateCreate, store: ZoneStore = Depends(get_store)):
    size = PhysicalDimension(width=body.print_width, height=body.print_height, unit=body.print_unit)
    return _template_out(await store.create_template(body.name, size))


@router.get("/templates/{template_id}", response_model=TemplateOut)
async def get_template(template_id: str, store: ZoneStore = Depends(get_store)):
    return _template_out(await store.get_template(template_id))


@router.post("/templates/{template_id}/pdf", response_model=IngestionOut)
async def upload_template_pdf(request: Request, template_id: str, file: UploadFile = File(...),
                              store: ZoneStore = Depends(get_store)):
    client = get_service(request, "ingestion_client")
    await store.get_template(template_id)
    pdf_bytes = await file.read()
    logger.info(f"=== PDF UPLOAD for template {template_id}: {file.filename} ({len(pdf_bytes)} bytes) ===")
    try:
        report = await asyncio.wait_for(
            ingest_template_pdf(store, client, template_id, pdf_bytes, file.filename or "template.pdf",
                                settings.DIMENSION_TOLERANCE_PCT),
            timeout=INGEST_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"=== PDF UPLOAD TIMEOUT for template {template_id} after {INGEST_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=504, detail="PDF processing timed out")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"=== PDF UPLOAD ERROR for template {template_id}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process PDF")

    if not report.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=report.error)
    return IngestionOut(**report.__dict__)


@router.get("/templates/{template_id}/pages")
async def list_pages(template_id: str, store: ZoneStore = Depends(get_store)):
    await store.get_template(template_id)
    pages = await store.list_pages(template_id)
    return {"pages": [p.model_dump() for p in pages], "empty": not pages}


@router.get("/pages/{page_id}/canvas")
async def page_canvas(page_id: str, store: ZoneStore = Depends(get_store)):
    page = await store.get_page(page_id)
    w_pt = convert(page.physical_width, page.physical_unit, Unit.POINT)
    h_pt = convert(page.physical_height, page.physical_unit, Unit.POINT)
    width, height = fit_canvas_size(w_pt, h_pt, settings.CANVAS_MAX_WIDTH, settings.CANVAS_MAX_HEIGHT)
    return {"canvas_width": width, "canvas_height": height}


@router.get("/templates/{template_id}/zones")
async def list_zones(template_id: str, store: ZoneStore = Depends(get_store)):
    return {"zones": [z.model_dump() for z in await store.list_zones(template_id)]}


@router.post("/templates/{template_id}/zones", status_code=status.HTTP_201_CREATED)
async def create_zone(template_id: str, body: ZoneCreate, store: ZoneStore = Depends(get_store)):
    await store.get_template(template_id)
    zone = await store.create_zone(template_id, body.type, body.name)
    return zone.model_dump()


@router.patch("/zones/{zone_id}")
async def update_zone(zone_id: str, body: ZoneUpdate, store: ZoneStore = Depends(get_store)):
    zone = await store.get_zone(zone_id)
    if body.name is not None:
        zone = await store.rename_zone(zone_id, body.name)
    if body.type is not None:
        zone = await store.change_zone_type(zone_id, body.type)
    if body.z_index is not None:
        zone = await store.set_zone_z_index(zone_id, body.z_index)
    return zone.model_dump()


@router.delete("/zones/{zone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_zone(zone_id: str, store: ZoneStore = Depends(get_store)):
    await store.delete_zone(zone_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/pages/{page_id}/assignments")
async def list_assignments(page_id: str, store: ZoneStore = Depends(get_store)):
    await store.get_page(page_id)
    return {"assignments": [a.model_dump() for a in await store.list_assignments_for_page(page_id)]}


@router.post("/pages/{page_id}/assignments", status_code=status.HTTP_201_CREATED)
async def create_assignment(page_id: str, body: AssignmentCreate, store: ZoneStore = Depends(get_store)):
    page = await store.get_page(page_id)
    unit = body.unit or page.physical_unit
    rect = Rect(
        x=convert(body.x, unit, page.physical_unit),
        y=convert(body.y, unit, page.physical_unit),
        width=convert(body.width, unit, page.physical_unit),
        height=convert(body.height, unit, page.physical_unit),
    )
    assignment = await store.assign_zone_to_page(body.zone_id, page_id, rect, body.is_repeating)
    return assignment.model_dump()


@router.patch("/assignments/{assignment_id}")
async def update_assignment(assignment_id: str, body: AssignmentUpdate, store: ZoneStore = Depends(get_store)):
    current = await store.get_assignment(assignment_id)
    page = await store.get_page(current.page_id)
    unit = body.unit or page.physical_unit
    geometry = {
        k: convert(v, unit, page.physical_unit)
        for k, v in body.model_dump(include={"x", "y", "width", "height"}).items()
        if v is not None
    }
    assignment = await store.update_assignment(assignment_id, is_repeating=body.is_repeating, **geometry)
    return assignment.model_dump()


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(assignment_id: str, store: ZoneStore = Depends(get_store)):
    await store.delete_assignment(assignment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/pages/{page_id}/draw", response_model=DrawResponse)
async def draw_zone(page_id: str, body: DrawRequest, store: ZoneStore = Depends(get_store)):
    """Replay a draw gesture (mouse-down at `start`, mouse-up at `end`)."""
    session = await AuthoringSession.open(
        store, page_id, body.canvas_width, body.canvas_height,
        new_zone_type=body.type,
    )
    if session.hit_test(*body.start) is not None:
        return DrawResponse(created=False, error="start point is inside an existing zone")
    session.pointer_down(*body.start)
    result = await session.pointer_up(*body.end)
    if result is None:
        return DrawResponse(created=False)
    if not result.ok:
        return DrawResponse(created=False, error=result.error)
    assignment = result.value
    zone = session.zones[assignment.zone_id]
    if body.name:
        renamed = await session.update_properties(zone.id, name=body.name)
        if renamed.ok:
            zone = renamed.value
    return DrawResponse(created=True, zone=zone.model_dump(), assignment=assignment.model_dump())


@router.get("/pages/{page_id}/overlay.png")
async def zone_overlay(request: Request, page_id: str, canvas_width: int = 800, canvas_height: int = 600,
                       selected: str = None, store: ZoneStore = Depends(get_store)):
    session = await AuthoringSession.open(store, page_id, canvas_width, canvas_height)
    session.select(selected)
    surface = DrawingSurface(canvas_width, canvas_height, page_id=page_id)
    loader = get_service(request, "image_loader")
    if not await session.load_preview(loader, surface):
        session.render(surface)
    return Response(content=surface.to_png(), media_type="image/png")


@router.get("/pages/{page_id}/properties/{zone_id}")
async def zone_properties(page_id: str, zone_id: str, unit: str = "mm", canvas: CanvasSize = Depends(),
                          store: ZoneStore = Depends(get_store)):
    session = await AuthoringSession.open(store, page_id, canvas.canvas_width, canvas.canvas_height)
    props = session.properties(zone_id, parse_unit(unit))
    if props is None:
        raise HTTPException(status_code=404, detail="Zone is not placed on this page")
    return props
