# impress/delivery/api/customize.py
import asyncio
import logging
import time
import traceback
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from impress.config.settings import settings
from impress.delivery.api.deps import content_map, get_service, get_store, verify_basic_auth
from impress.delivery.schemas.body import PayloadRequest, PreviewRequest
from impress.domain.fulfillment import build_customization_payload
from impress.domain.rendering import DrawingSurface
from impress.domain.zone_store import ZoneStore
from impress.infrastructure.cloudinary.upload_file import upload_pil_image

router = APIRouter(dependencies=[Depends(verify_basic_auth)])
logger = logging.getLogger("uvicorn.error")

PROOF_TIMEOUT_SECONDS = 60


async def _page_context(store: ZoneStore, page_id: str):
    page = await store.get_page(page_id)
    zones = await store.list_zones(page.template_id)
    assignments = await store.list_assignments_for_page(page_id)
    target = await store.template_print_size(page.template_id)
    return page, zones, assignments, target


@router.get("/pages/{page_id}/zones")
async def customer_zones(page_id: str, store: ZoneStore = Depends(get_store)):
    page, zones, assignments, _ = await _page_context(store, page_id)
    by_id = {z.id: z for z in zones}
    return {
        "page": page.model_dump(),
        "zones": [
            {**a.model_dump(), "name": by_id[a.zone_id].name, "type": by_id[a.zone_id].type}
            for a in assignments if a.zone_id in by_id
        ],
    }


@router.post("/pages/{page_id}/preview.png")
async def preview_page(request: Request, page_id: str, body: PreviewRequest, store: ZoneStore = Depends(get_store)):
    service = get_service(request, "fulfillment")
    page, zones, assignments, target = await _page_context(store, page_id)
    surface = DrawingSurface(int(round(body.canvas_width)), int(round(body.canvas_height)), page_id=page_id)

    background = None
    if page.preview_image_url:
        background = await service.image_loader.load(page.preview_image_url)
    outcome = await service.render_page(
        page, zones, assignments, content_map(body.contents), surface, target, background
    )
    headers = {
        "X-Zones-Filled": str(outcome.filled),
        "X-Zones-Placeholder": str(outcome.placeholders),
        "X-Image-Load-Failures": str(outcome.failed_loads),
    }
    return Response(content=surface.to_png(), media_type="image/png", headers=headers)


@router.post("/pages/{page_id}/proof")
async def upload_proof(request: Request, page_id: str, body: PreviewRequest, store: ZoneStore = Depends(get_store)):
    service = get_service(request, "fulfillment")
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    logger.info(f"=== PROOF REQUEST {request_id} STARTED for page {page_id} ===")

    page, zones, assignments, target = await _page_context(store, page_id)
    try:
        result = await asyncio.wait_for(
            service.render_proof(
                page, zones, assignments, content_map(body.contents),
                (int(round(body.canvas_width)), int(round(body.canvas_height))),
                upload_pil_image, public_id=f"{page.template_id}-{page.page_number}-{request_id}",
                target=target, fmt=settings.PROOF_FORMAT, quality=settings.PROOF_QUALITY,
            ),
            timeout=PROOF_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"=== PROOF REQUEST {request_id} TIMEOUT after {PROOF_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=504, detail="Proof rendering timed out")
    except Exception as e:
        logger.error(f"=== PROOF REQUEST {request_id} ERROR: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to render proof")

    logger.info(f"=== PROOF REQUEST {request_id} finished in {time.time() - start_time:.2f}s, ok={result.ok} ===")
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)
    return {"url": result.url}


@router.post("/templates/{template_id}/payload")
async def customization_payload(template_id: str, body: PayloadRequest, store: ZoneStore = Depends(get_store)):
    await store.get_template(template_id)
    pages = await store.list_pages(template_id)
    zones = await store.list_zones(template_id)
    assignments_by_page = {p.id: await store.list_assignments_for_page(p.id) for p in pages}
    return build_customization_payload(template_id, pages, zones, assignments_by_page, content_map(body.contents))
