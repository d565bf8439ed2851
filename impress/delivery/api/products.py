# impress/delivery/api/products.py
from typing import List

from fastapi import APIRouter, Depends, Response, status

from impress.delivery.api.deps import get_links, get_store, require_admin, verify_basic_auth
from impress.delivery.schemas.body import ProductTemplateIn, ProductTemplateOut
from impress.domain.product_templates import ProductTemplateLinks
from impress.domain.zone_store import ZoneStore

router = APIRouter()


def _out(link) -> ProductTemplateOut:
    return ProductTemplateOut(product_id=link.product_id, template_id=link.template_id, is_default=link.is_default)


@router.get("/products/{product_id}/templates", response_model=List[ProductTemplateOut],
            dependencies=[Depends(verify_basic_auth)])
async def list_product_templates(product_id: str, links: ProductTemplateLinks = Depends(get_links)):
    return [_out(l) for l in await links.list_for_product(product_id)]


@router.get("/products/{product_id}/templates/default", response_model=ProductTemplateOut,
            dependencies=[Depends(verify_basic_auth)])
async def default_product_template(product_id: str, links: ProductTemplateLinks = Depends(get_links)):
    link = await links.default_for_product(product_id)
    if link is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _out(link)


@router.post("/products/{product_id}/templates", response_model=ProductTemplateOut,
             status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
async def assign_template(product_id: str, body: ProductTemplateIn,
                          links: ProductTemplateLinks = Depends(get_links), store: ZoneStore = Depends(get_store)):
    await store.get_template(body.template_id)
    return _out(await links.assign(product_id, body.template_id, body.is_default))


@router.put("/products/{product_id}/templates/{template_id}/default", response_model=ProductTemplateOut,
            dependencies=[Depends(require_admin)])
async def set_default_template(product_id: str, template_id: str, links: ProductTemplateLinks = Depends(get_links)):
    return _out(await links.set_default(product_id, template_id))


@router.delete("/products/{product_id}/templates/{template_id}", dependencies=[Depends(require_admin)])
async def unassign_template(product_id: str, template_id: str, links: ProductTemplateLinks = Depends(get_links)):
    promoted = await links.unassign(product_id, template_id)
    return {"removed": template_id, "new_default": promoted.template_id if promoted else None}
