# impress/domain/product_templates.py
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from impress.domain.errors import NotFound
from impress.infrastructure.database.models import ProductTemplate

logger = logging.getLogger(__name__)


class ProductTemplateLinks:
    """Many-to-many product <-> template links.

    A product with at least one linked template always has exactly one
    default; with none, it has no default.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_product(self, product_id: str) -> List[ProductTemplate]:
        rows = await self.session.scalars(
            select(ProductTemplate)
            .where(ProductTemplate.product_id == product_id)
            .order_by(ProductTemplate.create_time, ProductTemplate.id)
        )
        return list(rows)

    async def default_for_product(self, product_id: str) -> Optional[ProductTemplate]:
        return await self.session.scalar(
            select(ProductTemplate).where(
                ProductTemplate.product_id == product_id,
                ProductTemplate.is_default.is_(True),
            )
        )

    async def _clear_default(self, product_id: str) -> None:
        await self.session.execute(
            update(ProductTemplate)
            .where(ProductTemplate.product_id == product_id)
            .values(is_default=False)
        )

    async def assign(self, product_id: str, template_id: str, is_default: bool = False) -> ProductTemplate:
        existing = await self.list_for_product(product_id)
        link = next((l for l in existing if l.template_id == template_id), None)
        make_default = is_default or not existing or (link is not None and link.is_default)

        if make_default:
            await self._clear_default(product_id)
        if link is None:
            link = ProductTemplate(product_id=product_id, template_id=template_id)
            self.session.add(link)
        link.is_default = make_default
        await self.session.commit()
        await self.session.refresh(link)
        return link

    async def set_default(self, product_id: str, template_id: str) -> ProductTemplate:
        link = await self.session.scalar(
            select(ProductTemplate).where(
                ProductTemplate.product_id == product_id,
                ProductTemplate.template_id == template_id,
            )
        )
        if link is None:
            raise NotFound("product template", (product_id, template_id))
        await self._clear_default(product_id)
        link.is_default = True
        await self.session.commit()
        await self.session.refresh(link)
        return link

    async def unassign(self, product_id: str, template_id: str) -> Optional[ProductTemplate]:
        """Remove a link; returns the new default if the old one was removed."""
        links = await self.list_for_product(product_id)
        link = next((l for l in links if l.template_id == template_id), None)
        if link is None:
            raise NotFound("product template", (product_id, template_id))

        was_default = link.is_default
        await self.session.delete(link)
        await self.session.flush()

        promoted = None
        remaining = [l for l in links if l is not link]
        if was_default and remaining:
            promoted = remaining[0]
            promoted.is_default = True
            logger.info(f"Template {promoted.template_id} promoted to default for product {product_id}.")
        await self.session.commit()
        return promoted
