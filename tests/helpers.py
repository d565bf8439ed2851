from typing import List, Optional

from PIL import Image

from impress.domain.zones import PhysicalDimension


A4 = PhysicalDimension(width=210, height=297, unit="millimeter")


async def seed_page(store, width=600.0, height=800.0, unit="point", print_size=None, preview_image_url=None):
    template = await store.create_template("Wall Calendar", print_size or A4)
    page = await store.add_page(template.id, 1, width, height, unit, preview_image_url)
    return template, page


class FakeLoader:
    """Stands in for ImageLoader; `before_return` runs while the load is in flight."""

    def __init__(self, images: Optional[dict] = None, before_return=None):
        self.images = images or {}
        self.before_return = before_return
        self.requested: List[str] = []

    async def load_many(self, sources):
        self.requested.extend(sources)
        if self.before_return is not None:
            self.before_return()
        return [self.images.get(src) for src in sources]

    async def load(self, src):
        return (await self.load_many([src]))[0]


def solid_image(width=200, height=100, color=(200, 30, 30, 255)):
    return Image.new("RGBA", (width, height), color)
