# impress/infrastructure/images.py
import asyncio
import base64
import io
import logging
import os
from typing import List, Optional, Tuple

import aiofiles
import aiohttp
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
MAX_SIDE = 2400


class ImageLoader:
    """Fetches image bytes from URLs, local paths or (data URL) base64."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT, max_side: int = MAX_SIDE):
        self.timeout = timeout
        self.max_side = max_side

    async def load_bytes(self, src: str, session: aiohttp.ClientSession) -> Optional[bytes]:
        try:
            if src.startswith(("http://", "https://")):
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                async with session.get(src, timeout=timeout) as response:
                    response.raise_for_status()
                    return await response.read()
            if os.path.isfile(src):
                async with aiofiles.open(src, "rb") as f:
                    return await f.read()
            if src.startswith("data:image"):
                _, encoded = src.split(",", 1)
                return base64.b64decode(encoded + "===")
            return base64.b64decode(src + "===", validate=False)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.warning(f"Could not load image from '{src[:70]}': {type(e).__name__}")
            return None

    async def load_many(self, sources: List[str]) -> List[Optional[Image.Image]]:
        async with aiohttp.ClientSession() as session:
            raw = await asyncio.gather(*(self.load_bytes(src, session) for src in sources))
        return [self.decode(b) for b in raw]

    async def load(self, src: str) -> Optional[Image.Image]:
        return (await self.load_many([src]))[0]

    def decode(self, b: Optional[bytes]) -> Optional[Image.Image]:
        if not b:
            return None
        try:
            img = Image.open(io.BytesIO(b))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not decode image: {type(e).__name__}")
            return None
        img = img.convert("RGBA")
        m = max(img.size)
        if m > self.max_side:
            scale = self.max_side / m
            img = img.resize((int(img.width * scale), int(img.height * scale)), Image.Resampling.LANCZOS)
        return img


def fit_within(image: Image.Image, target_w: float, target_h: float) -> Tuple[Image.Image, Tuple[int, int]]:
    """Scale to fit preserving aspect ratio; returns the image and its
    centering offset inside the target box."""
    source_w, source_h = image.size
    scale = min(target_w / source_w, target_h / source_h)
    scaled_w = max(1, int(round(source_w * scale)))
    scaled_h = max(1, int(round(source_h * scale)))
    resized = image.resize((scaled_w, scaled_h), Image.Resampling.LANCZOS)
    offset = (int(round((target_w - scaled_w) / 2)), int(round((target_h - scaled_h) / 2)))
    return resized, offset


def scale_to_canvas(image: Image.Image, canvas_w: int, canvas_h: int) -> Image.Image:
    """Background preview scaled onto a canvas of the given size."""
    return image.resize((canvas_w, canvas_h), Image.Resampling.LANCZOS)
