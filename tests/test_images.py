import asyncio
import base64
import io

from helpers import solid_image
from impress.infrastructure.images import ImageLoader, fit_within


def _png_bytes(width=40, height=20):
    buf = io.BytesIO()
    solid_image(width, height).save(buf, format="PNG")
    return buf.getvalue()


def test_loads_data_urls_and_local_files(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(_png_bytes(30, 10))
    data_url = "data:image/png;base64," + base64.b64encode(_png_bytes()).decode()

    from_data, from_file = asyncio.run(ImageLoader().load_many([data_url, str(path)]))
    assert from_data.size == (40, 20) and from_data.mode == "RGBA"
    assert from_file.size == (30, 10)


def test_unreadable_sources_return_none():
    assert asyncio.run(ImageLoader().load("definitely not an image")) is None


def test_large_images_are_downscaled():
    loader = ImageLoader(max_side=100)
    image = loader.decode(_png_bytes(400, 200))
    assert image.size == (100, 50)


def test_fit_within_keeps_aspect_ratio_and_centers():
    resized, offset = fit_within(solid_image(200, 100), 100, 100)
    assert resized.size == (100, 50)
    assert offset == (0, 25)
