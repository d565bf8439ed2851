# impress/infrastructure/cloudinary/upload_file.py
from io import BytesIO
from typing import Optional, Tuple
from PIL import Image
import cloudinary, cloudinary.uploader
from impress.config.settings import settings

# Pillow encoder name and Cloudinary extension per accepted proof format
_PROOF_FORMATS = {
    "jpg": ("JPEG", "jpg"),
    "jpeg": ("JPEG", "jpg"),
    "png": ("PNG", "png"),
    "webp": ("WEBP", "webp"),
}


def configure() -> None:
    # CLOUDINARY_URL is picked up by the SDK itself; split vars win when set
    if settings.CLOUDINARY_CLOUD_NAME:
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )


configure()


def encode_proof(img: Image.Image, fmt: Optional[str] = None, quality: Optional[int] = None) -> Tuple[BytesIO, str]:
    """Encode a rendered page for upload. Returns the buffer and the file extension."""
    fmt = (fmt or settings.PROOF_FORMAT).lower()
    quality = settings.PROOF_QUALITY if quality is None else quality
    try:
        encoder, extension = _PROOF_FORMATS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported proof format: {fmt!r}") from None

    if encoder == "JPEG":
        # proofs are flattened onto white; JPEG has no alpha
        if img.mode != "RGB":
            img = img.convert("RGB")
        options = {"quality": quality, "optimize": True}
    elif encoder == "WEBP":
        options = {"quality": quality}
    else:
        options = {"optimize": True}

    buf = BytesIO()
    img.save(buf, format=encoder, **options)
    buf.seek(0)
    return buf, extension


def upload_pil_image(
    img: Image.Image,
    public_id: str,
    folder: Optional[str] = None,
    fmt: Optional[str] = None,
    quality: Optional[int] = None,
    tags: Optional[list[str]] = None,
) -> str:
    """Upload a rendered page proof into PROOF_FOLDER and return its secure URL."""
    buf, extension = encode_proof(img, fmt, quality)
    res = cloudinary.uploader.upload(
        buf,
        resource_type="image",
        folder=folder or settings.PROOF_FOLDER,
        public_id=public_id,
        overwrite=True,
        format=extension,
        tags=tags or ["calendar-proof"],
    )
    return res["secure_url"]
