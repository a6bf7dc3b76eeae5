"""Image normalizer — shrink uploads before they reach the object store."""

from __future__ import annotations

import asyncio
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from config import IMAGE_JPEG_QUALITY, IMAGE_MAX_WIDTH
from errors import UploadError

logger = logging.getLogger(__name__)


def normalize_image(
    data: bytes,
    max_width: int = IMAGE_MAX_WIDTH,
    quality: int = IMAGE_JPEG_QUALITY,
) -> bytes:
    """Return *data* re-encoded as JPEG no wider than *max_width*.

    Aspect ratio is kept and images are never upscaled.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")
            if img.width > max_width:
                new_height = max(1, round(img.height * max_width / img.width))
                img = img.resize((max_width, new_height), Image.LANCZOS)
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Rejected unreadable image (%d bytes)", len(data))
        raise UploadError("The file is not a readable image.") from exc
    return out.getvalue()


async def normalize_image_async(data: bytes) -> bytes:
    return await asyncio.to_thread(normalize_image, data)
