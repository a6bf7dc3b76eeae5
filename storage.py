"""Object store — Cloudinary uploads returning public URLs."""

from __future__ import annotations

import asyncio
import io
import logging
import re
import secrets

import cloudinary
import cloudinary.uploader

from config import (
    CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET, CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_FOLDER, MAX_UPLOAD_BYTES,
)
from errors import UploadError

logger = logging.getLogger(__name__)

PAYMENT_PROOFS = "payment-proofs"
PAYMENT_QRS = "payment-qrs"

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def object_name(suggested_name: str) -> str:
    """Randomized object name keeping a readable prefix."""
    stem = suggested_name.rsplit(".", 1)[0]
    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", stem).strip("-")[:40] or "upload"
    return f"{stem}-{secrets.token_hex(6)}"


def check_size(blob: bytes) -> None:
    if len(blob) > MAX_UPLOAD_BYTES:
        raise UploadError(
            f"File is too large (max {MAX_UPLOAD_BYTES // (1024 * 1024)} MB)."
        )


def _upload_sync(blob: bytes, public_id: str, folder: str) -> str:
    result = cloudinary.uploader.upload(
        io.BytesIO(blob),
        public_id=public_id,
        folder=f"{CLOUDINARY_FOLDER}/{folder}",
        resource_type="image",
        unique_filename=False,
        overwrite=False,
    )
    return result["secure_url"]


async def upload(blob: bytes, suggested_name: str, folder: str = PAYMENT_PROOFS) -> str:
    """Upload *blob* and return its public URL."""
    check_size(blob)
    if not CLOUDINARY_CLOUD_NAME:
        raise UploadError("File storage is not configured.")

    public_id = object_name(suggested_name)
    try:
        url = await asyncio.to_thread(_upload_sync, blob, public_id, folder)
    except Exception as exc:
        logger.exception("Upload of %s to %s failed", public_id, folder)
        raise UploadError() from exc
    logger.info("Uploaded %s (%d bytes) to %s", public_id, len(blob), folder)
    return url
