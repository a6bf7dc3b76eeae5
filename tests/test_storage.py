"""
Unit Tests for the Object Store
Tests for: size limit, configuration check, Cloudinary upload
"""
from unittest.mock import patch

import pytest

import storage
from errors import UploadError


class TestUpload:
    """Cloudinary uploads"""

    async def test_oversize_rejected_before_upload(self, monkeypatch):
        monkeypatch.setattr(storage, "CLOUDINARY_CLOUD_NAME", "demo")
        blob = b"x" * (storage.MAX_UPLOAD_BYTES + 1)
        with patch("cloudinary.uploader.upload") as upload:
            with pytest.raises(UploadError):
                await storage.upload(blob, "proof.jpg")
            upload.assert_not_called()

    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(storage, "CLOUDINARY_CLOUD_NAME", "")
        with pytest.raises(UploadError) as exc:
            await storage.upload(b"data", "proof.jpg")
        assert exc.value.message == "File storage is not configured."

    async def test_returns_public_url(self, monkeypatch):
        monkeypatch.setattr(storage, "CLOUDINARY_CLOUD_NAME", "demo")
        with patch(
            "cloudinary.uploader.upload",
            return_value={"secure_url": "https://res.cloudinary.com/demo/p.jpg"},
        ) as upload:
            url = await storage.upload(b"data", "Byte Me-proof.jpg", storage.PAYMENT_PROOFS)

        assert url == "https://res.cloudinary.com/demo/p.jpg"
        kwargs = upload.call_args.kwargs
        assert kwargs["folder"].endswith("/payment-proofs")
        assert kwargs["public_id"].startswith("Byte-Me-proof-")

    async def test_provider_failure_becomes_upload_error(self, monkeypatch):
        monkeypatch.setattr(storage, "CLOUDINARY_CLOUD_NAME", "demo")
        with patch("cloudinary.uploader.upload", side_effect=RuntimeError("boom")):
            with pytest.raises(UploadError):
                await storage.upload(b"data", "proof.jpg")


class TestObjectName:
    """Randomized names"""

    def test_names_are_unique(self):
        assert storage.object_name("proof.jpg") != storage.object_name("proof.jpg")

    def test_unsafe_characters_replaced(self):
        name = storage.object_name("../../etc/passwd.png")
        assert "/" not in name and "." not in name

    def test_empty_stem(self):
        assert storage.object_name(".jpg").startswith("upload-")
