"""
Unit tests for image storage.

Tests cover:
- Storage disabled
- Content type, size and folder validation
- Object keys and public URLs
- Object store failures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from api.src.config import Settings
from api.src.exceptions import (
    BadRequestError,
    ExternalServiceError,
    PayloadTooLargeError,
    ServiceUnavailableError,
)
from api.src.services.storage_service import StorageService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def storage_settings(**overrides) -> Settings:
    data = {
        "storage_enabled": True,
        "storage_endpoint": "http://minio:9000",
        "storage_bucket": "images",
        "upload_max_bytes": 1024,
    }
    data.update(overrides)
    return Settings(**data)


@pytest.fixture
def s3():
    return AsyncMock()


@pytest.fixture
def storage(s3):
    service = StorageService(storage_settings())
    client = MagicMock()
    client.__aenter__.return_value = s3
    service.get_client = MagicMock(return_value=client)
    return service


class TestUploadImage:
    """Tests for image uploads."""

    @pytest.mark.asyncio
    async def test_stores_under_folder(self, storage, s3):
        result = await storage.upload_image(PNG_BYTES, "image/png", "menu")

        assert result["public_id"].startswith("menu/")
        assert result["public_id"].endswith(".png")
        assert result["url"] == f"http://minio:9000/images/{result['public_id']}"
        kwargs = s3.put_object.await_args.kwargs
        assert kwargs["Bucket"] == "images"
        assert kwargs["ContentType"] == "image/png"
        assert kwargs["Body"] == PNG_BYTES

    @pytest.mark.asyncio
    async def test_disabled(self):
        storage = StorageService(storage_settings(storage_enabled=False))
        with pytest.raises(ServiceUnavailableError):
            await storage.upload_image(PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_rejects_non_image(self, storage, s3):
        with pytest.raises(BadRequestError, match="Only JPEG"):
            await storage.upload_image(b"%PDF-1.7", "application/pdf")
        s3.put_object.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_empty(self, storage):
        with pytest.raises(BadRequestError, match="empty"):
            await storage.upload_image(b"", "image/png")

    @pytest.mark.asyncio
    async def test_rejects_large(self, storage):
        with pytest.raises(PayloadTooLargeError):
            await storage.upload_image(b"x" * 2048, "image/jpeg")

    @pytest.mark.asyncio
    async def test_rejects_unknown_folder(self, storage):
        with pytest.raises(BadRequestError, match="Invalid folder"):
            await storage.upload_image(PNG_BYTES, "image/png", "../etc")

    @pytest.mark.asyncio
    async def test_store_failure(self, storage, s3):
        s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject"
        )
        with pytest.raises(ExternalServiceError):
            await storage.upload_image(PNG_BYTES, "image/png")


class TestDeleteImage:
    @pytest.mark.asyncio
    async def test_deletes(self, storage, s3):
        await storage.delete_image("menu/abc.png")
        s3.delete_object.assert_awaited_once_with(Bucket="images", Key="menu/abc.png")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("public_id", ["", "abc.png", "menu/../x.png", "menu/a/b.png", "secret/abc.png"])
    async def test_invalid_ids(self, storage, s3, public_id):
        with pytest.raises(BadRequestError):
            await storage.delete_image(public_id)
        s3.delete_object.assert_not_awaited()


class TestEnsureBucket:
    @pytest.mark.asyncio
    async def test_existing_bucket(self, storage, s3):
        s3.create_bucket.side_effect = ClientError(
            {"Error": {"Code": "BucketAlreadyOwnedByYou", "Message": "exists"}}, "CreateBucket"
        )
        assert await storage.ensure_bucket() is False

    @pytest.mark.asyncio
    async def test_created(self, storage):
        assert await storage.ensure_bucket() is True
