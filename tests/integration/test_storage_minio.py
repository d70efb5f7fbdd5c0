"""
Integration tests for image storage against MinIO.

Tests cover:
- Bucket creation being idempotent
- Upload and delete round trip through the S3 API

These tests use testcontainers to spin up a real MinIO instance.
"""

import pytest

from api.src.config import Settings
from api.src.services.storage_service import StorageService
from tests.support.containers import get_minio_container

pytestmark = pytest.mark.integration

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 128


@pytest.fixture(scope="module")
def minio():
    """Start MinIO container for the module."""
    return get_minio_container()


@pytest.fixture
def storage(minio):
    return StorageService(Settings(
        storage_enabled=True,
        storage_endpoint=minio.get_endpoint_url(),
        storage_access_key=minio.access_key,
        storage_secret_key=minio.secret_key,
        storage_bucket="marketplace-test",
    ))


class TestMinioStorage:
    @pytest.mark.asyncio
    async def test_ensure_bucket_idempotent(self, storage):
        await storage.ensure_bucket()
        assert await storage.ensure_bucket() is False

    @pytest.mark.asyncio
    async def test_upload_and_delete(self, storage):
        await storage.ensure_bucket()

        result = await storage.upload_image(PNG_BYTES, "image/png", "restaurants")

        async with storage.get_client() as s3:
            head = await s3.head_object(Bucket="marketplace-test", Key=result["public_id"])
            assert head["ContentType"] == "image/png"
            assert head["ContentLength"] == len(PNG_BYTES)

        await storage.delete_image(result["public_id"])

        async with storage.get_client() as s3:
            listing = await s3.list_objects_v2(Bucket="marketplace-test", Prefix="restaurants/")
            assert listing.get("KeyCount", 0) == 0
