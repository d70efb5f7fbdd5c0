"""Image storage on an S3-compatible bucket (MinIO in development).

This module provides an async wrapper around aioboto3 for storing uploaded
images and serving them from a public base URL.
"""

import uuid
from typing import Dict, Optional

import aioboto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from api.src.config import Settings, get_settings
from api.src.exceptions import (
    BadRequestError,
    ExternalServiceError,
    PayloadTooLargeError,
    ServiceUnavailableError,
)
from shared.metrics import setup_metrics

logger = structlog.get_logger(__name__)

CONTENT_TYPE_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


class StorageService:
    """Async image storage using aioboto3."""

    def __init__(self, settings: Optional[Settings] = None, max_pool_connections: int = 20):
        """
        Initialize storage service.

        Args:
            settings: Application settings (defaults to the cached settings)
            max_pool_connections: Maximum connection pool size
        """
        self.settings = settings or get_settings()
        self.bucket = self.settings.storage_bucket
        self.metrics = setup_metrics()

        self.config = Config(
            max_pool_connections=max_pool_connections,
            retries={
                "max_attempts": 3,
                "mode": "adaptive",
            },
        )
        self.session = aioboto3.Session()

    @property
    def enabled(self) -> bool:
        return self.settings.storage_enabled

    def get_client(self):
        """
        Get an async S3 client context manager.

        Usage:
            async with storage.get_client() as s3:
                await s3.put_object(...)
        """
        return self.session.client(
            "s3",
            endpoint_url=self.settings.storage_endpoint,
            aws_access_key_id=self.settings.storage_access_key,
            aws_secret_access_key=self.settings.storage_secret_key,
            region_name=self.settings.storage_region,
            config=self.config,
        )

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise ServiceUnavailableError("Image storage is not configured")

    async def ensure_bucket(self) -> bool:
        """
        Create the bucket if it doesn't exist.

        Returns:
            True if the bucket was created, False if it already existed
        """
        try:
            async with self.get_client() as s3:
                await s3.create_bucket(Bucket=self.bucket)
                logger.info("bucket_created", bucket=self.bucket)
                return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            if error_code in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                logger.debug("bucket_already_exists", bucket=self.bucket)
                return False
            logger.error("bucket_creation_failed", bucket=self.bucket, error=str(e))
            raise

    def validate_folder(self, folder: str) -> str:
        folder = (folder or "uploads").strip().strip("/")
        if folder not in self.settings.upload_allowed_folders:
            raise BadRequestError(
                f"Invalid folder. Use one of: {', '.join(self.settings.upload_allowed_folders)}"
            )
        return folder

    def public_url(self, key: str) -> str:
        return f"{self.settings.storage_public_url}/{key}"

    async def upload_image(self, data: bytes, content_type: str, folder: str = "uploads") -> Dict[str, str]:
        """
        Store an image.

        Args:
            data: Image bytes
            content_type: MIME type reported by the client
            folder: Key prefix; must be an allowed folder

        Returns:
            Dict with ``url`` and ``public_id`` (the object key)

        Raises:
            ServiceUnavailableError: Storage disabled
            BadRequestError: Unsupported type, empty file or unknown folder
            PayloadTooLargeError: File exceeds the upload limit
            ExternalServiceError: The object store rejected the upload
        """
        self._require_enabled()
        if content_type not in self.settings.upload_allowed_content_types \
                or content_type not in CONTENT_TYPE_EXTENSIONS:
            self.metrics.image_uploads.labels(result="rejected").inc()
            raise BadRequestError("Only JPEG, PNG, WebP and GIF images are allowed")
        if not data:
            self.metrics.image_uploads.labels(result="rejected").inc()
            raise BadRequestError("Uploaded file is empty")
        if len(data) > self.settings.upload_max_bytes:
            self.metrics.image_uploads.labels(result="rejected").inc()
            raise PayloadTooLargeError(
                f"Image exceeds the {self.settings.upload_max_bytes // (1024 * 1024)} MB limit"
            )

        key = f"{self.validate_folder(folder)}/{uuid.uuid4().hex}.{CONTENT_TYPE_EXTENSIONS[content_type]}"
        try:
            async with self.get_client() as s3:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except ClientError as e:
            self.metrics.image_uploads.labels(result="failed").inc()
            logger.error("object_upload_failed", bucket=self.bucket, key=key, error=str(e))
            raise ExternalServiceError("Image upload failed")

        self.metrics.image_uploads.labels(result="stored").inc()
        logger.info("object_uploaded", bucket=self.bucket, key=key, size_bytes=len(data))
        return {"url": self.public_url(key), "public_id": key}

    async def delete_image(self, public_id: str) -> None:
        """
        Delete a stored image.

        Raises:
            BadRequestError: Key outside the allowed folders
        """
        self._require_enabled()
        folder, _, name = (public_id or "").partition("/")
        if not name or "/" in name or ".." in public_id:
            raise BadRequestError("Invalid image ID")
        self.validate_folder(folder)
        try:
            async with self.get_client() as s3:
                await s3.delete_object(Bucket=self.bucket, Key=public_id)
                logger.info("object_deleted", bucket=self.bucket, key=public_id)
        except ClientError as e:
            logger.error("object_deletion_failed", bucket=self.bucket, key=public_id, error=str(e))
            raise ExternalServiceError("Image deletion failed")
