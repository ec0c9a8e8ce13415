"""
Object storage service (S3-compatible).

Public assets such as banner images live in the `public-assets` bucket.
boto3 is synchronous, so calls run in a worker thread.
"""

import asyncio
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import AppException, ErrorCode, StorageBucketMissingError

logger = logging.getLogger("backoffice.storage")

MISSING_BUCKET_CODES = {"NoSuchBucket", "404"}


class StorageService:
    """Manages uploads to the public assets bucket."""

    def __init__(self, bucket: Optional[str] = None):
        self.bucket_name = bucket or settings.storage_bucket
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.storage_endpoint_url,
                region_name=settings.storage_region,
                aws_access_key_id=settings.storage_access_key,
                aws_secret_access_key=settings.storage_secret_key,
            )
        return self._client

    def public_url(self, key: str) -> str:
        if settings.storage_public_base_url:
            return f"{settings.storage_public_base_url.rstrip('/')}/{self.bucket_name}/{key}"
        if settings.storage_endpoint_url:
            return f"{settings.storage_endpoint_url.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{settings.storage_region}.amazonaws.com/{key}"

    def _put(self, key: str, content: bytes, content_type: str) -> None:
        self.client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=content,
            ContentType=content_type,
            CacheControl="max-age=3600",
        )

    async def upload_bytes(self, key: str, content: bytes, content_type: str) -> str:
        """
        Upload an object and return its public URL.

        Raises:
            StorageBucketMissingError: the bucket has not been created
            AppException: any other storage failure
        """
        try:
            await asyncio.to_thread(self._put, key, content, content_type)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in MISSING_BUCKET_CODES:
                logger.error("Storage bucket %s is missing", self.bucket_name)
                raise StorageBucketMissingError(self.bucket_name)
            logger.error("Upload of %s failed: %s", key, e)
            raise AppException(
                message=f"Upload failed: {code or 'storage error'}",
                error_code=ErrorCode.INTERNAL,
                status_code=502,
                details={"key": key}
            )

        logger.info("Uploaded %s (%d bytes)", key, len(content))
        return self.public_url(key)


# Global instance
storage_service = StorageService()
