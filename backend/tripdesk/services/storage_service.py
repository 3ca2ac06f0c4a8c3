from typing import Optional

import boto3
from botocore.config import Config
import structlog
from fastapi.concurrency import run_in_threadpool

from tripdesk.core.config import settings

logger = structlog.get_logger()

# S3-compatible services cap presigned URL lifetime at 7 days
MAX_EXPIRATION = 604800


class StorageService:
    """
    Read-side access to the media bucket. Objects are never served through
    permanent URLs; callers resolve a storage key to a presigned GET URL.
    """

    _client = None

    @classmethod
    def get_client(cls):
        if cls._client is None:
            cls._client = boto3.client(
                "s3",
                endpoint_url=settings.STORAGE_ENDPOINT_URL or None,
                aws_access_key_id=settings.STORAGE_ACCESS_KEY or None,
                aws_secret_access_key=settings.STORAGE_SECRET_KEY or None,
                region_name=settings.STORAGE_REGION,
                config=Config(signature_version="s3v4"),
            )
        return cls._client

    @classmethod
    def _presign(cls, key: str, expires_in: int) -> str:
        return cls.get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.STORAGE_BUCKET, "Key": key},
            ExpiresIn=expires_in,
        )

    @classmethod
    async def get_download_url(cls, key: str, expires_in: int = 3600) -> str:
        """
        Presign a GET for `key`. Raises when the bucket is not configured or
        signing fails.
        """
        if not settings.STORAGE_BUCKET:
            raise RuntimeError("STORAGE_BUCKET is not configured")

        valid_expires_in = min(expires_in, MAX_EXPIRATION)
        # botocore signing is synchronous
        url = await run_in_threadpool(cls._presign, key, valid_expires_in)
        logger.debug("download_url_generated", key=key, expires_in=valid_expires_in)
        return url
