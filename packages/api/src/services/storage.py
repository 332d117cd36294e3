# This project was developed with assistance from AI tools.
"""S3-compatible object storage service backed by MinIO.

Uses boto3 synchronous client run in a thread-pool executor for async
compatibility. The module exposes a singleton initialised at app startup
via ``init_storage_service()``. Every boto failure surfaces as a
``StorageError`` so the attachment engine can record it uniformly.
"""

import asyncio
import logging
import os
import uuid
from functools import partial

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings
from ..core.errors import StorageError

logger = logging.getLogger(__name__)


class StorageService:
    """Thin wrapper around a boto3 S3 client."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
    ):
        self._bucket = bucket
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
            ),
        )
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        """Create the bucket if it doesn't already exist (dev convenience)."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError:
            logger.info("Creating S3 bucket: %s", self._bucket)
            self._client.create_bucket(Bucket=self._bucket)

    async def _run(self, operation: str, **kwargs):
        func = getattr(self._client, operation)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, Bucket=self._bucket, **kwargs))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"{operation} failed for {kwargs.get('Key')}: {exc}") from exc

    async def upload_file(self, file_data: bytes, object_key: str, content_type: str) -> str:
        """Upload bytes and return the object key."""
        await self._run(
            "put_object",
            Key=object_key,
            Body=file_data,
            ContentType=content_type,
        )
        return object_key

    async def download_file(self, object_key: str) -> bytes:
        response = await self._run("get_object", Key=object_key)
        return response["Body"].read()

    async def delete_file(self, object_key: str) -> None:
        await self._run("delete_object", Key=object_key)

    @staticmethod
    def build_object_key(application_id: int, attachment_name: str, filename: str) -> str:
        """Build the object key: {application_id}/{attachment_name}/{token}-{filename}.

        Strips path components from filename to prevent path traversal attacks.
        The random token keeps re-uploads of the same filename distinct.
        """
        safe_name = os.path.basename(filename) or attachment_name
        return f"{application_id}/{attachment_name}/{uuid.uuid4().hex[:12]}-{safe_name}"


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_service: StorageService | None = None


def init_storage_service(cfg: Settings) -> StorageService:
    """Initialise the singleton (called once from app lifespan)."""
    global _service  # noqa: PLW0603
    _service = StorageService(
        endpoint=cfg.S3_ENDPOINT,
        access_key=cfg.S3_ACCESS_KEY,
        secret_key=cfg.S3_SECRET_KEY,
        bucket=cfg.S3_BUCKET,
        region=cfg.S3_REGION,
    )
    logger.info("StorageService initialised (bucket=%s)", cfg.S3_BUCKET)
    return _service


def get_storage_service() -> StorageService:
    """Return the initialised StorageService singleton."""
    if _service is None:
        raise RuntimeError("StorageService not initialised -- call init_storage_service() first")
    return _service
