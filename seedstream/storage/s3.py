"""
S3/MinIO object store used to publish HLS output.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Protocol

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StorageConfig, get_config
from ..errors import UploadError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """Durable key -> file storage with public URLs."""

    async def put_file(self, local_path: Path, key: str, content_type: str) -> None:
        """Store ``local_path`` under ``key``; return only once it is durable."""

    def public_url(self, key: str) -> str:
        """Public URL at which ``key`` can be fetched."""

    def close(self) -> None:
        """Release upload resources."""


class S3ObjectStore:
    """boto3-backed store. Uploads run on a thread pool so the event loop never blocks."""

    def __init__(self, config: Optional[StorageConfig] = None):
        self.config = config or get_config().storage
        self._client = None
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.upload_workers,
            thread_name_prefix="seedstream_upload",
        )

    @property
    def client(self):
        """SDK client for server-side uploads (path-style addressing for MinIO)."""
        if self._client is None:
            session = boto3.session.Session(
                aws_access_key_id=self.config.access_key,
                aws_secret_access_key=self.config.secret_key,
                region_name=self.config.region,
            )
            self._client = session.client(
                "s3",
                endpoint_url=self.config.endpoint_url,
                config=BotoConfig(
                    s3={"addressing_style": "path"},
                    signature_version="s3v4",
                ),
            )
        return self._client

    def _upload(self, local_path: Path, key: str, content_type: str) -> None:
        self.client.upload_file(
            str(local_path),
            self.config.bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )

    async def put_file(self, local_path: Path, key: str, content_type: str) -> None:
        logger.debug(f"[Upload] Uploading {local_path} as {key}...")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self._upload, local_path, key, content_type)
        # upload_file reports S3 rejections as S3UploadFailedError, a Boto3Error
        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            logger.error(f"[Upload] Error uploading {local_path} as {key}: {e}")
            raise UploadError(f"Failed to upload {key}: {e}") from e
        logger.debug(f"[Upload] File uploaded: {key}")

    def public_url(self, key: str) -> str:
        return f"{self.config.base_url}/{self.config.bucket}/{key}"

    def close(self) -> None:
        self._executor.shutdown(wait=False)
