from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings
from app.core.errors import UpstreamFailureError

logger = structlog.get_logger(__name__)
MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(UpstreamFailureError):
    code = "E_STORAGE"


@dataclass(frozen=True, slots=True)
class ObjectInfo:
    key: str
    content_type: str | None
    content_length: int | None


class ObjectStorage:
    """S3-compatible blob store; every call runs the boto3 client in a worker thread."""

    def __init__(self, *, client: Any, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> ObjectStorage:
        client = boto3.client(
            "s3",
            region_name=settings.storage_region,
            endpoint_url=settings.storage_endpoint_url,
            aws_access_key_id=settings.storage_access_key_id,
            aws_secret_access_key=settings.storage_secret_access_key,
            config=Config(signature_version="s3v4"),
        )
        return cls(client=client, bucket=settings.storage_bucket)

    async def put_object(self, *, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage_put_failed", key=key, error_type=type(exc).__name__)
            raise StorageError(f"upload failed for {key}") from exc

    async def delete_object(self, *, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"delete failed for {key}") from exc

    async def head_object(self, *, key: str) -> ObjectInfo | None:
        try:
            response = await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            error_code = str(exc.response.get("Error", {}).get("Code", ""))
            if error_code in MISSING_OBJECT_CODES:
                return None
            raise StorageError(f"head failed for {key}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"head failed for {key}") from exc

        content_length = response.get("ContentLength")
        return ObjectInfo(
            key=key,
            content_type=response.get("ContentType"),
            content_length=int(content_length) if content_length is not None else None,
        )

    async def sign_get(
        self,
        *,
        key: str,
        ttl_seconds: int,
        byte_range: str | None = None,
        download_filename: str | None = None,
    ) -> str:
        params: dict[str, str] = {"Bucket": self.bucket, "Key": key}
        if byte_range:
            params["Range"] = byte_range
        if download_filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{download_filename}"'
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params=params,
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("storage_sign_failed", key=key, error_type=type(exc).__name__)
            raise StorageError(f"signing failed for {key}") from exc

    async def check_bucket(self) -> None:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"bucket {self.bucket} is unreachable") from exc
