"""S3 object storage adapter."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.adapters.storage.base import FileStorage, StoredObject, unique_filename
from app.core.logging_safety import safe_log_identifier
from app.errors import StorageError
from app.schemas.audio_file import StorageKind

logger = logging.getLogger(__name__)


class S3FileStorage(FileStorage):
    """Stores uploads as private objects and hands out presigned GET URLs."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        key_prefix: str = "audio-files",
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket
        self._key_prefix = key_prefix.strip("/")
        if client is None:
            client_kwargs: dict[str, Any] = {}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            if region:
                client_kwargs["region_name"] = region
            client = boto3.client(
                "s3",
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(signature_version="s3v4"),
                **client_kwargs,
            )
        self._client = client

    def _object_key(self, user_id: str, stored_filename: str) -> str:
        parts = [self._key_prefix, user_id, stored_filename]
        return "/".join(part for part in parts if part)

    def store(self, content: bytes, *, user_id: str, original_filename: str, mime_type: str) -> StoredObject:
        stored_filename = unique_filename(original_filename)
        key = self._object_key(user_id, stored_filename)
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content,
                ContentType=mime_type,
                Metadata={"original-name": original_filename.encode("ascii", "ignore").decode() or "audio"},
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Could not upload audio file: {exc}") from exc

        logger.info(
            "storage.s3.stored owner_id=%s bytes=%s mime_type=%s",
            safe_log_identifier(user_id, prefix="uid"),
            len(content),
            mime_type,
        )
        return StoredObject(
            storage_kind=StorageKind.REMOTE,
            stored_filename=stored_filename,
            object_key=key,
            bucket=self._bucket,
        )

    def resolve_download_url(self, location: StoredObject, ttl_seconds: int) -> str:
        if location.object_key is None or location.bucket is None:
            raise StorageError("Audio file has no object location")
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": location.bucket, "Key": location.object_key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Could not sign download URL: {exc}") from exc

    def delete(self, location: StoredObject) -> None:
        if location.object_key is None or location.bucket is None:
            return
        try:
            self._client.delete_object(Bucket=location.bucket, Key=location.object_key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Could not delete audio object: {exc}") from exc


__all__ = ["S3FileStorage"]
