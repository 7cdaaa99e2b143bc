"""Local disk storage adapter."""

from __future__ import annotations

import logging
from pathlib import Path

from app.adapters.storage.base import FileStorage, StoredObject, unique_filename
from app.core.logging_safety import safe_log_identifier
from app.errors import StorageError
from app.schemas.audio_file import StorageKind

logger = logging.getLogger(__name__)


class LocalFileStorage(FileStorage):
    """Writes uploads below a per-user directory of ``upload_dir``."""

    def __init__(self, upload_dir: str | Path) -> None:
        self._root = Path(upload_dir).resolve()

    def store(self, content: bytes, *, user_id: str, original_filename: str, mime_type: str) -> StoredObject:
        stored_filename = unique_filename(original_filename)
        directory = self._root / user_id
        path = directory / stored_filename
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"Could not write audio file: {exc}") from exc

        logger.info(
            "storage.local.stored owner_id=%s bytes=%s mime_type=%s",
            safe_log_identifier(user_id, prefix="uid"),
            len(content),
            mime_type,
        )
        return StoredObject(storage_kind=StorageKind.LOCAL, stored_filename=stored_filename, file_path=str(path))

    def resolve_download_url(self, location: StoredObject, ttl_seconds: int) -> None:
        if location.file_path is None:
            raise StorageError("Audio file has no local path")
        # Served through the owner-checked content route.
        return None

    def delete(self, location: StoredObject) -> None:
        if location.file_path is None:
            return
        try:
            Path(location.file_path).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete audio file: {exc}") from exc


__all__ = ["LocalFileStorage"]
