"""Audio file service layer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import logging
from pathlib import Path

from app.adapters.storage import FileStorage, StoredObject
from app.core.config import Settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError, StorageError, not_found_error
from app.repositories.base import AudioFileRecord, RecordStore
from app.schemas.audio_file import AudioFile, AudioFilePage, AudioFileStats, DownloadUrlResponse, Pagination
from app.schemas.base import MessageResponse

logger = logging.getLogger(__name__)

_PAGE_LIMIT_MAX = 100


def to_audio_file(record: AudioFileRecord) -> AudioFile:
    return AudioFile(
        id=record.id,
        user_id=record.user_id,
        original_filename=record.original_filename,
        stored_filename=record.stored_filename,
        file_size=record.file_size,
        mime_type=record.mime_type,
        storage_kind=record.storage_kind,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _upload_validation_error(message: str) -> ApiError:
    return ApiError(
        status_code=400,
        code="VALIDATION_ERROR",
        message=message,
        details={"fields": [{"field": "audio", "message": message}]},
    )


class FileService:
    def __init__(self, store: RecordStore, storage: FileStorage, settings: Settings) -> None:
        self._store = store
        self._storage = storage
        self._settings = settings

    @property
    def max_upload_bytes(self) -> int:
        return self._settings.max_upload_bytes

    def validate_upload(self, *, filename: str | None, mime_type: str | None, size: int) -> None:
        """Reject an upload before anything is stored."""
        if not filename:
            raise _upload_validation_error("No audio file provided")
        normalized_type = (mime_type or "").split(";", 1)[0].strip().lower()
        if normalized_type not in self._settings.allowed_audio_types:
            raise _upload_validation_error("Invalid file type. Only audio files are allowed.")
        if size == 0:
            raise _upload_validation_error("Uploaded audio file is empty")
        if size > self._settings.max_upload_bytes:
            raise ApiError(
                status_code=413,
                code="FILE_TOO_LARGE",
                message="File too large",
                details={"max_bytes": self._settings.max_upload_bytes},
            )

    def store_upload(self, *, owner_id: str, filename: str, mime_type: str, content: bytes) -> AudioFileRecord:
        """Store the binary first; the record only exists once the binary does."""
        try:
            location = self._storage.store(
                content,
                user_id=owner_id,
                original_filename=filename,
                mime_type=mime_type,
            )
        except StorageError as exc:
            logger.error(
                "file.store_failed owner_id=%s reason=%s",
                safe_log_identifier(owner_id, prefix="uid"),
                exc,
            )
            raise ApiError(status_code=500, code="STORAGE_ERROR", message="Could not store audio file") from exc

        try:
            return self._store.create_audio_file(
                user_id=owner_id,
                original_filename=filename,
                stored_filename=location.stored_filename,
                file_size=len(content),
                mime_type=mime_type,
                storage_kind=location.storage_kind,
                file_path=location.file_path,
                object_key=location.object_key,
                bucket=location.bucket,
            )
        except Exception:
            self._discard(location, owner_id=owner_id)
            raise

    def list_files(self, *, owner_id: str, page: int, limit: int) -> AudioFilePage:
        page = max(page, 1)
        limit = min(max(limit, 1), _PAGE_LIMIT_MAX)
        records = self._store.list_audio_files_for_owner(owner_id, limit=limit, offset=(page - 1) * limit)
        total = self._store.audio_file_stats_for_owner(owner_id)["total_files"]
        return AudioFilePage(
            files=[to_audio_file(record) for record in records],
            pagination=Pagination(page=page, limit=limit, total=total),
        )

    def stats(self, *, owner_id: str) -> AudioFileStats:
        stats = self._store.audio_file_stats_for_owner(owner_id)
        total_files = stats["total_files"]
        total_size = stats["total_size"]
        average = round(total_size / total_files, 2) if total_files else 0.0
        return AudioFileStats(total_files=total_files, total_size=total_size, average_size=average)

    def get_record(self, *, owner_id: str, file_id: str) -> AudioFileRecord:
        record = self._store.get_audio_file_for_owner(owner_id, file_id)
        if record is None:
            raise not_found_error()
        return record

    def get_file(self, *, owner_id: str, file_id: str) -> AudioFile:
        return to_audio_file(self.get_record(owner_id=owner_id, file_id=file_id))

    def _resolve_url(self, record: AudioFileRecord) -> str | None:
        try:
            return self._storage.resolve_download_url(
                StoredObject.from_record(record),
                self._settings.signed_url_ttl_seconds,
            )
        except StorageError as exc:
            logger.error(
                "file.download_url_failed file_id=%s reason=%s",
                safe_log_identifier(record.id, prefix="fid"),
                exc,
            )
            raise ApiError(status_code=500, code="STORAGE_ERROR", message="Could not generate download URL") from exc

    def download_url(self, *, owner_id: str, file_id: str, content_url: str) -> DownloadUrlResponse:
        """Signed storage URL, or ``content_url`` when the API serves the bytes."""
        record = self.get_record(owner_id=owner_id, file_id=file_id)
        url = self._resolve_url(record)
        if url is None:
            return DownloadUrlResponse(download_url=content_url)
        expires_at = datetime.now(UTC) + timedelta(seconds=self._settings.signed_url_ttl_seconds)
        return DownloadUrlResponse(download_url=url, expires_at=expires_at)

    def content_source(self, *, owner_id: str, file_id: str) -> tuple[AudioFileRecord, str | None]:
        """The owned record plus its signed URL; ``None`` means read ``file_path``."""
        record = self.get_record(owner_id=owner_id, file_id=file_id)
        url = self._resolve_url(record)
        if url is None and not (record.file_path and Path(record.file_path).is_file()):
            logger.warning(
                "file.content_missing file_id=%s",
                safe_log_identifier(file_id, prefix="fid"),
            )
            raise not_found_error()
        return record, url

    def delete_file(self, *, owner_id: str, file_id: str) -> MessageResponse:
        record = self._store.delete_audio_file_for_owner(owner_id, file_id)
        if record is None:
            raise not_found_error()
        self._discard(StoredObject.from_record(record), owner_id=owner_id)
        logger.info(
            "file.deleted owner_id=%s file_id=%s",
            safe_log_identifier(owner_id, prefix="uid"),
            safe_log_identifier(file_id, prefix="fid"),
        )
        return MessageResponse(message="File deleted successfully")

    def _discard(self, location: StoredObject, *, owner_id: str) -> None:
        # The record is already gone; an orphaned binary is logged, not surfaced.
        try:
            self._storage.delete(location)
        except StorageError as exc:
            logger.warning(
                "file.storage_delete_failed owner_id=%s stored_filename=%s reason=%s",
                safe_log_identifier(owner_id, prefix="uid"),
                safe_log_identifier(location.stored_filename, prefix="obj"),
                exc,
            )
