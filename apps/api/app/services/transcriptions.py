"""Transcription job service layer."""

from __future__ import annotations

import logging
from typing import Protocol

from app.core.logging_safety import safe_log_identifier
from app.domain.transcription_fsm import ensure_retryable
from app.errors import ApiError, not_found_error
from app.repositories.base import RecordStore, TranscriptionRecord
from app.schemas.base import MessageResponse
from app.schemas.transcription import (
    RetryTranscriptionResponse,
    Transcription,
    TranscriptionDetail,
    TranscriptionPage,
    TranscriptionStats,
    TranscriptionStatus,
    UploadTranscriptionResponse,
)
from app.services.files import FileService, to_audio_file

logger = logging.getLogger(__name__)

_LIST_LIMIT_DEFAULT = 50
_LIST_LIMIT_MAX = 100


class JobSubmitter(Protocol):
    def submit(self, transcription_id: str) -> bool: ...


def to_transcription(record: TranscriptionRecord) -> Transcription:
    return Transcription(
        id=record.id,
        audio_file_id=record.audio_file_id,
        user_id=record.user_id,
        transcription_text=record.transcription_text,
        confidence_score=record.confidence_score,
        language=record.language,
        status=record.status,
        processing_started_at=record.processing_started_at,
        processing_completed_at=record.processing_completed_at,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class TranscriptionService:
    """Request-side operations on transcription jobs.

    Processing itself happens on the queue; this layer only creates, resets,
    reads and deletes rows, always scoped to the calling owner.
    """

    def __init__(
        self,
        store: RecordStore,
        files: FileService,
        submitter: JobSubmitter,
        *,
        default_language: str = "es",
    ) -> None:
        self._store = store
        self._files = files
        self._submitter = submitter
        self._default_language = default_language

    @property
    def max_upload_bytes(self) -> int:
        return self._files.max_upload_bytes

    def upload(
        self,
        *,
        owner_id: str,
        filename: str | None,
        mime_type: str | None,
        content: bytes,
        language: str | None = None,
    ) -> UploadTranscriptionResponse:
        self._files.validate_upload(filename=filename, mime_type=mime_type, size=len(content))

        audio_file = self._files.store_upload(
            owner_id=owner_id,
            filename=filename or "",
            mime_type=mime_type or "",
            content=content,
        )
        job_language = (language or "").strip().lower() or self._default_language
        try:
            record = self._store.create_transcription(
                owner_id=owner_id,
                audio_file_id=audio_file.id,
                language=job_language,
            )
        except Exception:
            self._files.delete_file(owner_id=owner_id, file_id=audio_file.id)
            raise

        self._submitter.submit(record.id)
        logger.info(
            "transcription.created owner_id=%s job_id=%s language=%s bytes=%s",
            safe_log_identifier(owner_id, prefix="uid"),
            safe_log_identifier(record.id, prefix="job"),
            job_language,
            audio_file.file_size,
        )
        return UploadTranscriptionResponse(
            transcription_id=record.id,
            audio_file_id=audio_file.id,
            status=record.status,
            file_name=audio_file.original_filename,
        )

    def _detail(self, owner_id: str, record: TranscriptionRecord) -> TranscriptionDetail:
        audio_file = self._store.get_audio_file_for_owner(owner_id, record.audio_file_id)
        return TranscriptionDetail(
            **to_transcription(record).model_dump(),
            audio_file=to_audio_file(audio_file) if audio_file is not None else None,
        )

    def list_transcriptions(
        self,
        *,
        owner_id: str,
        status: TranscriptionStatus | None = None,
        limit: int = _LIST_LIMIT_DEFAULT,
        offset: int = 0,
    ) -> TranscriptionPage:
        limit = min(max(limit, 1), _LIST_LIMIT_MAX)
        offset = max(offset, 0)
        records = self._store.list_transcriptions_for_owner(owner_id, status=status, limit=limit, offset=offset)
        return TranscriptionPage(
            items=[self._detail(owner_id, record) for record in records],
            limit=limit,
            offset=offset,
            total=self._store.count_transcriptions_for_owner(owner_id, status=status),
        )

    def get_transcription(self, *, owner_id: str, transcription_id: str) -> TranscriptionDetail:
        record = self._store.get_transcription_for_owner(owner_id, transcription_id)
        if record is None:
            raise not_found_error()
        return self._detail(owner_id, record)

    def get_for_file(self, *, owner_id: str, file_id: str) -> TranscriptionDetail:
        record = self._store.get_transcription_for_audio_file(owner_id, file_id)
        if record is None:
            raise not_found_error()
        return self._detail(owner_id, record)

    def retry(self, *, owner_id: str, file_id: str) -> RetryTranscriptionResponse:
        record = self._store.get_transcription_for_audio_file(owner_id, file_id)
        if record is None:
            raise not_found_error()
        ensure_retryable(record.status)

        reset = self._store.transition_transcription(
            record.id,
            from_status=record.status,
            to_status=TranscriptionStatus.PENDING,
        )
        if reset is None:
            # Lost a race with another retry or a delete.
            current = self._store.get_transcription_for_owner(owner_id, record.id)
            if current is None:
                raise not_found_error()
            ensure_retryable(current.status)
            raise ApiError(
                status_code=409,
                code="RETRY_CONFLICT",
                message="Transcription changed while retrying; try again",
                details={"current_status": current.status},
            )

        self._submitter.submit(reset.id)
        logger.info(
            "transcription.retried owner_id=%s job_id=%s previous_status=%s",
            safe_log_identifier(owner_id, prefix="uid"),
            safe_log_identifier(reset.id, prefix="job"),
            record.status.value,
        )
        return RetryTranscriptionResponse(message="Transcription retry started", transcription=to_transcription(reset))

    def delete_transcription(self, *, owner_id: str, transcription_id: str) -> MessageResponse:
        record = self._store.delete_transcription_for_owner(owner_id, transcription_id)
        if record is None:
            raise not_found_error()

        if self._store.count_transcriptions_for_audio_file(record.audio_file_id) == 0:
            audio_file = self._store.get_audio_file_for_owner(owner_id, record.audio_file_id)
            if audio_file is not None:
                self._files.delete_file(owner_id=owner_id, file_id=audio_file.id)

        logger.info(
            "transcription.deleted owner_id=%s job_id=%s",
            safe_log_identifier(owner_id, prefix="uid"),
            safe_log_identifier(transcription_id, prefix="job"),
        )
        return MessageResponse(message="Transcription deleted successfully")

    def stats(self, *, owner_id: str) -> TranscriptionStats:
        stats = self._store.transcription_stats_for_owner(owner_id)
        by_status = stats["by_status"]
        average = stats["average_confidence"]
        return TranscriptionStats(
            total_transcriptions=stats["total"],
            completed_transcriptions=by_status[TranscriptionStatus.COMPLETED],
            failed_transcriptions=by_status[TranscriptionStatus.FAILED],
            pending_transcriptions=by_status[TranscriptionStatus.PENDING],
            processing_transcriptions=by_status[TranscriptionStatus.PROCESSING],
            average_confidence=round(average, 4) if average is not None else None,
        )
