"""Background execution of a single transcription job."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
import tempfile
import time

import httpx

from app.adapters.speech import SpeechToTextClient
from app.adapters.storage import FileStorage, StoredObject
from app.core.logging_safety import safe_log_identifier
from app.errors import AudioDownloadError, RecordNotFoundError, StorageError, TranscriptionProcessingError
from app.repositories.base import AudioFileRecord, RecordStore, TranscriptionRecord
from app.schemas.audio_file import StorageKind
from app.schemas.transcription import TranscriptionStatus

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_BYTES = 64 * 1024


class TranscriptionRunner:
    """Drives one job from ``pending`` to ``completed`` or ``failed``.

    The job is claimed with a compare-and-swap on ``pending``; a runner that
    loses the swap leaves the row alone. Fetching and transcribing run under a
    per-job deadline, and any temp file made for remote audio is removed on
    every exit path. Store calls run in a worker thread so a slow database
    never stalls the event loop.
    """

    def __init__(
        self,
        store: RecordStore,
        storage: FileStorage,
        speech_client: SpeechToTextClient,
        *,
        timeout_seconds: float = 600.0,
        signed_url_ttl_seconds: int = 3600,
        temp_dir: str | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._speech_client = speech_client
        self._timeout_seconds = timeout_seconds
        self._signed_url_ttl_seconds = signed_url_ttl_seconds
        self._temp_dir = temp_dir
        self._http_transport = http_transport

    async def process(self, transcription_id: str) -> TranscriptionRecord | None:
        """Run the job; return the settled row, or ``None`` when it was not claimed."""
        job_ref = safe_log_identifier(transcription_id, prefix="job")
        claimed = await asyncio.to_thread(
            self._store.transition_transcription,
            transcription_id,
            from_status=TranscriptionStatus.PENDING,
            to_status=TranscriptionStatus.PROCESSING,
        )
        if claimed is None:
            logger.info("transcription.skipped job_id=%s reason=not_pending", job_ref)
            return None

        logger.info("transcription.started job_id=%s language=%s", job_ref, claimed.language)
        started = time.monotonic()
        temp_paths: list[str] = []
        try:
            async with asyncio.timeout(self._timeout_seconds):
                audio_path = await self._resolve_audio_path(claimed, temp_paths)
                result = await self._speech_client.transcribe(audio_path, language=claimed.language)
            settled = await asyncio.to_thread(
                self._store.transition_transcription,
                transcription_id,
                from_status=TranscriptionStatus.PROCESSING,
                to_status=TranscriptionStatus.COMPLETED,
                transcription_text=result.text,
                confidence_score=result.confidence,
            )
        except TimeoutError:
            return await asyncio.to_thread(
                self._fail,
                transcription_id,
                f"Transcription timed out after {self._timeout_seconds:g} seconds",
                job_ref=job_ref,
            )
        except TranscriptionProcessingError as exc:
            return await asyncio.to_thread(self._fail, transcription_id, str(exc), job_ref=job_ref)
        except asyncio.CancelledError:
            # Runs inline; the task is already cancelled.
            self._fail(transcription_id, "Transcription interrupted by shutdown", job_ref=job_ref)
            raise
        except Exception as exc:
            logger.exception("transcription.unexpected_error job_id=%s", job_ref)
            return await asyncio.to_thread(
                self._fail, transcription_id, str(exc) or exc.__class__.__name__, job_ref=job_ref
            )
        finally:
            for path in temp_paths:
                self._remove_temp_file(path, job_ref=job_ref)

        if settled is None:
            logger.warning("transcription.settle_skipped job_id=%s reason=row_changed", job_ref)
            return None
        logger.info(
            "transcription.completed job_id=%s confidence=%.3f elapsed_ms=%d",
            job_ref,
            settled.confidence_score or 0.0,
            (time.monotonic() - started) * 1000,
        )
        return settled

    def _fail(self, transcription_id: str, message: str, *, job_ref: str) -> TranscriptionRecord | None:
        logger.warning("transcription.failed job_id=%s reason=%s", job_ref, message)
        failed = self._store.transition_transcription(
            transcription_id,
            from_status=TranscriptionStatus.PROCESSING,
            to_status=TranscriptionStatus.FAILED,
            error_message=message,
        )
        if failed is None:
            logger.warning("transcription.settle_skipped job_id=%s reason=row_changed", job_ref)
        return failed

    async def _resolve_audio_path(self, job: TranscriptionRecord, temp_paths: list[str]) -> str:
        audio_file = await asyncio.to_thread(self._store.get_audio_file, job.audio_file_id)
        if audio_file is None or audio_file.user_id != job.user_id:
            raise RecordNotFoundError("Audio file not found")

        if audio_file.storage_kind is StorageKind.LOCAL:
            if not audio_file.file_path or not Path(audio_file.file_path).is_file():
                raise RecordNotFoundError(f"Audio file not found on disk: {audio_file.stored_filename}")
            return audio_file.file_path

        return await self._download(audio_file, temp_paths)

    async def _download(self, audio_file: AudioFileRecord, temp_paths: list[str]) -> str:
        try:
            url = self._storage.resolve_download_url(
                StoredObject.from_record(audio_file),
                self._signed_url_ttl_seconds,
            )
        except StorageError as exc:
            raise AudioDownloadError(f"Failed to download audio file: {exc}") from exc
        if url is None:
            raise AudioDownloadError("Failed to download audio file: no download URL")

        suffix = Path(audio_file.stored_filename).suffix
        fd, path = tempfile.mkstemp(prefix="transcription-", suffix=suffix, dir=self._temp_dir)
        os.close(fd)
        temp_paths.append(path)

        written = 0
        try:
            async with httpx.AsyncClient(transport=self._http_transport, follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise AudioDownloadError(
                            f"Failed to download audio file: HTTP {response.status_code}"
                        )
                    with open(path, "wb") as target:
                        async for chunk in response.aiter_bytes(_DOWNLOAD_CHUNK_BYTES):
                            target.write(chunk)
                            written += len(chunk)
        except httpx.HTTPError as exc:
            raise AudioDownloadError(f"Failed to download audio file: {exc}") from exc

        if written == 0:
            raise AudioDownloadError("Failed to download audio file: empty response body")
        return path

    @staticmethod
    def _remove_temp_file(path: str, *, job_ref: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("transcription.temp_cleanup_failed job_id=%s reason=%s", job_ref, exc)


__all__ = ["TranscriptionRunner"]
