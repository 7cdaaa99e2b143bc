"""Transcription queue and session purge background tasks."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import threading
import unittest

from app.repositories.memory import InMemoryStore
from app.schemas.audio_file import StorageKind
from app.schemas.transcription import TranscriptionStatus
from app.workers.queue import TranscriptionQueue
from app.workers.session_purge import SessionPurgeTask


class _RecordingProcessor:
    def __init__(self, fail_on: str | None = None) -> None:
        self.processed: list[str] = []
        self.fail_on = fail_on

    async def process(self, transcription_id: str):
        self.processed.append(transcription_id)
        if transcription_id == self.fail_on:
            raise RuntimeError("boom")
        return None


class TranscriptionQueueTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()

    async def test_submit_before_start_is_deferred_and_pending_rows_are_requeued(self) -> None:
        audio_file = self.store.create_audio_file(
            user_id="owner-1",
            original_filename="clip.mp3",
            stored_filename="clip.mp3",
            file_size=3,
            mime_type="audio/mpeg",
            storage_kind=StorageKind.LOCAL,
            file_path="/tmp/clip.mp3",
        )
        job = self.store.create_transcription(owner_id="owner-1", audio_file_id=audio_file.id, language="es")
        processor = _RecordingProcessor()
        queue = TranscriptionQueue(processor, self.store, workers=1)

        self.assertFalse(queue.submit(job.id))

        await queue.start()
        await queue.join()
        await queue.stop()

        self.assertEqual(processor.processed, [job.id])
        self.assertFalse(queue.running)

    async def test_worker_survives_processor_errors(self) -> None:
        processor = _RecordingProcessor(fail_on="job-1")
        queue = TranscriptionQueue(processor, self.store, workers=1)
        await queue.start()

        with self.assertLogs("app.workers.queue", level="ERROR"):
            self.assertTrue(queue.submit("job-1"))
            self.assertTrue(queue.submit("job-2"))
            await queue.join()
        await queue.stop()

        self.assertEqual(processor.processed, ["job-1", "job-2"])

    def _processing_job(self, started_at: datetime):
        audio_file = self.store.create_audio_file(
            user_id="owner-1",
            original_filename="clip.mp3",
            stored_filename="clip.mp3",
            file_size=3,
            mime_type="audio/mpeg",
            storage_kind=StorageKind.LOCAL,
            file_path="/tmp/clip.mp3",
        )
        job = self.store.create_transcription(owner_id="owner-1", audio_file_id=audio_file.id, language="es")
        self.store.transition_transcription(
            job.id,
            from_status=TranscriptionStatus.PENDING,
            to_status=TranscriptionStatus.PROCESSING,
        )
        self.store.transcriptions[job.id].processing_started_at = started_at
        return job

    async def test_start_fails_processing_rows_older_than_the_deadline(self) -> None:
        abandoned = self._processing_job(datetime.now(UTC) - timedelta(minutes=10))
        live = self._processing_job(datetime.now(UTC))
        processor = _RecordingProcessor()
        queue = TranscriptionQueue(processor, self.store, workers=1, stale_after_seconds=60)

        with self.assertLogs("app.workers.queue", level="WARNING") as captured:
            await queue.start()
        await queue.join()
        await queue.stop()

        failed = self.store.get_transcription(abandoned.id)
        self.assertIs(failed.status, TranscriptionStatus.FAILED)
        self.assertEqual(failed.error_message, "Transcription interrupted")
        self.assertIs(self.store.get_transcription(live.id).status, TranscriptionStatus.PROCESSING)
        self.assertEqual(processor.processed, [])
        self.assertIn("transcription.recovered_stale", "\n".join(captured.output))

    async def test_processing_rows_are_kept_when_no_deadline_is_configured(self) -> None:
        job = self._processing_job(datetime.now(UTC) - timedelta(days=1))
        queue = TranscriptionQueue(_RecordingProcessor(), self.store, workers=1)

        await queue.start()
        await queue.stop()

        self.assertIs(self.store.get_transcription(job.id).status, TranscriptionStatus.PROCESSING)

    async def test_submit_from_another_thread_reaches_the_loop(self) -> None:
        processor = _RecordingProcessor()
        queue = TranscriptionQueue(processor, self.store, workers=2)
        await queue.start()

        submitted: list[bool] = []
        thread = threading.Thread(target=lambda: submitted.append(queue.submit("job-threaded")))
        thread.start()
        await asyncio.to_thread(thread.join)
        await asyncio.sleep(0)
        await queue.join()
        await queue.stop()

        self.assertEqual(submitted, [True])
        self.assertEqual(processor.processed, ["job-threaded"])


class SessionPurgeTaskTests(unittest.IsolatedAsyncioTestCase):
    async def test_purge_runs_periodically_until_stopped(self) -> None:
        calls: list[int] = []

        def purge() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            return 0

        task = SessionPurgeTask(purge, interval_seconds=0.01)
        with self.assertLogs("app.workers.session_purge", level="ERROR"):
            await task.start()
            await asyncio.sleep(0.05)
        await task.stop()
        count = len(calls)
        await asyncio.sleep(0.03)

        self.assertGreaterEqual(count, 2)
        self.assertEqual(len(calls), count)


if __name__ == "__main__":
    unittest.main()
