"""Background transcription runner: claim, fetch, transcribe, settle."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
import tempfile
import threading
import unittest

import httpx

from app.adapters.speech import MockSpeechToTextClient, SpeechToTextClient, TranscriptResult
from app.adapters.storage import FileStorage, StoredObject
from app.repositories.memory import InMemoryStore
from app.schemas.audio_file import StorageKind
from app.schemas.transcription import TranscriptionStatus
from app.services.transcription_runner import TranscriptionRunner


class _RemoteStorage(FileStorage):
    def store(self, content: bytes, *, user_id: str, original_filename: str, mime_type: str) -> StoredObject:
        raise NotImplementedError

    def resolve_download_url(self, location: StoredObject, ttl_seconds: int) -> str:
        return f"https://objects.test/{location.bucket}/{location.object_key}?ttl={ttl_seconds}"

    def delete(self, location: StoredObject) -> None:
        return None


class _RecordingSpeechClient(SpeechToTextClient):
    """Remembers whether the audio path existed while it was being transcribed."""

    def __init__(self) -> None:
        self.seen: list[tuple[str, bool, bytes]] = []

    async def transcribe(self, audio_path: str, *, language: str) -> TranscriptResult:
        exists = os.path.exists(audio_path)
        self.seen.append((audio_path, exists, Path(audio_path).read_bytes() if exists else b""))
        return TranscriptResult(text="hola desde la nube", confidence=0.75, language=language)


class _ThreadRecordingStore(InMemoryStore):
    """Notes the thread each status write and audio lookup ran on."""

    def __init__(self) -> None:
        super().__init__()
        self.call_threads: list[int] = []

    def transition_transcription(self, transcription_id, **kwargs):
        self.call_threads.append(threading.get_ident())
        return super().transition_transcription(transcription_id, **kwargs)

    def get_audio_file(self, audio_file_id):
        self.call_threads.append(threading.get_ident())
        return super().get_audio_file(audio_file_id)


class TranscriptionRunnerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.upload_dir = Path(self._tmp.name) / "uploads"
        self.upload_dir.mkdir()
        self.temp_dir = Path(self._tmp.name) / "scratch"
        self.temp_dir.mkdir()

    def _local_job(self, *, create_file: bool = True, language: str = "es"):
        path = self.upload_dir / "clip.wav"
        if create_file:
            path.write_bytes(b"RIFF-audio-bytes")
        audio_file = self.store.create_audio_file(
            user_id="owner-1",
            original_filename="clip.wav",
            stored_filename="clip.wav",
            file_size=16,
            mime_type="audio/wav",
            storage_kind=StorageKind.LOCAL,
            file_path=str(path),
        )
        return self.store.create_transcription(owner_id="owner-1", audio_file_id=audio_file.id, language=language)

    def _remote_job(self):
        audio_file = self.store.create_audio_file(
            user_id="owner-1",
            original_filename="clip.mp3",
            stored_filename="abc-clip.mp3",
            file_size=32,
            mime_type="audio/mpeg",
            storage_kind=StorageKind.REMOTE,
            object_key="audio-files/owner-1/abc-clip.mp3",
            bucket="vocali-audio",
        )
        return self.store.create_transcription(owner_id="owner-1", audio_file_id=audio_file.id, language="es")

    def _runner(self, speech_client: SpeechToTextClient, **kwargs) -> TranscriptionRunner:
        kwargs.setdefault("temp_dir", str(self.temp_dir))
        return TranscriptionRunner(self.store, kwargs.pop("storage", _RemoteStorage()), speech_client, **kwargs)

    async def test_local_audio_completes_with_text_and_confidence(self) -> None:
        job = self._local_job(language="en")
        speech = MockSpeechToTextClient(confidence=0.93)

        settled = await self._runner(speech).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.COMPLETED)
        self.assertEqual(settled.transcription_text, "Mock transcription of clip.wav")
        self.assertGreaterEqual(settled.confidence_score, 0.0)
        self.assertLessEqual(settled.confidence_score, 1.0)
        self.assertIsNone(settled.error_message)
        self.assertIsNotNone(settled.processing_started_at)
        self.assertIsNotNone(settled.processing_completed_at)
        self.assertEqual(speech.calls, [(str(self.upload_dir / "clip.wav"), "en")])

    async def test_missing_local_file_fails_with_not_found_reason(self) -> None:
        job = self._local_job(create_file=False)
        speech = MockSpeechToTextClient()

        settled = await self._runner(speech).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Audio file not found on disk: clip.wav")
        self.assertIsNone(settled.transcription_text)
        self.assertIsNone(settled.confidence_score)
        self.assertEqual(speech.calls, [])

    async def test_missing_audio_record_fails_job(self) -> None:
        job = self._local_job()
        self.store.audio_files.pop(job.audio_file_id)

        settled = await self._runner(MockSpeechToTextClient()).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Audio file not found")

    async def test_missing_transcription_is_a_no_op(self) -> None:
        result = await self._runner(MockSpeechToTextClient()).process("does-not-exist")

        self.assertIsNone(result)

    async def test_remote_audio_is_downloaded_to_temp_file_and_removed(self) -> None:
        job = self._remote_job()
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"ID3-remote-audio")

        speech = _RecordingSpeechClient()
        runner = self._runner(speech, http_transport=httpx.MockTransport(handler), signed_url_ttl_seconds=120)

        settled = await runner.process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.COMPLETED)
        self.assertEqual(settled.transcription_text, "hola desde la nube")
        self.assertEqual(requested, ["https://objects.test/vocali-audio/audio-files/owner-1/abc-clip.mp3?ttl=120"])
        path, existed, content = speech.seen[0]
        self.assertTrue(existed)
        self.assertEqual(content, b"ID3-remote-audio")
        self.assertTrue(path.endswith(".mp3"))
        self.assertFalse(os.path.exists(path))
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_missing_remote_object_fails_with_download_reason(self) -> None:
        job = self._remote_job()
        transport = httpx.MockTransport(lambda request: httpx.Response(404, content=b"NoSuchKey"))
        speech = MockSpeechToTextClient()

        settled = await self._runner(speech, http_transport=transport).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Failed to download audio file: HTTP 404")
        self.assertEqual(speech.calls, [])
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_empty_remote_body_fails_download(self) -> None:
        job = self._remote_job()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b""))

        settled = await self._runner(MockSpeechToTextClient(), http_transport=transport).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertIn("empty response body", settled.error_message)
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_transport_error_fails_download(self) -> None:
        job = self._remote_job()

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        settled = await self._runner(MockSpeechToTextClient(), http_transport=httpx.MockTransport(handler)).process(
            job.id
        )

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertTrue(settled.error_message.startswith("Failed to download audio file:"))
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_downloaded_temp_file_is_removed_when_speech_engine_fails(self) -> None:
        job = self._remote_job()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"ID3-remote-audio"))
        speech = MockSpeechToTextClient(error_message="Whisper transcription failed: Invalid file format")

        settled = await self._runner(speech, http_transport=transport).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Whisper transcription failed: Invalid file format")
        self.assertEqual(len(speech.calls), 1)
        self.assertEqual(Path(speech.calls[0][0]).parent, self.temp_dir)
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_downloaded_temp_file_is_removed_when_deadline_expires(self) -> None:
        job = self._remote_job()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"ID3-remote-audio"))
        speech = MockSpeechToTextClient(delay_seconds=5)

        settled = await self._runner(speech, http_transport=transport, timeout_seconds=0.2).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Transcription timed out after 0.2 seconds")
        self.assertEqual(len(speech.calls), 1)
        self.assertEqual(Path(speech.calls[0][0]).parent, self.temp_dir)
        self.assertEqual(os.listdir(self.temp_dir), [])

    async def test_store_calls_run_off_the_event_loop_thread(self) -> None:
        self.store = _ThreadRecordingStore()
        job = self._local_job()
        loop_thread = threading.get_ident()

        settled = await self._runner(MockSpeechToTextClient()).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.COMPLETED)
        self.assertEqual(len(self.store.call_threads), 3)
        self.assertNotIn(loop_thread, self.store.call_threads)

    async def test_speech_engine_error_message_is_recorded_verbatim(self) -> None:
        job = self._local_job()
        speech = MockSpeechToTextClient(error_message="Whisper transcription failed: Invalid file format")

        settled = await self._runner(speech).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Whisper transcription failed: Invalid file format")

    async def test_deadline_forces_failed_status(self) -> None:
        job = self._local_job()
        speech = MockSpeechToTextClient(delay_seconds=5)

        settled = await self._runner(speech, timeout_seconds=0.05).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.FAILED)
        self.assertEqual(settled.error_message, "Transcription timed out after 0.05 seconds")

    async def test_second_runner_loses_claim_and_leaves_row_alone(self) -> None:
        job = self._local_job()
        speech = MockSpeechToTextClient(delay_seconds=0.01)
        runner = self._runner(speech)

        first, second = await asyncio.gather(runner.process(job.id), runner.process(job.id))

        results = [result for result in (first, second) if result is not None]
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].status, TranscriptionStatus.COMPLETED)
        self.assertEqual(len(speech.calls), 1)

    async def test_runner_skips_jobs_that_are_not_pending(self) -> None:
        job = self._local_job()
        claimed = self.store.transition_transcription(
            job.id,
            from_status=TranscriptionStatus.PENDING,
            to_status=TranscriptionStatus.PROCESSING,
        )
        writes_before = self.store.transcription_write_count
        speech = MockSpeechToTextClient()

        result = await self._runner(speech).process(job.id)

        self.assertIsNone(result)
        self.assertEqual(self.store.transcription_write_count, writes_before)
        current = self.store.get_transcription(job.id)
        self.assertEqual(current.status, TranscriptionStatus.PROCESSING)
        self.assertEqual(current.processing_started_at, claimed.processing_started_at)
        self.assertEqual(speech.calls, [])

    async def test_retried_job_settles_independently_of_prior_result(self) -> None:
        job = self._local_job()
        failing = await self._runner(MockSpeechToTextClient(error_message="engine down")).process(job.id)
        self.assertEqual(failing.status, TranscriptionStatus.FAILED)

        self.store.transition_transcription(
            job.id,
            from_status=TranscriptionStatus.FAILED,
            to_status=TranscriptionStatus.PENDING,
        )
        settled = await self._runner(MockSpeechToTextClient()).process(job.id)

        self.assertEqual(settled.status, TranscriptionStatus.COMPLETED)
        self.assertIsNone(settled.error_message)
        self.assertIsNotNone(settled.transcription_text)


if __name__ == "__main__":
    unittest.main()
