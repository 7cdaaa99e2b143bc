"""OpenAI Whisper speech-to-text adapter."""

from __future__ import annotations

import logging
import os
import time

from openai import AsyncOpenAI, OpenAIError

from app.adapters.speech.base import SpeechToTextClient, TranscriptResult, average_confidence
from app.errors import SpeechRecognitionError

logger = logging.getLogger(__name__)


class WhisperSpeechToTextClient(SpeechToTextClient):
    """Calls the audio transcription endpoint with word-level detail.

    The SDK client is built on first use so a missing API key fails the job
    instead of the application startup.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = "whisper-1",
        base_url: str | None = None,
        max_file_bytes: int = 25 * 1024 * 1024,
        default_confidence: float = 0.95,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._max_file_bytes = max_file_bytes
        self._default_confidence = default_confidence
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise SpeechRecognitionError("OpenAI API key is required for Whisper service")
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def transcribe(self, audio_path: str, *, language: str) -> TranscriptResult:
        client = self._get_client()
        try:
            size = os.path.getsize(audio_path)
        except OSError as exc:
            raise SpeechRecognitionError(f"Whisper transcription failed: Audio file not found: {audio_path}") from exc
        if size > self._max_file_bytes:
            limit_mb = self._max_file_bytes // (1024 * 1024)
            raise SpeechRecognitionError(
                f"Whisper transcription failed: File size exceeds OpenAI Whisper limit ({limit_mb}MB)"
            )

        started = time.monotonic()
        try:
            with open(audio_path, "rb") as audio:
                response = await client.audio.transcriptions.create(
                    model=self._model,
                    file=audio,
                    language=language,
                    response_format="verbose_json",
                    timestamp_granularities=["word"],
                )
        except (OpenAIError, OSError) as exc:
            raise SpeechRecognitionError(f"Whisper transcription failed: {exc}") from exc

        text = getattr(response, "text", "") or ""
        result = TranscriptResult(
            text=text,
            confidence=average_confidence(getattr(response, "words", None), default=self._default_confidence),
            language=getattr(response, "language", None) or language,
            duration=getattr(response, "duration", None),
        )
        logger.info(
            "speech.whisper.completed model=%s bytes=%s elapsed_ms=%d chars=%s",
            self._model,
            size,
            (time.monotonic() - started) * 1000,
            len(text),
        )
        return result


__all__ = ["WhisperSpeechToTextClient"]
