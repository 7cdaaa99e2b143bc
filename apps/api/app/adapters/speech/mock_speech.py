"""Mock speech-to-text client for local development and tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

from app.adapters.speech.base import SpeechToTextClient, TranscriptResult, clamp_confidence
from app.errors import SpeechRecognitionError


class MockSpeechToTextClient(SpeechToTextClient):
    """Returns a deterministic transcript derived from the file name.

    ``delay_seconds`` and ``error_message`` let tests hold a job in
    ``processing`` or drive it to ``failed``.
    """

    def __init__(
        self,
        *,
        confidence: float = 0.9,
        delay_seconds: float = 0.0,
        error_message: str | None = None,
    ) -> None:
        self.confidence = confidence
        self.delay_seconds = delay_seconds
        self.error_message = error_message
        self.calls: list[tuple[str, str]] = []

    async def transcribe(self, audio_path: str, *, language: str) -> TranscriptResult:
        self.calls.append((audio_path, language))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error_message is not None:
            raise SpeechRecognitionError(self.error_message)
        if not Path(audio_path).is_file():
            raise SpeechRecognitionError(f"Audio file not found: {audio_path}")
        return TranscriptResult(
            text=f"Mock transcription of {Path(audio_path).name}",
            confidence=clamp_confidence(self.confidence),
            language=language,
        )


__all__ = ["MockSpeechToTextClient"]
