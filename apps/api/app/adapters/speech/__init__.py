"""Speech-to-text adapters."""

from .base import SpeechToTextClient, TranscriptResult, average_confidence, clamp_confidence
from .mock_speech import MockSpeechToTextClient
from .openai_whisper import WhisperSpeechToTextClient

__all__ = [
    "MockSpeechToTextClient",
    "SpeechToTextClient",
    "TranscriptResult",
    "WhisperSpeechToTextClient",
    "average_confidence",
    "clamp_confidence",
]
