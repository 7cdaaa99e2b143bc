"""Speech-to-text provider interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    text: str
    confidence: float
    language: str | None = None
    duration: float | None = None


def _word_confidence(word: Any) -> float | None:
    value = word.get("confidence") if isinstance(word, dict) else getattr(word, "confidence", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def clamp_confidence(value: float) -> float:
    return min(1.0, max(0.0, value))


def average_confidence(words: Iterable[Any] | None, *, default: float) -> float:
    """Mean of the per-word confidences that were reported.

    Engines that omit word detail get ``default`` instead of zero.
    """
    scores = [score for score in (_word_confidence(word) for word in words or ()) if score is not None]
    if not scores:
        return clamp_confidence(default)
    return clamp_confidence(sum(scores) / len(scores))


class SpeechToTextClient(ABC):
    """Turns a local audio file into text."""

    @abstractmethod
    async def transcribe(self, audio_path: str, *, language: str) -> TranscriptResult:
        """Raise ``SpeechRecognitionError`` when the engine rejects or fails the audio."""


__all__ = ["SpeechToTextClient", "TranscriptResult", "average_confidence", "clamp_confidence"]
