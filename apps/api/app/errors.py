"""Application exception types."""

from app.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


def not_found_error() -> ApiError:
    """Single 404 shape for missing and foreign resources alike."""
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class TranscriptionProcessingError(Exception):
    """Failure while running a transcription job; the message is stored on the job."""


class RecordNotFoundError(TranscriptionProcessingError):
    """Transcription, audio file or local audio path is missing."""


class AudioDownloadError(TranscriptionProcessingError):
    """Remote audio could not be fetched into a local file."""


class SpeechRecognitionError(TranscriptionProcessingError):
    """Speech-to-text engine rejected the audio or failed."""


class StorageError(Exception):
    """Raised by storage adapters when an object cannot be written or removed."""


__all__ = [
    "ApiError",
    "AudioDownloadError",
    "RecordNotFoundError",
    "SpeechRecognitionError",
    "StorageError",
    "TranscriptionProcessingError",
    "not_found_error",
]
